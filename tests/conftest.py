import sys
from pathlib import Path

import pytest

# Add project root (1 level up from tests/) to sys.path so tests can import 'peercall'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from tests.helpers import FakeCallApi, FakeNotifier, FakeSignalingChannel, MediaKit  # noqa: E402


@pytest.fixture
def channel():
    return FakeSignalingChannel()


@pytest.fixture
def kit():
    return MediaKit()


@pytest.fixture
def api():
    return FakeCallApi()


@pytest.fixture
def notifier():
    return FakeNotifier()
