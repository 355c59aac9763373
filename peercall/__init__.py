"""
peercall - call-session signaling and routing core for two-party voice calls.
"""

__version__ = "1.0.0"
