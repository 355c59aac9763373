"""Call Client Services.

This package contains the service modules that implement the
call-session core of the client.

Service Categories:
- Signaling: Relay channel and room identifiers
- Session: Per-call negotiation, candidate queue, duration timer
- Call: Caller/callee orchestration, exceptions, history helpers
- Media: Media stack protocols and the aiortc implementation

External integrations:
- api_client: Call-record and availability REST API
"""
