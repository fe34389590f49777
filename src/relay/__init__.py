# Code pairing relay package
#
# Provides:
#  - FastAPI-based WebSocket server pairing a host and a client by code
#  - Opaque payload relay between the paired endpoints
#  - Heartbeat sweep evicting unresponsive connections
#
# See src/relay/server.py for the app entry point.
