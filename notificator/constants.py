"""
Application-level constants for hardcoded protocol behavior.

These values define the wire protocol between the relay and its clients and
should NEVER be changed via environment variables. For configurable values
(storage backend, auth token, timeouts), see notificator/settings.py.
"""

# ============================================================================
# Control Plane
# ============================================================================

# Header carrying the shared secret on every control request
AUTH_HEADER = "X-AUTH-TOKEN"

# Header used to propagate request correlation IDs
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Correlation IDs are truncated to this many characters
CORRELATION_ID_LENGTH = 8


# ============================================================================
# WebSocket Protocol Constants
# ============================================================================

# Path of the real-time notification endpoint
WS_PATH = "/notifications"

# Server -> client: connection accepted, carries the connection id
WS_EVENT_CONNECTED = "connected"

# Client -> server: complete the handshake for (userId, connectionId)
WS_EVENT_REGISTER = "register"

# Server -> client: result of a register event
WS_EVENT_REGISTERED = "registered"

# Server -> client: pushed notification payload
WS_EVENT_MESSAGE = "message"

# Server -> client: malformed client event
WS_EVENT_ERROR = "error"

# WebSocket close code for frames that are not valid JSON (RFC 6455)
WS_UNSUPPORTED_DATA_CODE = 1003


# ============================================================================
# Logging
# ============================================================================

# Number of leading characters of a slot id that may appear in log lines
SLOT_ID_VISIBLE_CHARS = 4

# Loki-style size cap for a single structured log line
MAX_LOG_SIZE_BYTES = 250_000
