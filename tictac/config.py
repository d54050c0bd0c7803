import os

# Relay used for game-id matchmaking, as "host:port". Can be overridden
# using the TICTAC_RELAY environment variable or --relay on the command line.
RELAY_ADDR = os.environ.get("TICTAC_RELAY")

DEFAULT_PORT = int(os.environ.get("TICTAC_PORT", "5000"))
DEFAULT_RELAY_PORT = int(os.environ.get("TICTAC_RELAY_PORT", "7777"))
LOG_LEVEL = os.environ.get("TICTAC_LOG_LEVEL", "WARNING")

# Handshake over the relayed datagram link
HANDSHAKE_ATTEMPTS = 5
HANDSHAKE_TIMEOUT = 2.0
HANDSHAKE_RETRY_PAUSE = 1.0

# Once connected, reads give up quickly so the worker loops stay responsive
LINK_TIMEOUT = 0.1
TICK_WAIT = 0.033
RESEND_INTERVAL = 1.0

DATAGRAM_SIZE = 1024
DISCOVERY_PREFIX = "GAME###"

# A relay request nobody matches is forgotten after this many seconds
RELAY_WAIT_TTL = float(os.environ.get("TICTAC_RELAY_WAIT_TTL", "300"))
