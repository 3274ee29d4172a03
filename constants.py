import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Comma separated, "*" allows every origin
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

# Join codes skip look-alike characters (0/O, 1/I)
RELAY_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
RELAY_CODE_LENGTH = int(os.getenv("RELAY_CODE_LENGTH", 6))

RELAY_SIDES = ("A", "B")

RELAY_HEARTBEAT_SECONDS = int(os.getenv("RELAY_HEARTBEAT_SECONDS", 15))
RELAY_SUBSCRIBER_QUEUE_SIZE = int(os.getenv("RELAY_SUBSCRIBER_QUEUE_SIZE", 256))
RELAY_DISCONNECT_POLL_SECONDS = float(os.getenv("RELAY_DISCONNECT_POLL_SECONDS", 0.5))
