import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

RATE_LIMIT_PER_SECOND = float(os.getenv("RATE_LIMIT_PER_SECOND", 20))
MAX_CONNECTIONS_PER_IP = int(os.getenv("MAX_CONNECTIONS_PER_IP", 10))
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", 30))

DEFAULT_TTL_MINUTES = float(os.getenv("DEFAULT_TTL_MINUTES", 10))
MAX_TTL_MINUTES = float(os.getenv("MAX_TTL_MINUTES", 1440))
DEFAULT_MAX_PEERS = int(os.getenv("DEFAULT_MAX_PEERS", 20))
MAX_PEERS_LIMIT = int(os.getenv("MAX_PEERS_LIMIT", 100))

ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 8))
ROOM_TOKEN_BYTES = int(os.getenv("ROOM_TOKEN_BYTES", 24))

# "host": presence events go to the room host only. "room": to every other member.
PRESENCE_BROADCAST = os.getenv("PRESENCE_BROADCAST", "host")
