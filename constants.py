import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

SOCKET_PATH = os.getenv("SOCKET_PATH", "/api/socket")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

MAX_ROOM_CODE_LENGTH = int(os.getenv("MAX_ROOM_CODE_LENGTH", 64))
OUTBOX_SIZE = int(os.getenv("OUTBOX_SIZE", 256))

# Send the new streamer one viewer-joined per viewer already waiting in the room
NOTIFY_STREAMER_OF_WAITING_VIEWERS = os.getenv("NOTIFY_STREAMER_OF_WAITING_VIEWERS", "true").lower() in ("1", "true", "yes")
