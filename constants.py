import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

# Comma separated, exact-match. An upgrade request without an Origin header is always admitted.
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "https://your-frontend-app.vercel.app,http://localhost:3000",
    ).split(",")
    if origin.strip()
]

MESSAGE_COOLDOWN_MS = 1000
HEARTBEAT_INTERVAL_MS = 30000

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = 1024 * 1024 * 5
ALLOWED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp")
UPLOAD_CLEANUP_INTERVAL_MS = 60000
UPLOAD_KEEP_FILES = (".gitkeep",)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
