"""Application-wide configuration constants."""

import json
import os
from pathlib import Path

# --- Identity ---
APP_NAME = "FileBeam"
APP_VERSION = "1.0.0"

# --- Networking ---
API_HOST = os.environ.get("FILEBEAM_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("FILEBEAM_API_PORT", os.environ.get("PORT", 3001)))
CLIENT_URL = os.environ.get("FILEBEAM_CLIENT_URL", "*")  # CORS origin
SIGNALING_URL = os.environ.get("FILEBEAM_SIGNALING_URL", f"ws://localhost:{API_PORT}/ws")

_DEFAULT_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
    {"urls": "stun:stun1.l.google.com:19302"},
]
ICE_SERVERS = (
    json.loads(os.environ["FILEBEAM_ICE_SERVERS"])
    if os.environ.get("FILEBEAM_ICE_SERVERS")
    else _DEFAULT_ICE_SERVERS
)

# --- Rendezvous ---
SHARE_CODE_LENGTH = 8
SHARE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"
REJOIN_POLICY = os.environ.get("FILEBEAM_REJOIN_POLICY", "replace")  # "replace" | "reject"

# --- Transfer ---
CHUNK_SIZE = 1048576  # 1 MiB
MAX_FILE_SIZE = int(os.environ.get("FILEBEAM_MAX_FILE_SIZE", 1024 * 1024 * 1024))  # 1 GiB
BUFFER_HIGH_WATER = 16 * CHUNK_SIZE  # pause reading above this many unsent bytes
BUFFER_LOW_WATER = 4 * CHUNK_SIZE  # resume once the channel drains below this
BUFFER_POLL_INTERVAL = 0.01  # seconds
DATA_CHANNEL_LABEL = "fileTransfer"

# --- Storage ---
DEFAULT_SAVE_DIR = os.environ.get(
    "FILEBEAM_SAVE_DIR", str(Path.home() / "Downloads" / "FileBeam")
)
