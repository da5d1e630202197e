from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))     # api/
ROOT_DIR = os.path.dirname(BASE_DIR)                      # project root

# =========================
# Config & Initialization
# =========================
# Load root .env first, then any CWD .env.
load_dotenv(os.path.join(ROOT_DIR, ".env"))
load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Lumen API")
APP_VERSION = os.getenv("APP_VERSION", "0.3.0")
PORT = int(os.getenv("PORT", "5050"))
DEBUG = os.getenv("DEBUG", "true").lower() in ("1", "true", "yes")
FLASK_SECRET = os.getenv("FLASK_SECRET", "lumen_secret")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "800"))

# Where the chat client sends its turns (the Flask app below, usually).
LUMEN_API_BASE = os.getenv("LUMEN_API_BASE", "http://localhost:5050").rstrip("/")
HTTP_TIMEOUT_SECS = float(os.getenv("LUMEN_HTTP_TIMEOUT_SECS", "60"))

# Per-user OpenAI keys are stored encrypted with this secret.
ENCRYPTION_SECRET = os.getenv("ENCRYPTION_SECRET", "")

# On serverless platforms, code dir is read-only. Use /tmp for writes.
DATA_DIR = os.getenv("LUMEN_DATA_DIR", "/tmp/lumen")
try:
    os.makedirs(DATA_DIR, exist_ok=True)
except OSError:
    # Ignore dir creation errors; stores retry on write.
    pass

DEBUG_CONSOLE_ENABLED = os.getenv("LUMEN_DEBUG_CONSOLE", "false").lower() in ("1", "true", "yes")
DEBUG_EVENTS_MAX = int(os.getenv("LUMEN_DEBUG_EVENTS_MAX", "500"))

GOOGLE_CAL_BASE = os.getenv("GOOGLE_CAL_BASE", "https://www.googleapis.com/calendar/v3")

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("lumen")
