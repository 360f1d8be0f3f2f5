# queuedesk/app/config.py
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DB_URL = os.getenv("QUEUEDESK_DB_URL") or f"sqlite:///{PROJECT_ROOT / 'queuedesk.db'}"

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# scheduler cadence in seconds
TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "5.0"))

# check-in is refused once this many visitors are waiting
MAX_WAITING = int(os.getenv("MAX_WAITING", "20"))

# first ticket number handed out; the reception desk historically started at 111
TICKET_START = int(os.getenv("TICKET_START", "1"))
TICKET_PREFIX = "A-"

PREDICTION_URL = os.getenv("PREDICTION_URL") or None
PREDICTION_TIMEOUT = float(os.getenv("PREDICTION_TIMEOUT", "5.0"))

MAX_WRITE_RETRIES = int(os.getenv("MAX_WRITE_RETRIES", "5"))

# service suggestions from a free-text issue description; unset = no suggestions
RECOMMENDATION_URL = os.getenv("RECOMMENDATION_URL") or None
RECOMMENDATION_TIMEOUT = float(os.getenv("RECOMMENDATION_TIMEOUT", "5.0"))
