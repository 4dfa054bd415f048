# app/config.py

import os
from dotenv import load_dotenv

load_dotenv(".env.production")

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "gmail-scheduler")

# Privileged credential for the dispatch trigger. Unset means /pending rejects every caller.
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY")
BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000")

GMAIL_SEND_URL = os.getenv(
    "GMAIL_SEND_URL", "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
)
GMAIL_SEND_TIMEOUT = float(os.getenv("GMAIL_SEND_TIMEOUT", "30"))

# How far in the past a requested send time may be and still be accepted (client clock skew)
SCHEDULE_PAST_GRACE = int(os.getenv("SCHEDULE_PAST_GRACE", "300"))

DISPATCH_BATCH_LIMIT = int(os.getenv("DISPATCH_BATCH_LIMIT", "10"))
DISPATCH_MAX_ATTEMPTS = int(os.getenv("DISPATCH_MAX_ATTEMPTS", "3"))
DISPATCH_RETRY_BACKOFF = float(os.getenv("DISPATCH_RETRY_BACKOFF", "1.0"))
# Wall-clock seconds one batch may spend before leaving the rest of the due set for the next tick
DISPATCH_TIME_BUDGET = float(os.getenv("DISPATCH_TIME_BUDGET", "25"))
# A claim older than this is treated as an interrupted dispatch and closed as failed
DISPATCH_CLAIM_LEASE = int(os.getenv("DISPATCH_CLAIM_LEASE", "600"))

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() in ("1", "true", "yes")
SCHEDULER_INTERVAL = int(os.getenv("SCHEDULER_INTERVAL", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
