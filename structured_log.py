# structured_log.py — JSON log lines for Cloud Run / Cloud Logging

import json
from datetime import datetime


def log_event(level: str, event: str, **details):
    print(json.dumps({
        "severity": level,
        "event": event,
        "timestamp": datetime.utcnow().isoformat(),
        **details
    }, default=str))
