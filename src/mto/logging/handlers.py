"""JSON log format for mto.

One JSON object per line:

    {"timestamp": ..., "level": "INFO", "logger": "mto.jobs.unit",
     "message": ..., "unit_id": ..., "step": 2, "attempt": 1}

The unit fields appear only when set. Anything passed through ``extra=``
is collected under "extra".
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

UNIT_FIELDS = ("unit_id", "step", "attempt")

# Attributes every LogRecord has, plus the ones UnitContextFilter adds.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "unit_tag", *UNIT_FIELDS}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in UNIT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)
