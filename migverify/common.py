from __future__ import annotations

import json
import sys
import threading
import uuid
from datetime import datetime
from typing import Any, Optional, TextIO

RUN_ID = uuid.uuid4().hex[:12]

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}


class PrintLogger:
    """Emit one JSON line per event to stdout and, optionally, a log file."""

    def __init__(
        self,
        job_name: str = "migration_verify",
        file_path: Optional[str] = None,
        level: str = "INFO",
        stream: Optional[TextIO] = None,
    ) -> None:
        self.job_name = job_name
        self.file_path = file_path
        self.threshold = _LEVELS.get(str(level).upper(), 20)
        self._stream = stream
        self._lock = threading.Lock()

    def log(self, level: str, msg: str, **fields: Any) -> None:
        level = str(level).upper()
        if level == "WARNING":
            level = "WARN"
        if _LEVELS.get(level, 20) < self.threshold:
            return
        record = {
            "ts": datetime.now().astimezone().isoformat(timespec="seconds"),
            "level": level,
            "job": self.job_name,
            "run_id": RUN_ID,
            "msg": msg,
        }
        record.update({key: value for key, value in fields.items() if value is not None})
        line = json.dumps(record, default=str)
        with self._lock:
            print(line, file=self._stream or sys.stdout, flush=True)
            if self.file_path:
                with open(self.file_path, "a", encoding="utf-8") as handle:
                    handle.write(line + "\n")

    def debug(self, msg: str, **fields: Any) -> None:
        self.log("DEBUG", msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self.log("INFO", msg, **fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self.log("WARN", msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self.log("ERROR", msg, **fields)


__all__ = ["PrintLogger", "RUN_ID"]
