from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from growhub.utils.time import iso_now

AUDIT_LOGGER_NAME = "growhub.audit"


def _find_file_handler(logger: logging.Logger, path: Path) -> RotatingFileHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == path:
            return handler
    return None


class AuditLogger:
    """
    Append-only JSON trail of relay commands, one line per event.

    Entries go to their own rotating file and never reach the root log.
    """

    def __init__(self, log_path: str, level: str = "INFO") -> None:
        self.log_path = Path(log_path).resolve()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.logger.propagate = False

        # Only the instance that attaches the handler owns (and closes) it
        self._handler: RotatingFileHandler | None = None
        if _find_file_handler(self.logger, self.log_path) is None:
            handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=5 * 1024 * 1024,
                backupCount=10,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(logging.Formatter("%(asctime)s | %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"))
            self.logger.addHandler(handler)
            self._handler = handler

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        entry: dict[str, Any] = {
            "ts": iso_now(timespec="seconds"),
            "actor": actor,
            "action": action,
            "resource": resource,
            "outcome": outcome,
        }
        if metadata:
            entry["meta"] = metadata
        self.logger.info(json.dumps(entry, default=str))

    def close(self) -> None:
        if self._handler is not None:
            self.logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
