from __future__ import annotations

import logging
import os
from datetime import date, datetime, timezone

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"


class UtcIsoFormatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc)
        return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def log_filename(day: date) -> str:
    return f"log-{day.strftime('%Y-%m-%d')}.txt"


class DailyFileHandler(logging.FileHandler):
    """Appends to ``log-YYYY-MM-DD.txt`` and switches files when the UTC date changes."""

    def __init__(self, log_dir: str) -> None:
        os.makedirs(log_dir, exist_ok=True)
        self.log_dir = log_dir
        self._day = datetime.now(timezone.utc).date()
        super().__init__(self._path_for(self._day), mode="a", encoding="utf-8", delay=True)

    def _path_for(self, day: date) -> str:
        return os.path.join(self.log_dir, log_filename(day))

    def emit(self, record: logging.LogRecord) -> None:
        day = datetime.fromtimestamp(record.created, timezone.utc).date()
        if day != self._day:
            self.acquire()
            try:
                if self.stream is not None:
                    self.stream.close()
                    self.stream = None
                self._day = day
                self.baseFilename = os.path.abspath(self._path_for(day))
            finally:
                self.release()
        super().emit(record)


def setup_logging(verbose: bool, log_dir: str | None = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        handlers.append(DailyFileHandler(log_dir))
    formatter = UtcIsoFormatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)
    # Request lines would leak the bot token in the URL.
    logging.getLogger("httpx").setLevel(logging.WARNING)
