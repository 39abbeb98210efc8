from __future__ import annotations

import logging
import sys
from pathlib import Path


class _ThirdPartyFilter(logging.Filter):
    """
    Keep our own modules at the configured level, but only let
    werkzeug request lines and SQLAlchemy engine chatter through at WARNING+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(("werkzeug", "sqlalchemy")):
            return record.levelno >= logging.WARNING
        if record.name == "py.warnings":
            return record.levelno >= logging.ERROR
        return True


def setup_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> None:
    """
    Configure root logging: stderr always, plus `friday-tasks.log` in
    `log_dir` when one is given.

    Call this once, before the app starts serving.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # Drop handlers from a previous call so records are not duplicated.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyFilter())
    root.addHandler(ch)

    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_dir / "friday-tasks.log"), encoding="utf-8")
        fh.setFormatter(fmt)
        fh.addFilter(_ThirdPartyFilter())
        root.addHandler(fh)

    logging.captureWarnings(True)
