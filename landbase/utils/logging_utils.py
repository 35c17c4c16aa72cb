# landbase/utils/logging_utils.py
# ======================================================================================
# landbase: Logging Utilities
# --------------------------------------------------------------------------------------
# Purpose
#   One logging setup for every landbase run:
#     • Level, console format and optional file / JSONL destinations from config.
#     • Log file names stamped with the run id so reruns never overwrite each other.
#     • A helper that writes a block of named numbers (area ledgers, summaries) in
#       the aligned "name = value" layout used by the run logs.
#
# Design
#   - init_logging(cfg, run_id): resets the root logger, adds console + optional handlers.
#   - get_logger(name): namespaced logger ("landbase.<module>").
#   - log_quantities(logger, title, values): one INFO line per quantity.
#
# License
#   MIT (c) 2025 landbase contributors
# ======================================================================================

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _JSONLogHandler(logging.Handler):
    """
    Write each log record as one JSON object per line (JSONL).
    """

    def __init__(self, path: Path, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "time": datetime.now(timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "func": record.funcName,
                "line": record.lineno,
            }
            self._fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
            self._fh.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if not self._fh.closed:
                self._fh.close()
        finally:
            super().close()


def _run_tag(run_id: Optional[str]) -> str:
    return run_id or datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def init_logging(cfg: Dict[str, Any], run_id: Optional[str] = None) -> None:
    """
    Configure the root logger from the ``logging`` section of a config dict.

    Parameters
    ----------
    cfg : dict
        Resolved config; reads ``logging.level``, ``logging.to_file``,
        ``logging.to_json`` and ``logging.dir``.
    run_id : str, optional
        Stamped into log file names. Defaults to a UTC timestamp.
    """
    log_cfg = cfg.get("logging", {}) if cfg else {}
    level_str = str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_str, logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.setLevel(level)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(ch)

    log_dir = Path(log_cfg.get("dir", "logs"))
    if log_cfg.get("to_file", False):
        log_file = log_dir / f"landbase_{_run_tag(run_id)}.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(fh)

    if log_cfg.get("to_json", False):
        json_file = log_dir / f"landbase_{_run_tag(run_id)}.jsonl"
        root.addHandler(_JSONLogHandler(json_file, level=level))

    root.debug("Logging initialized (run_id=%s)", run_id)


def get_logger(name: str) -> logging.Logger:
    """Retrieve a module-specific logger."""
    return logging.getLogger(name)


def log_quantities(logger: logging.Logger, title: str, values: Mapping[str, float]) -> None:
    """Log a titled block of named quantities, one per line."""
    logger.info("%s:", title)
    width = max((len(k) for k in values), default=0)
    for key, val in values.items():
        logger.info("  %s = %f", key.ljust(width), float(val))
