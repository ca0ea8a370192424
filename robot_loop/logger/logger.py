# robot_loop/logger/logger.py
"""
Logging for control runs.

Library modules only create `logging.getLogger(__name__)` loggers under the
`robot_loop` root; a runner decides where they go by attaching a Logger (text)
and a JsonlLogger (one JSON object per cycle), usually through LoopLogBundle.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, is_dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DedupFilter(logging.Filter):
    """
    Drop a record that repeats the previous message of the same logger and level.

    With cooldown_s > 0 the repeat is let through again once the cooldown has
    passed, and the number of copies dropped in between is left on the record
    under `dedup_repeats[self]` for a DedupFormatter to print. The record itself
    is shared by every handler, so its message is never rewritten here.
    """

    def __init__(self, cooldown_s: float = 0.0) -> None:
        super().__init__()
        self.cooldown_s = float(cooldown_s)
        self._lock = threading.Lock()
        # (logger name, level) -> [message, time passed, dropped count]
        self._seen: Dict[Tuple[str, int], List[Any]] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        key = (record.name, record.levelno)
        msg = record.getMessage()
        now = time.monotonic()

        with self._lock:
            entry = self._seen.get(key)
            if entry is None or entry[0] != msg:
                self._seen[key] = [msg, now, 0]
                return True

            if self.cooldown_s > 0.0 and now - entry[1] >= self.cooldown_s:
                dropped = entry[2]
                entry[1], entry[2] = now, 0
                if dropped:
                    repeats = dict(getattr(record, "dedup_repeats", {}))
                    repeats[self] = dropped
                    record.dedup_repeats = repeats
                return True

            entry[2] += 1
            return False


class DedupFormatter(logging.Formatter):
    """Formatter that appends "(repeated Nx)" for records its DedupFilter let through late."""

    def __init__(self, dedup: DedupFilter, fmt: str = LOG_FORMAT, datefmt: Optional[str] = "%Y-%m-%d %H:%M:%S") -> None:
        super().__init__(fmt, datefmt=datefmt)
        self.dedup = dedup

    def format(self, record: logging.LogRecord) -> str:
        dropped = getattr(record, "dedup_repeats", {}).get(self.dedup)
        if dropped:
            # annotate a copy; other handlers format the same record
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"{record.getMessage()} (repeated {dropped}x)"
            record.args = None
        return super().format(record)


class Logger:
    """
    Rotating text log (plus optional console) on one named logger.

    Attach it to "robot_loop" and every module logger in the package
    propagates into it. close() removes only the handlers this instance added.
    """

    def __init__(
        self,
        log_file: str,
        logger_name: str = "robot_loop",
        log_dir: Union[str, Path] = "logs",
        level: int = logging.INFO,
        console: bool = False,
        max_bytes: int = 5_000_000,
        backup_count: int = 5,
        dedup_cooldown_s: float = 0.0,
        propagate: bool = False,
    ) -> None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        self.path = str(Path(log_dir) / log_file)

        self._logger = logging.getLogger(logger_name)
        self._logger.setLevel(level)
        self._logger.propagate = propagate

        self._handlers: List[logging.Handler] = [
            RotatingFileHandler(self.path, maxBytes=int(max_bytes), backupCount=int(backup_count), encoding="utf-8")
        ]
        if console:
            self._handlers.append(logging.StreamHandler())

        for handler in self._handlers:
            handler.setLevel(level)
            dedup = DedupFilter(cooldown_s=dedup_cooldown_s)
            handler.addFilter(dedup)
            handler.setFormatter(DedupFormatter(dedup))
            self._logger.addHandler(handler)

        self._logger.debug("Logging %s to %s", logger_name, self.path)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def info(self, msg: str, *args: Any) -> None:
        self._logger.info(msg, *args)

    def warning(self, msg: str, *args: Any) -> None:
        self._logger.warning(msg, *args)

    def close(self) -> None:
        for handler in self._handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._handlers = []


def to_jsonable(obj: Any) -> Any:
    """Convert loop data (numpy arrays and scalars, dataclasses, paths) into JSON types."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, BaseException):
        return repr(obj)
    return obj


class JsonlLogger:
    """
    Append-only JSONL recorder: one {"ts_ns", "event", ...} object per line.

    The file is line-buffered, so a run that dies still leaves every
    completed cycle on disk for load_jsonl().
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(path)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._f = open(self.path, "a", buffering=1, encoding="utf-8")

    def write(self, event: str, **data: Any) -> None:
        row = {"ts_ns": time.time_ns(), "event": event}
        row.update(to_jsonable(data))
        line = json.dumps(row, ensure_ascii=False, default=str)
        with self._lock:
            self._f.write(line + "\n")

    def close(self) -> None:
        with self._lock:
            if not self._f.closed:
                self._f.close()

    def __enter__(self) -> "JsonlLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LoopLogBundle:
    """
    What a runner opens for one run: <name>.log via Logger on the package
    logger, and <name>.jsonl via JsonlLogger for per-cycle rows.

    Example:
        bundle = LoopLogBundle("flywheel_sim", log_dir="logs")
        bundle.events.write("cycle", time=t, u=u, xhat=loop.xhat)
        bundle.close()
    """

    def __init__(
        self,
        name: str,
        log_dir: Union[str, Path] = "logs",
        level: int = logging.INFO,
        console: bool = False,
        max_bytes: int = 5_000_000,
        backup_count: int = 5,
        dedup_cooldown_s: float = 1.0,
        jsonl_file: Optional[str] = None,
        text_file: Optional[str] = None,
        logger_name: str = "robot_loop",
    ) -> None:
        self.text = Logger(
            log_file=text_file or f"{name}.log",
            logger_name=logger_name,
            log_dir=log_dir,
            level=level,
            console=console,
            max_bytes=max_bytes,
            backup_count=backup_count,
            dedup_cooldown_s=dedup_cooldown_s,
        )
        self.events = JsonlLogger(Path(log_dir) / (jsonl_file or f"{name}.jsonl"))

    def close(self) -> None:
        self.events.close()
        self.text.close()
