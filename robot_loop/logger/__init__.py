"""Logging helpers: rotating text logs and the JSONL cycle recorder."""

from .logger import DedupFilter, DedupFormatter, JsonlLogger, Logger, LoopLogBundle, to_jsonable

__all__ = ["DedupFilter", "DedupFormatter", "JsonlLogger", "Logger", "LoopLogBundle", "to_jsonable"]
