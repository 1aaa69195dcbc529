"""Append-only JSONL trace of charge evaluations."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class TraceLogger:
    """One JSON object per line: timestamp, phase, payload (+ optional request id)."""

    path: Path
    enabled: bool = True
    _initialized: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _ensure_parent(self) -> None:
        if self._initialized:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = True

    def log(self, phase: str, payload: Dict[str, Any], *, request_id: Optional[str] = None) -> None:
        if not self.enabled:
            return

        event: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "phase": phase,
            "payload": payload,
        }
        if request_id:
            event["request_id"] = request_id

        line = json.dumps(event, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            self._ensure_parent()
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)


def build_trace_logger(path: Path | str | None, enabled: bool = True) -> Optional[TraceLogger]:
    if not path:
        return None
    return TraceLogger(Path(path), enabled=enabled)


__all__ = ["TraceLogger", "build_trace_logger"]
