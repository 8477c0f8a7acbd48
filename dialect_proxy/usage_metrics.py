"""Session-scoped token and cost accounting.

A ``UsageLedger`` is created once per running proxy and passed explicitly to
every stream adapter; there are no module-level counters. After each
finished stream it folds in the response's usage and rewrites a small JSON
status file that external tools (status lines, dashboards) can poll:

    <tmpdir>/dialect-proxy-tokens-<port>.json

The file is advisory telemetry. Concurrent proxies on the same port simply
overwrite each other, and write failures are logged and ignored.
"""

from __future__ import annotations

import json
import logging
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Optional

logger = logging.getLogger("dialect-proxy")

DEFAULT_CONTEXT_WINDOW = 200000

# Rough blended rates in USD per million tokens
INPUT_COST_PER_MILLION = 0.15
OUTPUT_COST_PER_MILLION = 0.60


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimate the cost of one response from fixed per-million rates."""
    return (
        input_tokens / 1_000_000 * INPUT_COST_PER_MILLION
        + output_tokens / 1_000_000 * OUTPUT_COST_PER_MILLION
    )


def status_file_path(port: int) -> Path:
    return Path(tempfile.gettempdir()) / f"dialect-proxy-tokens-{port}.json"


class RequestTracker:
    """Track a single request lifecycle for in-memory counters."""

    def __init__(self, ledger: "UsageLedger") -> None:
        self._ledger = ledger
        self._finished = False

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._ledger.finish_request()


@dataclass
class UsageLedger:
    """Cumulative token usage and estimated cost for one proxy session.

    Input tokens are replaced by each response's value, since a prompt
    already contains the whole conversation so far. Output tokens are summed
    across responses.
    """

    port: int
    context_window: int = DEFAULT_CONTEXT_WINDOW
    status_path: Optional[Path] = None
    write_on_start: bool = True

    input_tokens: int = 0
    output_tokens: int = 0
    total_cost: float = 0.0

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    _received: int = 0
    _served: int = 0
    _ongoing: int = 0

    def __post_init__(self) -> None:
        if self.status_path is None:
            self.status_path = status_file_path(self.port)
        if self.write_on_start:
            self.write_status_file()

    # -------------------------------------------------------------------------
    # Request lifecycle
    # -------------------------------------------------------------------------

    def start_request(self) -> RequestTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return RequestTracker(self)

    def finish_request(self) -> None:
        with self._lock:
            self._served += 1
            self._ongoing = max(0, self._ongoing - 1)

    # -------------------------------------------------------------------------
    # Token accounting
    # -------------------------------------------------------------------------

    def record(
        self,
        input_tokens: int,
        output_tokens: int,
        context_window: Optional[int] = None,
    ) -> dict[str, Any]:
        """Fold one finished response into the session and persist it.

        Returns:
            The status snapshot that was written.
        """
        with self._lock:
            self.input_tokens = input_tokens
            self.output_tokens += output_tokens
            self.total_cost += estimate_cost(input_tokens, output_tokens)
            if context_window:
                self.context_window = context_window
        snapshot = self.write_status_file()
        logger.debug(
            f"Session usage: input={snapshot['input_tokens']}, output={snapshot['output_tokens']}, "
            f"cost=${snapshot['total_cost']:.6f}"
        )
        return snapshot

    def status_snapshot(self) -> dict[str, Any]:
        """Build the status file payload."""
        with self._lock:
            total = self.input_tokens + self.output_tokens
            limit = self.context_window
            if limit > 0:
                left_pct = max(0, min(100, round((limit - total) / limit * 100)))
            else:
                left_pct = 100
            return {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": total,
                "total_cost": self.total_cost,
                "context_window": limit,
                "context_left_percent": left_pct,
                "updated_at": int(time.time() * 1000),
            }

    def write_status_file(self) -> dict[str, Any]:
        snapshot = self.status_snapshot()
        try:
            self.status_path.write_text(json.dumps(snapshot), encoding="utf-8")
        except OSError as exc:
            logger.debug(f"Could not write token status file {self.status_path}: {exc}")
        return snapshot

    def snapshot(self) -> dict[str, Any]:
        """Realtime request counters plus the token status, for ``GET /usage``."""
        with self._lock:
            realtime = {
                "started_at": self._started_at,
                "received": self._received,
                "served": self._served,
                "ongoing": self._ongoing,
            }
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "realtime": realtime,
            "tokens": self.status_snapshot(),
        }
