"""Cycle Context Management.

Context variables binding the evaluation context (symbol, timeframe,
cycle number) to every log entry emitted while a cycle runs.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

_symbol_var: ContextVar[str] = ContextVar("symbol", default="")
_timeframe_var: ContextVar[str] = ContextVar("timeframe", default="")
_cycle_var: ContextVar[Optional[int]] = ContextVar("cycle", default=None)
_extra_context_var: ContextVar[Optional[dict]] = ContextVar("extra_context", default=None)


def get_context_dict() -> dict[str, Any]:
    """Get all bound context values as a dictionary for log records."""
    ctx: dict[str, Any] = {}
    symbol = _symbol_var.get()
    if symbol:
        ctx["symbol"] = symbol
    timeframe = _timeframe_var.get()
    if timeframe:
        ctx["timeframe"] = timeframe
    cycle = _cycle_var.get()
    if cycle is not None:
        ctx["cycle"] = cycle
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class CycleContext:
    """Context manager binding one evaluation cycle to log entries.

    Restores whatever context was bound before on exit, so contexts nest.

    Example:
        with CycleContext(symbol="BTCUSDT", timeframe="1h", cycle=42):
            logger.info("evaluating")  # includes symbol, timeframe, cycle
    """

    symbol: str = ""
    timeframe: str = ""
    cycle: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "CycleContext":
        self._tokens = [
            (_symbol_var, _symbol_var.set(self.symbol)),
            (_timeframe_var, _timeframe_var.set(self.timeframe)),
            (_cycle_var, _cycle_var.set(self.cycle)),
            (_extra_context_var, _extra_context_var.set(dict(self.extra))),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the active context."""
        current = _extra_context_var.get() or {}
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
