"""Timeline events in Chrome trace-event terms."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

MAIN_LANE = 0
INTERRUPT_LANE = 1
FIRST_CUSTOM_LANE = 2

PHASE_COMPLETE = "X"
PHASE_INSTANT = "i"
PHASE_METADATA = "M"

SCOPE_GLOBAL = "g"


def cycle_to_us(cycle: int, mclk: float) -> float:
    """Convert a cycle count to microseconds at the given clock rate."""
    return cycle / mclk * 1_000_000.0


@dataclass(frozen=True)
class TimelineEvent:
    name: str
    phase: str
    ts: float
    dur: float = 0.0
    tid: int = MAIN_LANE
    pid: int = 0
    args: Optional[Dict[str, Any]] = None
    scope: Optional[str] = None

    @classmethod
    def complete(
        cls, name: str, start: int, end: int, tid: int, mclk: float
    ) -> "TimelineEvent":
        """Duration event spanning cycles ``[start, end)``."""
        return cls(
            name=name,
            phase=PHASE_COMPLETE,
            ts=cycle_to_us(start, mclk),
            dur=cycle_to_us(end - start, mclk),
            tid=tid,
        )

    @classmethod
    def instant(
        cls, name: str, cycle: int, tid: int, mclk: float
    ) -> "TimelineEvent":
        return cls(
            name=name,
            phase=PHASE_INSTANT,
            ts=cycle_to_us(cycle, mclk),
            tid=tid,
            scope=SCOPE_GLOBAL,
        )

    @property
    def end(self) -> float:
        return self.ts + self.dur

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "ph": self.phase,
            "ts": self.ts,
            "dur": self.dur,
            "pid": self.pid,
            "tid": self.tid,
        }
        if self.args is not None:
            out["args"] = dict(self.args)
        if self.scope is not None:
            out["s"] = self.scope
        return out
