from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Sequence

from models import OpenState, RawEstablishment, ViewModel
from services.schedule import evaluate


# Places with missing or unparseable hours stay visible under "open now".
ASSUME_OPEN_WHEN_UNKNOWN = True

Evaluator = Callable[[Optional[str], datetime], OpenState]


def is_visible(state: OpenState, *, assume_open_when_unknown: bool = ASSUME_OPEN_WHEN_UNKNOWN) -> bool:
    if state is OpenState.UNKNOWN:
        return assume_open_when_unknown
    return state is OpenState.OPEN


def project(
    raw: Sequence[RawEstablishment],
    open_now_only: bool,
    now: datetime,
    *,
    evaluator: Evaluator = evaluate,
) -> ViewModel:
    """Apply the client-side temporal filter, keeping server order."""
    if not open_now_only:
        return ViewModel(items=tuple(raw))
    return ViewModel(items=tuple(e for e in raw if is_visible(evaluator(e.opening_hours, now))))
