"""Wall-clock helpers; every persisted timestamp is epoch milliseconds."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)
