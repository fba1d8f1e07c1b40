from __future__ import annotations

import time


def now_ms() -> int:
    """Epoch milliseconds; the unit every stored timestamp uses."""
    return int(time.time() * 1000)
