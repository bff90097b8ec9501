"""Service layer for the wheel and the ledger.

- Routers should not touch Redis directly; they call this package.
- Every service gets its store handle and settings injected by the entry point.
- Correctness relies on atomic store primitives only, never on in-process locks.
"""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
