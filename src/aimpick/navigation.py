"""Initial page navigation with bounded retry on transient network errors."""

from __future__ import annotations

import time
from typing import Any, Callable

from aimpick.constants import (
    NAV_BACKOFF_MS,
    NAV_MAX_ATTEMPTS,
    NAV_SETTLE_MS,
    TRANSIENT_NAV_SIGNATURES,
)

TRANSIENT = "transient"
FATAL = "fatal"

Classifier = Callable[[BaseException], str]


def classify_navigation_error(exc: BaseException) -> str:
    msg = str(exc or "").lower()
    if any(signature in msg for signature in TRANSIENT_NAV_SIGNATURES):
        return TRANSIENT
    return FATAL


def backoff_delay_ms(attempt: int, delays: tuple[int, ...] = NAV_BACKOFF_MS) -> int:
    """Delay after the ``attempt``-th failure (1-based); the last step repeats."""
    if not delays:
        return 0
    return delays[min(max(attempt, 1) - 1, len(delays) - 1)]


def navigate_with_retry(
    page: Any,
    url: str,
    *,
    max_attempts: int = NAV_MAX_ATTEMPTS,
    timeout_ms: int = 60000,
    delays: tuple[int, ...] = NAV_BACKOFF_MS,
    classifier: Classifier = classify_navigation_error,
    sleep: Callable[[float], None] = time.sleep,
    log: Callable[[str], None] | None = None,
) -> int:
    """Load ``url`` and return the number of attempts it took.

    Errors the classifier reports as fatal, and the last transient error once
    attempts run out, propagate unchanged.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            return attempt
        except Exception as exc:
            if classifier(exc) != TRANSIENT or attempt >= attempts:
                raise
            delay_ms = backoff_delay_ms(attempt, delays)
            if log is not None:
                log(f"navigation failed (attempt {attempt}/{attempts}), retry in {delay_ms}ms: {exc}")
            sleep(delay_ms / 1000.0)
            try:
                page.wait_for_timeout(NAV_SETTLE_MS)
            except Exception:
                pass
    raise RuntimeError("navigation retry loop exited without a result")
