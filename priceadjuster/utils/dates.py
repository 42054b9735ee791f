"""Store-local time helpers."""

from __future__ import annotations

import os

import pendulum

DEFAULT_TZ = "America/Los_Angeles"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz(tz_name: str | None = None) -> pendulum.DateTime:
    tz = pendulum.timezone(tz_name or timezone_name())
    return pendulum.now(tz)


def store_clock(tz_name: str):
    """Clock bound to a store timezone, for injecting into the orchestrator."""

    def _now() -> pendulum.DateTime:
        return now_in_tz(tz_name)

    return _now
