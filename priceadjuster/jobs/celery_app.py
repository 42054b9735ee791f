"""Celery configuration for the recurring catalog sweep."""

from __future__ import annotations

import os

from celery import Celery

from priceadjuster.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
SWEEP_INTERVAL_HOURS = float(os.environ.get("SWEEP_INTERVAL_HOURS", "6"))

celery_app = Celery("priceadjuster", broker=broker_url, backend=broker_url, include=["priceadjuster.jobs.sweep"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "catalog-sweep": {
        "task": "priceadjuster.jobs.sweep.run_sweep",
        "schedule": SWEEP_INTERVAL_HOURS * 60 * 60,
    },
}


@celery_app.task(name="priceadjuster.jobs.sweep.run_sweep")
def run_sweep_task() -> dict[str, object]:  # pragma: no cover - executed by worker
    import asyncio

    from priceadjuster.jobs.sweep import run_sweep

    return asyncio.run(run_sweep()).as_dict()
