"""ARQ worker configuration for async task processing."""

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings
from arq.worker import func

from app.core.config import settings
from app.core.database import async_session_maker, engine
from app.core.logging import setup_logging
from app.services.email import get_email_service
from app.worker.tasks import (
    expire_prescriptions,
    expire_trials,
    send_consultation_reminder,
    send_email_job,
)

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Share the email sender and the session factory with every job."""
    setup_logging()
    ctx["email"] = get_email_service()
    ctx["session_factory"] = async_session_maker
    logger.info("Worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    await engine.dispose()
    logger.info("Worker stopped")


# Redis settings (evaluated at module import time, after env vars are loaded)
redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)


class WorkerSettings:
    """ARQ worker settings."""

    redis_settings = redis_settings

    queue_name = settings.ARQ_QUEUE_NAME
    max_jobs = settings.ARQ_MAX_JOBS
    job_timeout = 300
    keep_result = 3600

    max_tries = 3
    retry_jobs = True

    on_startup = startup
    on_shutdown = shutdown

    functions = [
        func(send_email_job, name="send_email_job"),
        func(send_consultation_reminder, name="send_consultation_reminder"),
    ]

    # Times are UTC
    cron_jobs = [
        cron(expire_prescriptions, hour={6}, minute={0}, run_at_startup=True),
        cron(expire_trials, minute={5}),
    ]
