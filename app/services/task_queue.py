"""Task queue service for enqueueing background jobs."""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from redis.exceptions import RedisError

from app.core.config import settings

logger = logging.getLogger(__name__)


class TaskQueueService:
    """
    Service for enqueueing background tasks to ARQ.

    Enqueue failures are logged and reported as None so that a request never
    fails because Redis is unavailable.
    """

    def __init__(self) -> None:
        """Initialize task queue service."""
        self._pool: ArqRedis | None = None

    async def get_pool(self) -> ArqRedis:
        """Get or create ARQ Redis pool."""
        if self._pool is None:
            self._pool = await create_pool(
                RedisSettings.from_dsn(settings.ARQ_REDIS_URL),
                default_queue_name=settings.ARQ_QUEUE_NAME,
            )
        return self._pool

    async def close(self) -> None:
        """Close Redis pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def enqueue(
        self,
        function: str,
        *args: Any,
        defer_until: Optional[datetime] = None,
        job_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Enqueue a job by function name.

        Returns:
            The ARQ job id, or None when queuing is disabled, failed or a job
            with the same id already exists
        """
        if not settings.ARQ_ENABLED:
            logger.debug(f"Task queue disabled, dropping job {function}")
            return None

        try:
            pool = await self.get_pool()
            job = await pool.enqueue_job(
                function,
                *args,
                _job_id=job_id,
                _defer_until=defer_until,
            )
        except (OSError, RedisError) as e:
            logger.error(f"Failed to enqueue {function}: {e}")
            return None

        if job is None:
            logger.info(f"Job {job_id} already queued, {function} not enqueued again")
            return None
        return job.job_id

    async def enqueue_email(self, template: str, to: str, context: dict[str, Any]) -> Optional[str]:
        """Queue a templated email."""
        return await self.enqueue("send_email_job", template, to, context)

    async def schedule_consultation_reminder(
        self, consultation_id: str, scheduled_at: datetime, remind_at: datetime
    ) -> Optional[str]:
        """
        Queue the reminder for a consultation at `remind_at`.

        The job id carries the consultation time, so a reschedule queues a new
        job and the worker drops the one queued for the old time.
        """
        return await self.enqueue(
            "send_consultation_reminder",
            consultation_id,
            scheduled_at.isoformat(),
            defer_until=remind_at,
            job_id=f"consultation-reminder:{consultation_id}:{int(scheduled_at.timestamp())}",
        )


@lru_cache
def get_task_queue_service() -> TaskQueueService:
    """Get cached task queue service instance."""
    return TaskQueueService()
