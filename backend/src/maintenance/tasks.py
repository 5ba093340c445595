"""Celery tasks for authorization store maintenance.

Tasks:
- cleanup_expired_data_task: hourly purge of expired permission cache rows
  and audit entries older than AUDIT_RETENTION_DAYS
"""

import logging
from typing import Any, Dict

from celery import shared_task

from authz.wiring import get_access_evaluator

logger = logging.getLogger(__name__)


@shared_task(name="maintenance.cleanup_expired_data", bind=True)
def cleanup_expired_data_task(self) -> Dict[str, Any]:
    """Purge expired cache rows and audit entries past retention.

    Idempotent: a second run right after the first removes nothing.
    Failures are reported in the result, the task itself always completes.

    Example Celery Beat schedule configuration:
        from celery.schedules import crontab

        celery_app.conf.beat_schedule = {
            'authz-cleanup-hourly': {
                'task': 'maintenance.cleanup_expired_data',
                'schedule': crontab(minute=15),
            },
        }
    """
    logger.info("Authorization cleanup task started")

    result = get_access_evaluator().cleanup_expired_data()
    result["status"] = "failed" if result["errors"] else "completed"

    if result["errors"]:
        logger.error("Authorization cleanup finished with errors", extra={"errors": result["errors"]})
    else:
        logger.info("Authorization cleanup task completed successfully")
    return result
