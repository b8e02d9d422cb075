"""Celery task for scheduled tenant reconciliation.

Tasks:
- reconciliation_task: periodic run, dry run unless LEGACY_ROW_POLICY is "adopt"

Example Celery Beat schedule configuration:
    from celery.schedules import crontab

    celery_app.conf.beat_schedule = {
        'tenant-reconciliation-nightly': {
            'task': 'reconciliation.run',
            'schedule': crontab(hour=3, minute=0),
        },
    }
"""

import logging
from typing import Any, Dict, Optional

from celery import shared_task

from config import get_settings
from .service import run_reconciliation

logger = logging.getLogger(__name__)


@shared_task(name="reconciliation.run", bind=True)
def reconciliation_task(self, dry_run: Optional[bool] = None, actor: str = "celery") -> Dict[str, Any]:
    """Run reconciliation across all tenants.

    Args:
        dry_run: Force dry run (True) or apply (False). By default the run
            applies only when LEGACY_ROW_POLICY is "adopt".
        actor: Recorded in the audit log

    Returns:
        Dict with the report summary

    Raises:
        TenantBindingError: If the database stays unavailable (Celery may retry)
    """
    from database import session_binder

    if dry_run is None:
        dry_run = get_settings().LEGACY_ROW_POLICY != "adopt"

    logger.info("Tenant reconciliation task started", extra={"dry_run": dry_run})
    report = run_reconciliation(session_binder, dry_run=dry_run, actor=actor)

    result = {"status": "completed", **report.summary()}
    logger.info("Tenant reconciliation task completed", extra=result)
    return result
