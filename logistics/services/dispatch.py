"""
LOGISTICS App - Dispatch Service for FLEET-DISPATCH

Offers a newly created job to every eligible courier.

Eligible courier = holds an open rental AND has no assigned job that is
not yet delivered.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from kombu import Connection

from core.exceptions import DispatchPartialFailure
from core.ledger import LedgerStore
from logistics.messaging import publish_notification

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    job_id: int
    notified: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def error(self) -> Optional[DispatchPartialFailure]:
        if not self.failed:
            return None
        return DispatchPartialFailure(self.job_id, self.failed)


def find_eligible_couriers(ledger=LedgerStore) -> List[str]:
    """Courier ids eligible for a new offer, ascending."""
    return ledger.get_eligible_courier_ids()


def dispatch_job(job_id: int, connection: Optional[Connection] = None,
                 ledger=LedgerStore) -> DispatchResult:
    """
    Publish one offer per eligible courier onto its private channel.

    A publish failure for one courier is logged and recorded in the
    result; the remaining couriers are still notified. Never waits for
    consumers.

    Args:
        job_id: Job to offer (must still be OFFERED)
        connection: Broker connection; defaults to the Celery app's pool

    Returns:
        DispatchResult (its .error is a DispatchPartialFailure when any
        publish failed)
    """
    result = DispatchResult(job_id=job_id)

    job = ledger.get_job(job_id)
    if not job.is_offered:
        logger.warning(f"[DISPATCH] Job {job_id} is not OFFERED (status: {job.status}), skipping")
        return result

    couriers = find_eligible_couriers(ledger)
    if not couriers:
        logger.warning(f"[DISPATCH] No eligible couriers for job {job_id}")
        return result

    for courier_id in couriers:
        try:
            publish_notification(job_id, courier_id, connection=connection)
        except Exception as e:
            logger.error(f"[DISPATCH] Job {job_id} → courier {courier_id} publish failed: {e}")
            result.failed[courier_id] = str(e)
            continue
        result.notified.append(courier_id)

    logger.info(
        f"[DISPATCH] Job {job_id} dispatched to {len(result.notified)} couriers"
        + (f" ({len(result.failed)} failed)" if result.failed else "")
    )

    return result
