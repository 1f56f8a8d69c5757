"""Best-effort batches of independent registry writes.

Every task runs even when an earlier one fails, and every outcome is
returned to the caller instead of being dropped.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from ..utils import mask_token

logger = logging.getLogger(__name__)


@dataclass
class TaskOutcome:
    """Result of one registry write."""
    action: str  # delete, refresh
    registration_id: str
    success: bool
    error: Optional[str] = None


PendingTask = Tuple[str, str, Callable[[], Awaitable[object]]]


async def run_tasks(tasks: List[PendingTask]) -> List[TaskOutcome]:
    """Run (action, registration_id, call) tasks and collect all outcomes."""
    outcomes: List[TaskOutcome] = []
    for action, registration_id, call in tasks:
        try:
            await call()
            outcomes.append(TaskOutcome(action=action, registration_id=registration_id, success=True))
        except Exception as e:
            logger.error(f"Registry {action} failed for {mask_token(registration_id)}: {e}")
            outcomes.append(TaskOutcome(
                action=action,
                registration_id=registration_id,
                success=False,
                error=str(e),
            ))
    return outcomes
