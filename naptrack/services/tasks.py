"""Scheduled task: keeps each active transition's stored week in step with elapsed days."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .children_data import ChildDataManager
from .schedule_service import local_now
from .transition_tracker import sync_transition_week

logger = logging.getLogger(__name__)


# Used by: scheduler.py (every TRANSITION_SYNC_INTERVAL)
async def sync_transition_weeks(store=None, now: Optional[datetime] = None) -> Dict[str, Any]:
    store = store if store is not None else ChildDataManager()
    now = now or local_now()

    transitions = await store.list_active_transitions()
    if not transitions:
        logger.debug("No active transitions - nothing to sync")
        return {"updated": 0, "failed": 0, "total": 0}

    updated = failed = 0
    for transition in transitions:
        synced = sync_transition_week(transition, now)
        if synced is None:
            continue
        try:
            await store.update_transition_week(synced)
            updated += 1
            logger.info(
                f"Transition {transition.id} (child {transition.child_id}) "
                f"moved to week {synced.current_week}"
            )
        except Exception as e:
            failed += 1
            logger.error(f"Failed to sync week for transition {transition.id}: {e}")

    logger.info(f"Transition week sync: {updated} updated, {failed} failed, {len(transitions)} total")
    return {"updated": updated, "failed": failed, "total": len(transitions)}
