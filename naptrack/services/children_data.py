"""Child schedule, session and transition storage (raw SQL over the async session)."""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_database
from ..core.errors import ConflictError
from ..db.models import ScheduleConfig, ScheduleTransition, ScheduleType, SleepSession
from .transition_tracker import MutationKind, TransitionMutation

logger = logging.getLogger(__name__)

SCHEDULES = '"naptrack"."schedules"'
SESSIONS = '"naptrack"."sleep_sessions"'
TRANSITIONS = '"naptrack"."schedule_transitions"'

# Columns written on insert. Schedules take their timestamps from the database defaults
SCHEDULE_COLUMNS = [name for name in ScheduleConfig.model_fields if name not in ("id", "created_at", "updated_at")]
# Transitions and sessions are stamped with the caller's clock
TRANSITION_COLUMNS = [name for name in ScheduleTransition.model_fields if name != "id"]
SESSION_COLUMNS = [name for name in SleepSession.model_fields if name not in ("id", "updated_at")]


def _params(model: BaseModel, columns: List[str]) -> Dict[str, Any]:
    values = {}
    for name in columns:
        value = getattr(model, name)
        values[name] = value.value if isinstance(value, Enum) else value
    return values


def _insert_sql(table: str, columns: List[str]) -> str:
    """INSERT ... RETURNING *. Timestamp columns left as None fall back to the database clock."""
    placeholders = ", ".join(
        f"COALESCE(CAST(:{name} AS TIMESTAMP), LOCALTIMESTAMP)" if name in ("created_at", "updated_at") else f":{name}"
        for name in columns
    )
    return f'INSERT INTO {table} ({", ".join(columns)}) VALUES ({placeholders}) RETURNING *'


class ChildDataManager:
    def __init__(self):
        self.database = get_database()

    # Used by: schedule_service (every read path)
    async def get_active_schedule(self, child_id: int) -> Optional[ScheduleConfig]:
        async with self.database.session() as session:
            result = await session.execute(
                text(f'''
                    SELECT * FROM {SCHEDULES}
                    WHERE child_id = :child_id AND is_active
                    LIMIT 1
                '''),
                {"child_id": child_id}
            )
            row = result.mappings().first()
            return ScheduleConfig(**row) if row else None

    # Used by: schedule_service.recommendation, schedule_service.push_readiness
    async def get_recent_sessions(self, child_id: int, since_days: int, now: datetime) -> List[SleepSession]:
        """Sessions created in the trailing window, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                text(f'''
                    SELECT * FROM {SESSIONS}
                    WHERE child_id = :child_id
                      AND created_at > :since
                      AND created_at <= :now
                    ORDER BY created_at ASC
                '''),
                {"child_id": child_id, "since": now - timedelta(days=since_days), "now": now}
            )
            return [SleepSession(**row) for row in result.mappings().all()]

    # Used by: schedule_service.recommendation
    async def get_current_session(self, child_id: int) -> Optional[SleepSession]:
        async with self.database.session() as session:
            result = await session.execute(
                text(f'''
                    SELECT * FROM {SESSIONS}
                    WHERE child_id = :child_id AND state <> 'COMPLETED'
                    ORDER BY created_at DESC
                    LIMIT 1
                '''),
                {"child_id": child_id}
            )
            row = result.mappings().first()
            return SleepSession(**row) if row else None

    # Used by: schedule_service._require_session (crib compliance, session events and corrections)
    async def get_session(self, child_id: int, session_id: int) -> Optional[SleepSession]:
        async with self.database.session() as session:
            result = await session.execute(
                text(f'SELECT * FROM {SESSIONS} WHERE id = :session_id AND child_id = :child_id'),
                {"session_id": session_id, "child_id": child_id}
            )
            row = result.mappings().first()
            return SleepSession(**row) if row else None

    # Used by: schedule_service.create_session, schedule_service.create_ad_hoc_session
    async def insert_session(self, child_id: int, session_record: SleepSession) -> SleepSession:
        values = _params(session_record, SESSION_COLUMNS)
        values["child_id"] = child_id
        async with self.database.transaction() as session:
            result = await session.execute(text(_insert_sql(SESSIONS, SESSION_COLUMNS)), values)
            return SleepSession(**result.mappings().first())

    # Used by: schedule_service.record_session_event, schedule_service.correct_session
    async def update_session(self, session_record: SleepSession) -> SleepSession:
        async with self.database.transaction() as session:
            result = await session.execute(
                text(f'''
                    UPDATE {SESSIONS}
                    SET state = :state,
                        put_down_at = :put_down_at,
                        asleep_at = :asleep_at,
                        woke_up_at = :woke_up_at,
                        out_of_crib_at = :out_of_crib_at,
                        total_minutes = :total_minutes,
                        sleep_minutes = :sleep_minutes,
                        updated_at = NOW()
                    WHERE id = :id AND child_id = :child_id
                    RETURNING *
                '''),
                {
                    "id": session_record.id,
                    "child_id": session_record.child_id,
                    "state": session_record.state.value,
                    "put_down_at": session_record.put_down_at,
                    "asleep_at": session_record.asleep_at,
                    "woke_up_at": session_record.woke_up_at,
                    "out_of_crib_at": session_record.out_of_crib_at,
                    "total_minutes": session_record.total_minutes,
                    "sleep_minutes": session_record.sleep_minutes,
                }
            )
            row = result.mappings().first()
            if row is None:
                raise ConflictError(f"Session {session_record.id} was removed concurrently")
            return SleepSession(**row)

    # Used by: schedule_service (transition endpoints)
    async def get_active_transition(self, child_id: int) -> Optional[ScheduleTransition]:
        async with self.database.session() as session:
            result = await session.execute(
                text(f'''
                    SELECT * FROM {TRANSITIONS}
                    WHERE child_id = :child_id AND completed_at IS NULL
                    ORDER BY started_at DESC
                    LIMIT 1
                '''),
                {"child_id": child_id}
            )
            row = result.mappings().first()
            return ScheduleTransition(**row) if row else None

    # Used by: tasks.sync_transition_weeks
    async def list_active_transitions(self) -> List[ScheduleTransition]:
        async with self.database.session() as session:
            result = await session.execute(
                text(f'SELECT * FROM {TRANSITIONS} WHERE completed_at IS NULL ORDER BY child_id'),
            )
            return [ScheduleTransition(**row) for row in result.mappings().all()]

    # Used by: tasks.sync_transition_weeks
    async def update_transition_week(self, transition: ScheduleTransition) -> None:
        async with self.database.transaction() as session:
            await session.execute(
                text(f'''
                    UPDATE {TRANSITIONS}
                    SET current_week = :current_week
                    WHERE id = :id AND completed_at IS NULL
                '''),
                {"id": transition.id, "current_week": transition.current_week}
            )

    # Used by: schedule_service.replace_schedule, apply_transition_mutation
    async def replace_active_schedule(self, child_id: int, config: ScheduleConfig) -> ScheduleConfig:
        try:
            async with self.database.transaction() as session:
                return await self._replace_schedule(session, child_id, config)
        except IntegrityError as e:
            logger.warning(f"Concurrent schedule replacement for child {child_id}: {e}")
            raise ConflictError("Schedule was changed concurrently") from e

    # Used by: schedule_service (start/progress/cancel transition)
    async def apply_transition_mutation(self, child_id: int, mutation: TransitionMutation) -> ScheduleTransition:
        """Write the transition and any schedule change in one database transaction."""
        try:
            async with self.database.transaction() as session:
                if mutation.kind == MutationKind.CREATE:
                    transition = await self._insert_transition(session, child_id, mutation.transition)
                elif mutation.kind == MutationKind.UPDATE:
                    transition = await self._update_transition(session, mutation.transition)
                else:
                    transition = await self._delete_transition(session, mutation.transition)

                if mutation.schedule is not None:
                    await self._replace_schedule(session, child_id, mutation.schedule)
                elif mutation.schedule_type is not None:
                    await self._restore_schedule(session, child_id, mutation.schedule_type)
        except IntegrityError as e:
            logger.warning(f"Transition {mutation.kind.value} for child {child_id} conflicted: {e}")
            raise ConflictError("A transition is already in progress for this child") from e

        logger.info(f"Applied transition {mutation.kind.value} for child {child_id} (transition {transition.id})")
        return transition

    async def _insert_transition(
            self,
            session: AsyncSession,
            child_id: int,
            transition: ScheduleTransition
    ) -> ScheduleTransition:
        values = _params(transition, TRANSITION_COLUMNS)
        values["child_id"] = child_id
        result = await session.execute(text(_insert_sql(TRANSITIONS, TRANSITION_COLUMNS)), values)
        return ScheduleTransition(**result.mappings().first())

    async def _update_transition(self, session: AsyncSession, transition: ScheduleTransition) -> ScheduleTransition:
        result = await session.execute(
            text(f'''
                UPDATE {TRANSITIONS}
                SET current_week = :current_week,
                    current_nap_time = :current_nap_time,
                    last_pushed_at = :last_pushed_at,
                    completed_at = :completed_at,
                    notes = :notes,
                    updated_at = COALESCE(:updated_at, NOW())
                WHERE id = :id AND completed_at IS NULL
                RETURNING *
            '''),
            {
                "id": transition.id,
                "current_week": transition.current_week,
                "current_nap_time": transition.current_nap_time,
                "last_pushed_at": transition.last_pushed_at,
                "completed_at": transition.completed_at,
                "notes": transition.notes,
                "updated_at": transition.updated_at,
            }
        )
        row = result.mappings().first()
        if row is None:
            raise ConflictError(f"Transition {transition.id} is no longer active")
        return ScheduleTransition(**row)

    async def _delete_transition(self, session: AsyncSession, transition: ScheduleTransition) -> ScheduleTransition:
        result = await session.execute(
            text(f'DELETE FROM {TRANSITIONS} WHERE id = :id AND completed_at IS NULL RETURNING *'),
            {"id": transition.id}
        )
        row = result.mappings().first()
        if row is None:
            raise ConflictError(f"Transition {transition.id} is no longer active")
        return ScheduleTransition(**row)

    async def _replace_schedule(self, session: AsyncSession, child_id: int, config: ScheduleConfig) -> ScheduleConfig:
        await session.execute(
            text(f'UPDATE {SCHEDULES} SET is_active = FALSE, updated_at = NOW() WHERE child_id = :child_id AND is_active'),
            {"child_id": child_id}
        )
        values = _params(config, SCHEDULE_COLUMNS)
        values["child_id"] = child_id
        values["is_active"] = True
        result = await session.execute(text(_insert_sql(SCHEDULES, SCHEDULE_COLUMNS)), values)
        created = ScheduleConfig(**result.mappings().first())
        logger.info(f"Child {child_id} now on {created.type.value} schedule {created.id}")
        return created

    async def _restore_schedule(self, session: AsyncSession, child_id: int, schedule_type: ScheduleType) -> None:
        """Reactivate the newest stored schedule of the given type, or retype the active one if none exists."""
        result = await session.execute(
            text(f'''
                SELECT id FROM {SCHEDULES}
                WHERE child_id = :child_id AND type = :type AND NOT is_active
                ORDER BY created_at DESC
                LIMIT 1
            '''),
            {"child_id": child_id, "type": schedule_type.value}
        )
        previous = result.first()
        if previous is None:
            await session.execute(
                text(f'UPDATE {SCHEDULES} SET type = :type, updated_at = NOW() WHERE child_id = :child_id AND is_active'),
                {"child_id": child_id, "type": schedule_type.value}
            )
            return

        await session.execute(
            text(f'UPDATE {SCHEDULES} SET is_active = FALSE, updated_at = NOW() WHERE child_id = :child_id AND is_active'),
            {"child_id": child_id}
        )
        await session.execute(
            text(f'UPDATE {SCHEDULES} SET is_active = TRUE, updated_at = NOW() WHERE id = :id'),
            {"id": previous[0]}
        )
