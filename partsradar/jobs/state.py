# partsradar/jobs/state.py
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select

from partsradar.db import SessionLocal
from partsradar.models import JobState

BOOTSTRAP_JOB = "techpowerup_initial_scraping"
CRAWL_JOB_PREFIX = "crawl:"


def crawl_job_name(part_type) -> str:
    return f"{CRAWL_JOB_PREFIX}{getattr(part_type, 'value', part_type)}"


class JobStateStore:
    """Durable per-unit job records. Rows are created on first attempt and never deleted."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def get(self, name: str) -> Optional[JobState]:
        async with self.session_factory() as s:
            return (await s.execute(select(JobState).where(JobState.job_name == name))).scalar_one_or_none()

    async def is_completed(self, name: str) -> bool:
        state = await self.get(name)
        return bool(state and state.completed and state.successful)

    async def begin_attempt(self, name: str) -> JobState:
        now = datetime.now(timezone.utc)
        async with self.session_factory() as s:
            state = (await s.execute(select(JobState).where(JobState.job_name == name))).scalar_one_or_none()
            if state is None:
                state = JobState(job_name=name, completed=False, successful=False, attempt_count=0, created_at=now)
                s.add(state)
            state.attempt_count = (state.attempt_count or 0) + 1
            state.last_attempt_at = now
            state.in_progress = True
            state.updated_at = now
            await s.commit()
            return state

    async def finish_attempt(
        self,
        name: str,
        completed: bool,
        successful: bool,
        error: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> JobState:
        now = datetime.now(timezone.utc)
        async with self.session_factory() as s:
            state = (await s.execute(select(JobState).where(JobState.job_name == name))).scalar_one()
            state.in_progress = False
            state.last_run_at = now
            state.last_error = error
            if metadata is not None:
                state.meta = {**(state.meta or {}), **metadata}
            if completed:
                state.completed = True
                state.successful = successful
                state.completed_at = now
            state.updated_at = now
            await s.commit()
            return state

    async def record_error(self, name: str, error: str) -> None:
        async with self.session_factory() as s:
            state = (await s.execute(select(JobState).where(JobState.job_name == name))).scalar_one_or_none()
            if state is None:
                return
            state.in_progress = False
            state.last_error = error
            state.updated_at = datetime.now(timezone.utc)
            await s.commit()

    async def recover_in_progress(self) -> List[str]:
        """Clear the in-progress flag left by an unclean shutdown; return the affected job names."""
        async with self.session_factory() as s:
            stale = (await s.execute(select(JobState).where(JobState.in_progress.is_(True)))).scalars().all()
            for state in stale:
                state.in_progress = False
                state.last_error = "interrupted before completion; re-queued on startup"
            await s.commit()
            return [state.job_name for state in stale]
