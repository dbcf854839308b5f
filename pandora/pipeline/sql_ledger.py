import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .ledger import CachedSkillOutput, RunKind, RunStatus, RunUpdate, utc_now

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class AgentRun(Base):
    __tablename__ = 'agent_runs'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16))
    subject_id: Mapped[str] = mapped_column(index=True)
    workspace_id: Mapped[str | None] = mapped_column(index=True)
    status: Mapped[str] = mapped_column(String(16))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error: Mapped[str | None] = mapped_column(Text)
    # In-place mutations of JSON columns are not tracked; always assign new values.
    skill_results: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    synthesized_output: Mapped[str | None] = mapped_column(Text)
    token_usage: Mapped[dict[str, int] | None] = mapped_column(JSON)
    evidence: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    duration_ms: Mapped[int | None] = mapped_column(Integer)


class SkillRun(Base):
    __tablename__ = 'skill_runs'
    __table_args__ = (
        Index('ix_skill_runs_workspace_skill_completed', 'workspace_id', 'skill_id', 'completed_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    run_id: Mapped[str | None] = mapped_column(String(36))
    workspace_id: Mapped[str] = mapped_column()
    skill_id: Mapped[str] = mapped_column()
    status: Mapped[str] = mapped_column(String(16))
    output: Mapped[str] = mapped_column(Text)
    summary: Mapped[str] = mapped_column(Text)
    token_usage: Mapped[int] = mapped_column(Integer)
    evidence: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def _dump_json(value: Any) -> str:
    # Evidence carries CRM values such as close dates and decimal amounts.
    return json.dumps(value, ensure_ascii=False, default=str)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class SqlRunLedger:
    """``RunLedger`` persisted through SQLAlchemy's async ORM.

    Engines built outside :meth:`from_url` should pass the same
    ``json_serializer`` so evidence with dates and decimals can be stored.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_maker = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> 'SqlRunLedger':
        return cls(create_async_engine(url, echo=echo, json_serializer=_dump_json))

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def insert_run(
            self,
            run_id: str,
            kind: RunKind,
            subject_id: str,
            workspace_id: str | None,
            status: RunStatus = RunStatus.RUNNING,
    ) -> None:
        async with self.session_maker() as session:
            session.add(AgentRun(
                id=run_id,
                kind=kind.value,
                subject_id=subject_id,
                workspace_id=workspace_id,
                status=status.value,
                started_at=utc_now(),
            ))
            await session.commit()

    async def update_run(self, run_id: str, update: RunUpdate) -> None:
        async with self.session_maker() as session:
            row = await session.get(AgentRun, run_id)
            if row is None:
                logger.warning(f"Ignoring update for unknown run {run_id}")
                return
            row.status = update.status.value
            if update.status.terminal:
                row.completed_at = utc_now()
            if update.error is not None:
                row.error = update.error
            if update.skill_results is not None:
                row.skill_results = list(update.skill_results)
            if update.synthesized_output is not None:
                row.synthesized_output = update.synthesized_output
            if update.token_usage is not None:
                row.token_usage = dict(update.token_usage)
            if update.evidence is not None:
                row.evidence = update.evidence
            if update.duration_ms is not None:
                row.duration_ms = update.duration_ms
            await session.commit()

    async def get_run(self, run_id: str) -> AgentRun | None:
        async with self.session_maker() as session:
            return await session.get(AgentRun, run_id)

    async def find_recent_completed_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            within_minutes: float,
    ) -> CachedSkillOutput | None:
        cutoff = utc_now() - timedelta(minutes=within_minutes)
        stmt = (
            select(SkillRun)
            .where(
                SkillRun.workspace_id == workspace_id,
                SkillRun.skill_id == skill_id,
                SkillRun.status == RunStatus.COMPLETED.value,
                SkillRun.completed_at >= cutoff,
            )
            .order_by(SkillRun.completed_at.desc())
            .limit(1)
        )
        async with self.session_maker() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CachedSkillOutput(
            skill_id=row.skill_id,
            output=row.output,
            summary=row.summary,
            token_usage=row.token_usage,
            evidence=row.evidence,
            completed_at=_as_utc(row.completed_at),
        )

    async def record_skill_output(
            self,
            workspace_id: str,
            skill_id: str,
            output: str,
            summary: str,
            token_usage: int,
            evidence: dict[str, Any] | None,
            *,
            run_id: str | None = None,
    ) -> None:
        async with self.session_maker() as session:
            session.add(SkillRun(
                run_id=run_id,
                workspace_id=workspace_id,
                skill_id=skill_id,
                status=RunStatus.COMPLETED.value,
                output=output,
                summary=summary,
                token_usage=token_usage,
                evidence=evidence,
                completed_at=utc_now(),
            ))
            await session.commit()
