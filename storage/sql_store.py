"""
SQL Curation Store
SQLAlchemy 2.0 adapter for the curation tables (sqlite, postgres, ...).
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from core import (
    ABTestExperiment,
    CurationRun,
    DailyMetrics,
    DifficultyLevel,
    EmergingTechnique,
    FeedbackEvent,
    InstructorPerformance,
    KnowledgeRecord,
    QuotaUsage,
    RecommendationOutcome,
    RecordStatus,
    RunEvent,
    RunStatus,
    UserLearningProfile,
    VideoInteraction,
)
from utils.exceptions import StorageError
from .base import DEFAULT_RUN_SLOT, CurationStore


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

UtcDateTime = DateTime(timezone=True)


class Base(DeclarativeBase):
    pass


class CurationRunRow(Base):
    __tablename__ = "curation_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    trigger_source: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), index=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)
    started_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    candidates_evaluated: Mapped[int] = mapped_column(Integer, default=0)
    candidates_accepted: Mapped[int] = mapped_column(Integer, default=0)
    candidates_rejected: Mapped[int] = mapped_column(Integer, default=0)
    searches_performed: Mapped[int] = mapped_column(Integer, default=0)
    skipped_duration: Mapped[int] = mapped_column(Integer, default=0)
    skipped_duplicates: Mapped[int] = mapped_column(Integer, default=0)
    skipped_quota: Mapped[int] = mapped_column(Integer, default=0)
    skipped_other: Mapped[int] = mapped_column(Integer, default=0)
    stopped_reason: Mapped[Optional[str]] = mapped_column(String(64))
    error_message: Mapped[Optional[str]] = mapped_column(Text)


class RunEventRow(Base):
    __tablename__ = "curation_run_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(64), index=True)
    ts: Mapped[datetime] = mapped_column(UtcDateTime)
    event: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text, default="")


class RunSlotRow(Base):
    __tablename__ = "curation_run_slots"

    slot: Mapped[str] = mapped_column(String(64), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64))
    acquired_at: Mapped[datetime] = mapped_column(UtcDateTime)


class KnowledgeRecordRow(Base):
    __tablename__ = "knowledge_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    source_url: Mapped[str] = mapped_column(String(512), unique=True)
    video_id: Mapped[str] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(Text, default="")
    channel_title: Mapped[str] = mapped_column(String(256), default="")
    instructor_name: Mapped[Optional[str]] = mapped_column(String(256), index=True)
    technique_name: Mapped[Optional[str]] = mapped_column(String(256), index=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    dimension_scores: Mapped[Dict[str, Any]] = mapped_column(JSON)
    final_score: Mapped[float] = mapped_column(Float, default=0.0)
    boosts_applied: Mapped[List[str]] = mapped_column(JSON)
    good_because: Mapped[List[str]] = mapped_column(JSON)
    instructor_tier: Mapped[str] = mapped_column(String(32))
    difficulty_level: Mapped[Optional[str]] = mapped_column(String(32))
    quality_estimate: Mapped[float] = mapped_column(Float, default=0.0)
    belt_levels: Mapped[List[str]] = mapped_column(JSON)
    gi_type: Mapped[Optional[str]] = mapped_column(String(16))
    run_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16), index=True)
    published_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


class EmergingTechniqueRow(Base):
    __tablename__ = "emerging_techniques"

    technique_name: Mapped[str] = mapped_column(String(256), primary_key=True)
    video_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16))
    confidence_score: Mapped[float] = mapped_column(Float, default=0.0)
    first_seen_at: Mapped[datetime] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


class UserLearningProfileRow(Base):
    __tablename__ = "user_learning_profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    favorite_instructors: Mapped[List[str]] = mapped_column(JSON)
    avoid_instructors: Mapped[List[str]] = mapped_column(JSON)
    preferred_positions: Mapped[List[str]] = mapped_column(JSON)
    learning_style: Mapped[Optional[str]] = mapped_column(String(64))
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


class InstructorPerformanceRow(Base):
    __tablename__ = "instructor_performance"

    instructor_name: Mapped[str] = mapped_column(String(256), primary_key=True)
    total_sent: Mapped[int] = mapped_column(Integer, default=0)
    total_clicks: Mapped[int] = mapped_column(Integer, default=0)
    total_skips: Mapped[int] = mapped_column(Integer, default=0)
    total_bad_ratings: Mapped[int] = mapped_column(Integer, default=0)
    click_rate: Mapped[float] = mapped_column(Float, default=0.0)
    skip_rate: Mapped[float] = mapped_column(Float, default=0.0)
    bad_rate: Mapped[float] = mapped_column(Float, default=0.0)
    credibility_score: Mapped[float] = mapped_column(Float, default=20.0)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


class FeedbackEventRow(Base):
    __tablename__ = "feedback_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    video_id: Mapped[str] = mapped_column(String(64))
    instructor: Mapped[str] = mapped_column(String(256))
    technique: Mapped[Optional[str]] = mapped_column(String(256))
    action: Mapped[str] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, index=True)


class DailyMetricsRow(Base):
    __tablename__ = "daily_metrics"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    total_events: Mapped[int] = mapped_column(Integer, default=0)
    total_users: Mapped[int] = mapped_column(Integer, default=0)
    click_rate: Mapped[float] = mapped_column(Float, default=0.0)
    skip_rate: Mapped[float] = mapped_column(Float, default=0.0)
    bad_rate: Mapped[float] = mapped_column(Float, default=0.0)
    diversity_score: Mapped[float] = mapped_column(Float, default=0.0)
    duplicate_instructor_violations: Mapped[int] = mapped_column(Integer, default=0)
    avg_quality_score: Mapped[Optional[float]] = mapped_column(Float)
    alerts: Mapped[List[str]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)


class RecommendationOutcomeRow(Base):
    __tablename__ = "recommendation_outcomes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    video_id: Mapped[str] = mapped_column(String(64))
    algorithm_variant: Mapped[str] = mapped_column(String(64), index=True)
    clicked: Mapped[bool] = mapped_column(default=False)
    helpful: Mapped[Optional[bool]] = mapped_column()
    solved_problem: Mapped[bool] = mapped_column(default=False)
    asked_same_problem_again: Mapped[bool] = mapped_column(default=False)
    follow_up_sentiment: Mapped[Optional[str]] = mapped_column(String(32))
    engagement_prediction: Mapped[Optional[float]] = mapped_column(Float)
    relevance_score: Mapped[Optional[float]] = mapped_column(Float)
    immediate_quality: Mapped[Optional[float]] = mapped_column(Float)
    short_term_quality: Mapped[Optional[float]] = mapped_column(Float)
    long_term_quality: Mapped[Optional[float]] = mapped_column(Float)
    overall_quality: Mapped[Optional[float]] = mapped_column(Float)
    actual_engagement: Mapped[Optional[float]] = mapped_column(Float)
    actual_learning_gain: Mapped[Optional[float]] = mapped_column(Float)
    prediction_accuracy: Mapped[Optional[float]] = mapped_column(Float)
    why_it_worked: Mapped[List[str]] = mapped_column(JSON)
    what_to_replicate: Mapped[List[str]] = mapped_column(JSON)
    what_to_avoid: Mapped[List[str]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, index=True)
    evaluated_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)


class VideoInteractionRow(Base):
    __tablename__ = "video_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    video_id: Mapped[str] = mapped_column(String(64), index=True)
    clicked: Mapped[bool] = mapped_column(default=False)
    watch_duration_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    completed: Mapped[bool] = mapped_column(default=False)
    saved_to_library: Mapped[bool] = mapped_column(default=False)
    shared: Mapped[bool] = mapped_column(default=False)
    thumbs_up: Mapped[bool] = mapped_column(default=False)
    thumbs_down: Mapped[bool] = mapped_column(default=False)
    rewatch_count: Mapped[int] = mapped_column(Integer, default=0)
    problem_solved: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)


class ABTestExperimentRow(Base):
    __tablename__ = "ab_test_experiments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), default="")
    control_variant: Mapped[str] = mapped_column(String(64))
    treatment_variant: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16))
    control: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    treatment: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    winner: Mapped[Optional[str]] = mapped_column(String(16))
    conclusion: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(UtcDateTime)
    ended_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime)


class QuotaUsageRow(Base):
    __tablename__ = "api_quota_usage"

    quota_day: Mapped[str] = mapped_column(String(10), primary_key=True)
    calls: Mapped[Dict[str, int]] = mapped_column(JSON)
    units_used: Mapped[int] = mapped_column(Integer, default=0)
    daily_limit: Mapped[int] = mapped_column(Integer, default=10000)
    exhausted: Mapped[bool] = mapped_column(default=False)
    reset_at: Mapped[datetime] = mapped_column(UtcDateTime)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """sqlite drops tzinfo; everything is stored as UTC and re-tagged on read."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def _values(model: BaseModel) -> Dict[str, Any]:
    return {key: _plain(value) for key, value in model.model_dump().items()}


def _to_model(model_cls: Type[ModelT], row: Base, exclude: Iterable[str] = ()) -> ModelT:
    skipped = set(exclude)
    data: Dict[str, Any] = {}
    for column in row.__table__.columns:
        if column.key in skipped:
            continue
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = _as_utc(value)
        data[column.key] = value
    return model_cls.model_validate(data)


def _ensure_sqlite_dir(database_url: str) -> None:
    path = make_url(database_url).database
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


class SqlCurationStore(CurationStore):
    """Curation store backed by any SQLAlchemy-supported database."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        engine_kwargs: Dict[str, Any] = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in {"sqlite://", "sqlite:///:memory:"}:
                engine_kwargs["poolclass"] = StaticPool
            else:
                _ensure_sqlite_dir(database_url)
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.database_url = database_url
        self._engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self._engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
        Base.metadata.create_all(bind=self._engine)
        logger.info(f"[SqlCurationStore] Tables ready on {self._engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        """Transactional scope: commit on success, rollback on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Database operation failed: {exc}", {"url": self.database_url}) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self._engine.dispose()

    # ---- curation runs ---------------------------------------------------

    def create_run(self, run: CurationRun) -> CurationRun:
        with self._session() as session:
            session.add(CurationRunRow(**_values(run)))
        return run.model_copy(deep=True)

    def get_run(self, run_id: str) -> Optional[CurationRun]:
        with self._session() as session:
            row = session.get(CurationRunRow, run_id)
            return _to_model(CurationRun, row) if row else None

    def update_run(
        self,
        run_id: str,
        changes: Dict[str, Any],
        *,
        expected_status: Optional[RunStatus] = None,
    ) -> Optional[CurationRun]:
        values = {key: _plain(value) for key, value in changes.items()}
        with self._session() as session:
            stmt = update(CurationRunRow).where(CurationRunRow.id == run_id)
            if expected_status is not None:
                stmt = stmt.where(CurationRunRow.status == expected_status.value)
            result = session.execute(stmt.values(**values).execution_options(synchronize_session=False))
            if result.rowcount == 0:
                return None
            row = session.get(CurationRunRow, run_id, populate_existing=True)
            return _to_model(CurationRun, row) if row else None

    def list_runs(
        self,
        *,
        status: Optional[RunStatus] = None,
        started_before: Optional[datetime] = None,
        completed_after: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[CurationRun]:
        stmt = select(CurationRunRow).order_by(CurationRunRow.created_at)
        if status is not None:
            stmt = stmt.where(CurationRunRow.status == status.value)
        if started_before is not None:
            stmt = stmt.where(CurationRunRow.started_at.is_not(None), CurationRunRow.started_at < _as_utc(started_before))
        if completed_after is not None:
            stmt = stmt.where(
                CurationRunRow.completed_at.is_not(None), CurationRunRow.completed_at >= _as_utc(completed_after)
            )
        if limit:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [_to_model(CurationRun, row) for row in session.scalars(stmt)]

    def append_run_event(self, run_id: str, event: str, message: str) -> bool:
        item = RunEvent(run_id=run_id, event=event, message=message)
        with self._session() as session:
            if session.get(CurationRunRow, run_id) is None:
                return False
            session.add(RunEventRow(**_values(item)))
            return True

    def list_run_events(self, run_id: str) -> List[RunEvent]:
        stmt = select(RunEventRow).where(RunEventRow.run_id == run_id).order_by(RunEventRow.id)
        with self._session() as session:
            return [_to_model(RunEvent, row, exclude=("id",)) for row in session.scalars(stmt)]

    def acquire_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT) -> bool:
        try:
            with self._session() as session:
                row = session.get(RunSlotRow, slot)
                if row is not None:
                    return row.run_id == run_id
                session.add(RunSlotRow(slot=slot, run_id=run_id, acquired_at=_utcnow()))
            return True
        except IntegrityError:
            return False

    def release_run_slot(self, run_id: str, slot: str = DEFAULT_RUN_SLOT, *, force: bool = False) -> bool:
        with self._session() as session:
            row = session.get(RunSlotRow, slot)
            if row is None or (row.run_id != run_id and not force):
                return False
            session.delete(row)
            return True

    def get_run_slot_holder(self, slot: str = DEFAULT_RUN_SLOT) -> Optional[str]:
        with self._session() as session:
            row = session.get(RunSlotRow, slot)
            return row.run_id if row else None

    # ---- knowledge records -----------------------------------------------

    def has_source_url(self, source_url: str) -> bool:
        stmt = select(func.count()).select_from(KnowledgeRecordRow).where(KnowledgeRecordRow.source_url == source_url)
        with self._session() as session:
            return bool(session.scalar(stmt))

    def insert_knowledge_record(self, record: KnowledgeRecord) -> bool:
        if self.has_source_url(record.source_url):
            return False
        try:
            with self._session() as session:
                session.add(KnowledgeRecordRow(**_values(record)))
        except IntegrityError:
            logger.info(f"[SqlCurationStore] Duplicate source_url ignored: {record.source_url}")
            return False
        return True

    def get_knowledge_record(self, record_id: str) -> Optional[KnowledgeRecord]:
        with self._session() as session:
            row = session.get(KnowledgeRecordRow, record_id)
            return _to_model(KnowledgeRecord, row) if row else None

    def list_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        instructor_name: Optional[str] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> List[KnowledgeRecord]:
        stmt = select(KnowledgeRecordRow).order_by(KnowledgeRecordRow.created_at)
        if technique_name is not None:
            stmt = stmt.where(KnowledgeRecordRow.technique_name == technique_name)
        if instructor_name is not None:
            stmt = stmt.where(KnowledgeRecordRow.instructor_name == instructor_name)
        if status is not None:
            stmt = stmt.where(KnowledgeRecordRow.status == status.value)
        with self._session() as session:
            return [_to_model(KnowledgeRecord, row) for row in session.scalars(stmt)]

    def count_knowledge_records(
        self,
        *,
        technique_name: Optional[str] = None,
        difficulty_level: Optional[DifficultyLevel] = None,
        status: Optional[RecordStatus] = RecordStatus.ACTIVE,
    ) -> int:
        stmt = select(func.count()).select_from(KnowledgeRecordRow)
        if technique_name is not None:
            stmt = stmt.where(KnowledgeRecordRow.technique_name == technique_name)
        if difficulty_level is not None:
            stmt = stmt.where(KnowledgeRecordRow.difficulty_level == difficulty_level.value)
        if status is not None:
            stmt = stmt.where(KnowledgeRecordRow.status == status.value)
        with self._session() as session:
            return int(session.scalar(stmt) or 0)

    def set_record_status(self, record_id: str, status: RecordStatus) -> bool:
        with self._session() as session:
            row = session.get(KnowledgeRecordRow, record_id)
            if row is None:
                return False
            row.status = status.value
            row.updated_at = _utcnow()
            return True

    # ---- emerging techniques ---------------------------------------------

    def get_emerging_technique(self, technique_name: str) -> Optional[EmergingTechnique]:
        with self._session() as session:
            row = session.get(EmergingTechniqueRow, technique_name)
            return _to_model(EmergingTechnique, row) if row else None

    def upsert_emerging_technique(self, item: EmergingTechnique) -> EmergingTechnique:
        with self._session() as session:
            session.merge(EmergingTechniqueRow(**_values(item)))
        return item.model_copy()

    # ---- feedback ----------------------------------------------------------

    def record_feedback(
        self,
        event: FeedbackEvent,
        profile: UserLearningProfile,
        performance: InstructorPerformance,
    ) -> None:
        with self._session() as session:
            session.add(FeedbackEventRow(**_values(event)))
            session.merge(UserLearningProfileRow(**_values(profile)))
            session.merge(InstructorPerformanceRow(**_values(performance)))

    def get_user_profile(self, user_id: str) -> Optional[UserLearningProfile]:
        with self._session() as session:
            row = session.get(UserLearningProfileRow, user_id)
            return _to_model(UserLearningProfile, row) if row else None

    def get_instructor_performance(self, instructor_name: str) -> Optional[InstructorPerformance]:
        with self._session() as session:
            row = session.get(InstructorPerformanceRow, instructor_name)
            return _to_model(InstructorPerformance, row) if row else None

    def list_feedback_events(
        self,
        *,
        user_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[FeedbackEvent]:
        stmt = select(FeedbackEventRow).order_by(FeedbackEventRow.created_at)
        if user_id is not None:
            stmt = stmt.where(FeedbackEventRow.user_id == user_id)
        if since is not None:
            stmt = stmt.where(FeedbackEventRow.created_at >= _as_utc(since))
        if until is not None:
            stmt = stmt.where(FeedbackEventRow.created_at < _as_utc(until))
        with self._session() as session:
            return [_to_model(FeedbackEvent, row) for row in session.scalars(stmt)]

    # ---- daily metrics -----------------------------------------------------

    def upsert_daily_metrics(self, metrics: DailyMetrics) -> DailyMetrics:
        with self._session() as session:
            session.merge(DailyMetricsRow(**_values(metrics)))
        return metrics.model_copy(deep=True)

    def get_daily_metrics(self, day: date) -> Optional[DailyMetrics]:
        with self._session() as session:
            row = session.get(DailyMetricsRow, day)
            return _to_model(DailyMetrics, row) if row else None

    # ---- recommendation outcomes -----------------------------------------

    def add_recommendation_outcome(self, outcome: RecommendationOutcome) -> RecommendationOutcome:
        with self._session() as session:
            session.add(RecommendationOutcomeRow(**_values(outcome)))
        return outcome.model_copy(deep=True)

    def get_recommendation_outcome(self, outcome_id: str) -> Optional[RecommendationOutcome]:
        with self._session() as session:
            row = session.get(RecommendationOutcomeRow, outcome_id)
            return _to_model(RecommendationOutcome, row) if row else None

    def save_outcome_evaluation(self, outcome_id: str, changes: Dict[str, Any]) -> Optional[RecommendationOutcome]:
        values = {key: _plain(value) for key, value in changes.items()}
        with self._session() as session:
            stmt = (
                update(RecommendationOutcomeRow)
                .where(RecommendationOutcomeRow.id == outcome_id, RecommendationOutcomeRow.evaluated_at.is_(None))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if session.execute(stmt).rowcount == 0:
                return None
            row = session.get(RecommendationOutcomeRow, outcome_id, populate_existing=True)
            return _to_model(RecommendationOutcome, row) if row else None

    def list_recommendation_outcomes(
        self,
        *,
        since: Optional[datetime] = None,
        unevaluated_only: bool = False,
        evaluated_only: bool = False,
        variant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[RecommendationOutcome]:
        stmt = select(RecommendationOutcomeRow).order_by(RecommendationOutcomeRow.created_at)
        if since is not None:
            stmt = stmt.where(RecommendationOutcomeRow.created_at >= _as_utc(since))
        if unevaluated_only:
            stmt = stmt.where(RecommendationOutcomeRow.evaluated_at.is_(None))
        if evaluated_only:
            stmt = stmt.where(RecommendationOutcomeRow.evaluated_at.is_not(None))
        if variant is not None:
            stmt = stmt.where(RecommendationOutcomeRow.algorithm_variant == variant)
        if limit:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [_to_model(RecommendationOutcome, row) for row in session.scalars(stmt)]

    def add_video_interaction(self, interaction: VideoInteraction) -> VideoInteraction:
        with self._session() as session:
            session.add(VideoInteractionRow(**_values(interaction)))
        return interaction.model_copy()

    def get_latest_interaction(self, user_id: str, video_id: str) -> Optional[VideoInteraction]:
        stmt = (
            select(VideoInteractionRow)
            .where(VideoInteractionRow.user_id == user_id, VideoInteractionRow.video_id == video_id)
            .order_by(VideoInteractionRow.created_at.desc(), VideoInteractionRow.id.desc())
            .limit(1)
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            return _to_model(VideoInteraction, row, exclude=("id",)) if row else None

    # ---- source quota ------------------------------------------------------

    def get_quota_usage(self, quota_day: str) -> Optional[QuotaUsage]:
        with self._session() as session:
            row = session.get(QuotaUsageRow, quota_day)
            return _to_model(QuotaUsage, row) if row else None

    def save_quota_usage(self, usage: QuotaUsage) -> QuotaUsage:
        with self._session() as session:
            session.merge(QuotaUsageRow(**_values(usage)))
        return usage.model_copy(deep=True)

    # ---- experiments -------------------------------------------------------

    def create_experiment(self, experiment: ABTestExperiment) -> ABTestExperiment:
        with self._session() as session:
            session.add(ABTestExperimentRow(**_values(experiment)))
        return experiment.model_copy(deep=True)

    def get_experiment(self, experiment_id: str) -> Optional[ABTestExperiment]:
        with self._session() as session:
            row = session.get(ABTestExperimentRow, experiment_id)
            return _to_model(ABTestExperiment, row) if row else None

    def update_experiment(self, experiment_id: str, changes: Dict[str, Any]) -> Optional[ABTestExperiment]:
        values = {key: _plain(value) for key, value in changes.items()}
        with self._session() as session:
            row = session.get(ABTestExperimentRow, experiment_id)
            if row is None:
                return None
            for key, value in values.items():
                setattr(row, key, value)
            session.flush()
            return _to_model(ABTestExperiment, row)
