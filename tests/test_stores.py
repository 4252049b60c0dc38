from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from core import (
    ABTestExperiment,
    CurationRun,
    DailyMetrics,
    DifficultyLevel,
    EmergingTechnique,
    ExperimentStatus,
    FeedbackAction,
    FeedbackEvent,
    InstructorPerformance,
    KnowledgeRecord,
    RecommendationOutcome,
    RecordStatus,
    RunStatus,
    UserLearningProfile,
    VideoInteraction,
)
from storage import InMemoryCurationStore, SqlCurationStore, get_store


NOW = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryCurationStore()
        return
    sql = SqlCurationStore(f"sqlite:///{tmp_path / 'curation.db'}")
    yield sql
    sql.close()


def _record(record_id: str, video_id: str, **kwargs) -> KnowledgeRecord:
    return KnowledgeRecord(
        id=record_id,
        source_url=f"https://www.youtube.com/watch?v={video_id}",
        video_id=video_id,
        **kwargs,
    )


def test_run_status_compare_and_set(store) -> None:
    store.create_run(CurationRun(id="run_1"))

    started = store.update_run(
        "run_1", {"status": RunStatus.RUNNING, "started_at": NOW}, expected_status=RunStatus.PENDING
    )
    stale = store.update_run("run_1", {"status": RunStatus.COMPLETED}, expected_status=RunStatus.PENDING)

    assert started.status == RunStatus.RUNNING
    assert started.started_at == NOW
    assert stale is None
    assert store.get_run("run_1").status == RunStatus.RUNNING
    assert store.update_run("run_missing", {"status": RunStatus.FAILED}) is None


def test_list_runs_filters(store) -> None:
    store.create_run(CurationRun(id="run_old", status=RunStatus.RUNNING, started_at=NOW - timedelta(hours=5)))
    store.create_run(CurationRun(id="run_new", status=RunStatus.RUNNING, started_at=NOW))
    store.create_run(CurationRun(id="run_done", status=RunStatus.FAILED, completed_at=NOW))

    stuck = store.list_runs(status=RunStatus.RUNNING, started_before=NOW - timedelta(hours=2))
    recent = store.list_runs(completed_after=NOW - timedelta(days=1))

    assert [run.id for run in stuck] == ["run_old"]
    assert [run.id for run in recent] == ["run_done"]


def test_run_events_require_existing_run(store) -> None:
    store.create_run(CurationRun(id="run_1"))

    assert store.append_run_event("run_1", "search", "'armbar': 3 results") is True
    assert store.append_run_event("run_missing", "search", "nope") is False
    events = store.list_run_events("run_1")
    assert [(event.event, event.message) for event in events] == [("search", "'armbar': 3 results")]


def test_run_slot_is_exclusive(store) -> None:
    assert store.acquire_run_slot("run_a") is True
    assert store.acquire_run_slot("run_a") is True
    assert store.acquire_run_slot("run_b") is False
    assert store.release_run_slot("run_b") is False
    assert store.get_run_slot_holder() == "run_a"

    assert store.release_run_slot("run_b", force=True) is True
    assert store.get_run_slot_holder() is None
    assert store.acquire_run_slot("run_b") is True


def test_source_url_is_unique(store) -> None:
    assert store.insert_knowledge_record(_record("kr_1", "vid1", technique_name="Armbar")) is True
    assert store.insert_knowledge_record(_record("kr_2", "vid1", technique_name="Armbar")) is False

    assert store.has_source_url("https://www.youtube.com/watch?v=vid1")
    assert not store.has_source_url("https://www.youtube.com/watch?v=vid2")
    assert len(store.list_knowledge_records()) == 1


def test_counts_respect_status_and_filters(store) -> None:
    store.insert_knowledge_record(
        _record("kr_1", "v1", technique_name="Armbar", difficulty_level=DifficultyLevel.BEGINNER)
    )
    store.insert_knowledge_record(
        _record("kr_2", "v2", technique_name="Armbar", difficulty_level=DifficultyLevel.ADVANCED)
    )
    store.insert_knowledge_record(_record("kr_3", "v3", technique_name="Kimura", instructor_name="John Danaher"))

    assert store.count_knowledge_records(technique_name="Armbar") == 2
    assert store.count_knowledge_records(difficulty_level=DifficultyLevel.BEGINNER) == 1
    assert [r.id for r in store.list_knowledge_records(instructor_name="John Danaher")] == ["kr_3"]

    assert store.set_record_status("kr_2", RecordStatus.UNAVAILABLE) is True
    assert store.set_record_status("kr_missing", RecordStatus.UNAVAILABLE) is False
    assert store.count_knowledge_records(technique_name="Armbar") == 1
    assert store.count_knowledge_records(technique_name="Armbar", status=None) == 2


def test_emerging_technique_upsert(store) -> None:
    store.upsert_emerging_technique(EmergingTechnique(technique_name="imanari roll", video_count=1))
    store.upsert_emerging_technique(EmergingTechnique(technique_name="imanari roll", video_count=4))

    assert store.get_emerging_technique("imanari roll").video_count == 4
    assert store.get_emerging_technique("unknown") is None


def test_feedback_round_trip_and_window(store) -> None:
    event = FeedbackEvent(
        id="fb_1",
        user_id="u1",
        video_id="v1",
        instructor="Lachlan Giles",
        action=FeedbackAction.CLICKED,
        created_at=NOW,
    )
    profile = UserLearningProfile(user_id="u1", favorite_instructors=["Lachlan Giles"])
    performance = InstructorPerformance(instructor_name="Lachlan Giles", total_sent=1, total_clicks=1)

    store.record_feedback(event, profile, performance)

    assert store.get_user_profile("u1").favorite_instructors == ["Lachlan Giles"]
    assert store.get_instructor_performance("Lachlan Giles").total_clicks == 1
    assert len(store.list_feedback_events(user_id="u1", since=NOW - timedelta(days=1))) == 1
    assert store.list_feedback_events(since=NOW + timedelta(minutes=1)) == []
    assert store.list_feedback_events(until=NOW) == []


def test_daily_metrics_upsert(store) -> None:
    day = date(2026, 2, 28)
    store.upsert_daily_metrics(DailyMetrics(day=day, total_events=3, alerts=["BAD rate above 5%: 33.33%"]))
    store.upsert_daily_metrics(DailyMetrics(day=day, total_events=4))

    saved = store.get_daily_metrics(day)

    assert saved.total_events == 4
    assert saved.alerts == []


def test_outcome_evaluation_is_saved_once(store) -> None:
    store.add_recommendation_outcome(RecommendationOutcome(id="rec_1", user_id="u1", video_id="v1", created_at=NOW))

    first = store.save_outcome_evaluation("rec_1", {"overall_quality": 80.0, "evaluated_at": NOW})
    second = store.save_outcome_evaluation("rec_1", {"overall_quality": 10.0, "evaluated_at": NOW})

    assert first.overall_quality == 80.0
    assert second is None
    assert store.get_recommendation_outcome("rec_1").overall_quality == 80.0
    assert store.list_recommendation_outcomes(unevaluated_only=True) == []
    assert [o.id for o in store.list_recommendation_outcomes(evaluated_only=True)] == ["rec_1"]


def test_latest_interaction_wins(store) -> None:
    store.add_video_interaction(
        VideoInteraction(user_id="u1", video_id="v1", clicked=True, created_at=NOW - timedelta(hours=1))
    )
    store.add_video_interaction(VideoInteraction(user_id="u1", video_id="v1", completed=True, created_at=NOW))

    latest = store.get_latest_interaction("u1", "v1")

    assert latest.completed is True
    assert store.get_latest_interaction("u1", "other") is None


def test_experiment_update(store) -> None:
    store.create_experiment(ABTestExperiment(id="exp_1", name="ranking", started_at=NOW))

    updated = store.update_experiment("exp_1", {"status": ExperimentStatus.COMPLETED, "ended_at": NOW})

    assert updated.status == ExperimentStatus.COMPLETED
    assert store.get_experiment("exp_1").ended_at == NOW
    assert store.update_experiment("exp_missing", {"status": ExperimentStatus.COMPLETED}) is None


def test_get_store_selects_adapter(tmp_path) -> None:
    assert isinstance(get_store("memory://"), InMemoryCurationStore)
    sql = get_store(f"sqlite:///{tmp_path / 'picked.db'}", echo=False)
    assert isinstance(sql, SqlCurationStore)
    sql.close()


def test_sqlite_file_store_creates_parent_directory(tmp_path) -> None:
    sql = SqlCurationStore(f"sqlite:///{tmp_path / 'data' / 'nested' / 'curation.db'}")
    sql.create_run(CurationRun(id="run_1"))
    sql.close()

    assert (tmp_path / "data" / "nested" / "curation.db").exists()
