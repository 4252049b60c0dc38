from __future__ import annotations

import json

import pytest

import main
from core import CurationRun, RunStatus
from orchestrator import runtime
from sources import QuotaTracker
from storage import InMemoryCurationStore


@pytest.fixture
def store():
    runtime.reset_runtime()
    memory = InMemoryCurationStore()
    runtime._INSTANCES["store"] = memory
    yield memory
    runtime.reset_runtime()


def _output(capsys):
    return json.loads(capsys.readouterr().out)


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        main.build_parser().parse_args([])


def test_feedback_command_prints_performance(store, capsys) -> None:
    code = main.main(
        ["feedback", "--user-id", "u1", "--instructor", "Craig Jones", "--video-id", "v1", "--action", "clicked"]
    )

    assert code == 0
    payload = _output(capsys)
    assert payload["instructor_name"] == "Craig Jones"
    assert payload["total_clicks"] == 1
    assert store.get_user_profile("u1").favorite_instructors == ["Craig Jones"]


def test_invalid_feedback_action_exits_nonzero(store, capsys) -> None:
    code = main.main(
        ["feedback", "--user-id", "u1", "--instructor", "Craig Jones", "--video-id", "v1", "--action", "loved_it"]
    )

    assert code == 1
    assert "error" in _output(capsys)


def test_recover_run_and_status(store, capsys) -> None:
    store.create_run(CurationRun(id="run_1", status=RunStatus.RUNNING))

    assert main.main(["recover-run", "--run-id", "run_1"]) == 0
    assert _output(capsys)["status"] == "failed"

    assert main.main(["recover-run", "--run-id", "run_1"]) == 1
    assert _output(capsys)["type"] == "RunStateError"

    assert main.main(["recovery-status"]) == 0
    status = _output(capsys)
    assert status["running_count"] == 0
    assert status["healthy"] is True


def test_sweep_loop_runs_requested_iterations(store, capsys) -> None:
    assert main.main(["sweep-loop", "--iterations", "1"]) == 0

    report = _output(capsys)
    assert report["recovered"] == []
    assert report["errors"] == []


def test_quota_command_reports_usage_from_earlier_process(store, capsys) -> None:
    QuotaTracker(store=store).record_call("search", count=2)

    assert main.main(["quota"]) == 0

    payload = _output(capsys)
    assert payload["units_used"] == 200
    assert payload["units_remaining"] == 9800
