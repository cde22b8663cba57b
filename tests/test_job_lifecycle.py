"""Integration tests for the analysis job lifecycle: start, poll state, cancel, stream events."""

import json
import time
from collections.abc import Iterator
from functools import partial

import pytest
from fastapi.testclient import TestClient

from main import app
from receipt_insights.api.dependencies import get_backend_factory, get_scheduler_factory
from receipt_insights.services.analysis_backend import DeterministicAnalysisBackend
from receipt_insights.workers.scheduling import AsyncioScheduler, VirtualScheduler
from tests.factories import SAMPLE_EXPENSES

HTTP_200_OK = 200
HTTP_202_ACCEPTED = 202
HTTP_400_BAD_REQUEST = 400
SETTLED = ("succeeded", "failed", "timed_out", "idle")


@pytest.fixture
def client() -> Iterator[TestClient]:
    app.dependency_overrides[get_scheduler_factory] = lambda: VirtualScheduler
    with TestClient(app) as test_client:
        for expense in SAMPLE_EXPENSES:
            test_client.post("/expenses", json=expense.model_dump())
        yield test_client
    app.dependency_overrides.clear()


def poll_state(client: TestClient, owner_id: str = "user-1") -> dict:
    """Poll the state endpoint until the analysis settles."""
    for _ in range(100):
        response = client.get(f"/analysis/{owner_id}/state")
        if response.status_code != HTTP_200_OK:
            msg = f"Expected status {HTTP_200_OK}, got {response.status_code}"
            raise AssertionError(msg)
        state = response.json()
        if state["status"] in SETTLED:
            return state
        time.sleep(0.01)
    msg = f"Analysis did not settle, last state {state}"
    raise AssertionError(msg)


def test_analysis_lifecycle(client: TestClient) -> None:
    """Start an analysis, poll until it succeeds and check the summary."""
    response = client.post("/analysis/user-1/start")
    if response.status_code != HTTP_202_ACCEPTED:
        msg = f"Expected status {HTTP_202_ACCEPTED}, got {response.status_code}"
        raise AssertionError(msg)
    body = response.json()
    if not body.get("job_id") or body["state"] != {"status": "running", "attempt": 0}:
        msg = f"Unexpected start response {body}"
        raise AssertionError(msg)

    state = poll_state(client)
    if state["status"] != "succeeded":
        msg = f"Expected status 'succeeded', got {state}"
        raise AssertionError(msg)
    result = state["result"]
    if (result["total_spent"], result["top_category"]) != (45, "Transport"):
        msg = f"Unexpected result {result}"
        raise AssertionError(msg)
    if result["category_totals"] != {"Food": 15, "Transport": 30}:
        msg = f"Unexpected category totals {result['category_totals']}"
        raise AssertionError(msg)


def test_analysis_without_expenses_is_rejected(client: TestClient) -> None:
    response = client.post("/analysis/nobody/start")
    if response.status_code != HTTP_400_BAD_REQUEST:
        msg = f"Expected status {HTTP_400_BAD_REQUEST}, got {response.status_code}"
        raise AssertionError(msg)
    if client.get("/analysis/nobody/state").json() != {"status": "idle"}:
        msg = "Expected the controller to stay idle"
        raise AssertionError(msg)


def test_analysis_times_out(client: TestClient) -> None:
    never_complete = partial(DeterministicAnalysisBackend, complete_from_attempt=99)
    app.dependency_overrides[get_backend_factory] = lambda: never_complete
    client.post("/analysis/user-1/start")
    state = poll_state(client)
    if state != {"status": "timed_out"}:
        msg = f"Expected timed_out, got {state}"
        raise AssertionError(msg)


def test_cancel_running_analysis(client: TestClient) -> None:
    app.dependency_overrides[get_scheduler_factory] = lambda: partial(AsyncioScheduler, time_unit=60)
    for expense in SAMPLE_EXPENSES:
        client.post("/expenses", json={**expense.model_dump(), "id": f"u2-{expense.id}", "owner_id": "user-2"})
    started = client.post("/analysis/user-2/start").json()
    if started["state"]["status"] != "running":
        msg = f"Expected running, got {started}"
        raise AssertionError(msg)
    cancelled = client.post("/analysis/user-2/cancel")
    if cancelled.json() != {"status": "idle"}:
        msg = f"Expected idle after cancel, got {cancelled.json()}"
        raise AssertionError(msg)
    if client.get("/analysis/user-2/state").json() != {"status": "idle"}:
        msg = "Expected the analysis to stay idle"
        raise AssertionError(msg)


def test_event_stream_ends_with_terminal_state(client: TestClient) -> None:
    app.dependency_overrides[get_scheduler_factory] = lambda: partial(AsyncioScheduler, time_unit=0.01)
    client.post("/analysis/user-1/start")
    response = client.get("/analysis/user-1/events")
    if response.status_code != HTTP_200_OK or not response.headers["content-type"].startswith("text/event-stream"):
        msg = f"Unexpected events response {response.status_code} {response.headers}"
        raise AssertionError(msg)
    events = [block for block in response.text.split("\n\n") if block.strip()]
    names = [block.splitlines()[0].removeprefix("event: ") for block in events]
    if names[-1] != "succeeded" or any(name not in ("running", "succeeded") for name in names):
        msg = f"Unexpected event sequence {names}"
        raise AssertionError(msg)
    payload = json.loads(events[-1].splitlines()[1].removeprefix("data: "))
    if payload["result"]["top_category"] != "Transport":
        msg = f"Unexpected final payload {payload}"
        raise AssertionError(msg)


def test_unknown_owner_reads_as_idle_without_creating_a_controller(client: TestClient) -> None:
    """State, cancel and events for an owner that never started an analysis allocate nothing."""
    for i in range(5):
        if client.get(f"/analysis/ghost-{i}/state").json() != {"status": "idle"}:
            msg = f"Expected idle state for ghost-{i}"
            raise AssertionError(msg)
    if client.post("/analysis/ghost-0/cancel").json() != {"status": "idle"}:
        msg = "Expected cancel of an unknown owner to return idle"
        raise AssertionError(msg)
    events = client.get("/analysis/ghost-0/events").text
    if events != 'event: idle\ndata: {"status":"idle"}\n\n':
        msg = f"Unexpected events for an unknown owner {events!r}"
        raise AssertionError(msg)
    if app.state.analysis_controllers:
        msg = f"Expected no controllers, got {sorted(app.state.analysis_controllers)}"
        raise AssertionError(msg)


def test_rejected_start_does_not_keep_a_controller(client: TestClient) -> None:
    client.post("/analysis/nobody/start")
    if "nobody" in app.state.analysis_controllers:
        msg = "Expected no controller for an owner without expenses"
        raise AssertionError(msg)


def test_backend_is_built_once_per_owner(client: TestClient) -> None:
    built: list[DeterministicAnalysisBackend] = []

    def build_backend() -> DeterministicAnalysisBackend:
        backend = DeterministicAnalysisBackend()
        built.append(backend)
        return backend

    app.dependency_overrides[get_backend_factory] = lambda: build_backend
    client.post("/analysis/user-1/start")
    poll_state(client)
    for _ in range(5):
        client.get("/analysis/user-1/state")
    client.post("/analysis/user-1/start")
    poll_state(client)
    if len(built) != 1:
        msg = f"Expected one backend for one owner, got {len(built)}"
        raise AssertionError(msg)
    if app.state.analysis_controllers["user-1"].backend is not built[0]:
        msg = "Expected the controller to use the backend built for it"
        raise AssertionError(msg)
