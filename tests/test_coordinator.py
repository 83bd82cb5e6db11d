"""Integration tests for the SessionCoordinator against fake CLI scripts."""

import shlex

import pytest

from claude_panel.services import process_manager
from claude_panel.services.config_manager import ConfigManager
from claude_panel.services.coordinator import SessionCoordinator
from claude_panel.services.permission_store import PermissionStore
from claude_panel.services.rate_limit_cache import RateLimitCache
from claude_panel.types.session import ProcessErrorKind, SessionState

from helpers import record_signal, wait_until


class FakeStore:
    def __init__(self):
        self.saved = []

    def save_session(self, session_id, totals):
        self.saved.append((session_id, totals))


@pytest.fixture(autouse=True)
def no_shared_diagnostic(monkeypatch):
    monkeypatch.setattr(process_manager, "_diagnostic_future", None)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_coordinator(qapp, isolated_settings, tmp_path, store):
    coordinators = []

    def _make(command: list[str]) -> SessionCoordinator:
        config = ConfigManager()
        config.set_string("cli/command", shlex.join(command))
        config.set_int("usage/killGraceMs", 500)
        # Keep the post-session usage refresh out of these tests
        config.set_int("usage/sessionEndDelayMs", 600_000)
        coordinator = SessionCoordinator(
            config,
            store=store,
            permission_store=PermissionStore(tmp_path / "permissions.json"),
            rate_limit_cache=RateLimitCache(tmp_path / "rate-limit-cache.json"),
        )
        coordinators.append(coordinator)
        return coordinator

    yield _make
    for coordinator in coordinators:
        coordinator.dispose()


# ---------------------------------------------------------------------------
# 1. Full turn
# ---------------------------------------------------------------------------

def test_turn_with_permission(make_coordinator, fake_cli, store):
    coordinator = make_coordinator(fake_cli("session.py"))
    state = coordinator.state
    results = record_signal(state.tool_result_received)
    finished = record_signal(coordinator.process.session_finished)
    coordinator.broker.permission_requested.connect(
        lambda request: coordinator.resolve_permission(request["id"], "allow"))

    assert coordinator.send_message("hello")
    assert state.isProcessing is True
    assert wait_until(lambda: finished, timeout=15)

    assert results[0][0]["content"] == "decision=allow"
    assert state.session_id == "sess-fake-1"
    assert state.totals.total_cost == pytest.approx(0.25)
    assert state.totals.input_tokens == 10
    assert state.state == SessionState.ENDED
    assert state.isProcessing is False
    assert store.saved[0][0] == "sess-fake-1"


def test_second_turn_resumes_session(make_coordinator, fake_cli):
    coordinator = make_coordinator(fake_cli("session.py"))
    coordinator.set_auto_approve(True)
    finished = record_signal(coordinator.process.session_finished)

    coordinator.send_message("one")
    assert wait_until(lambda: len(finished) == 1, timeout=15)
    coordinator.send_message("two")
    assert wait_until(lambda: len(finished) == 2, timeout=15)

    assert coordinator.state.totals.request_count == 2
    assert coordinator.state.totals.total_cost == pytest.approx(0.5)
    assert coordinator.state.session_id == "sess-fake-1"


def test_toggle_auto_approve_resolves_pending(make_coordinator, fake_cli):
    coordinator = make_coordinator(fake_cli("session.py"))
    resolved = record_signal(coordinator.broker.permission_resolved)
    results = record_signal(coordinator.state.tool_result_received)
    finished = record_signal(coordinator.process.session_finished)
    coordinator.broker.permission_requested.connect(lambda _request: coordinator.set_auto_approve(True))

    coordinator.send_message("hello")
    assert wait_until(lambda: finished, timeout=15)

    assert resolved == [("req-1", "allowed_once")]
    assert results[0][0]["content"] == "decision=allow"
    assert coordinator.config.yolo_mode() is True


def test_send_while_running_refused(make_coordinator, fake_cli):
    coordinator = make_coordinator(fake_cli("session.py"))
    warnings = record_signal(coordinator.warning)
    assert coordinator.send_message("first")
    assert coordinator.send_message("second") is False
    assert len(warnings) == 1
    assert coordinator.send_message("   ") is False


# ---------------------------------------------------------------------------
# 2. Stop and new session
# ---------------------------------------------------------------------------

def test_new_session_mid_turn(make_coordinator, fake_cli, store):
    coordinator = make_coordinator(fake_cli("session.py"))
    state = coordinator.state
    errors = record_signal(coordinator.session_error)
    resolved = record_signal(coordinator.broker.permission_resolved)
    finished = record_signal(coordinator.process.session_finished)
    coordinator.broker.permission_requested.connect(lambda _request: coordinator.new_session())

    coordinator.send_message("hello")
    assert wait_until(lambda: finished, timeout=15)

    assert resolved == [("req-1", "abandoned")]
    assert state.session_id is None
    assert state.totals.total_tokens == 0
    assert state.totals.request_count == 0
    assert state.state == SessionState.UNINITIALIZED
    assert state.isProcessing is False
    assert errors == []
    assert store.saved == []


def test_stop_is_silent(make_coordinator, fake_cli):
    coordinator = make_coordinator(fake_cli("session.py"))
    errors = record_signal(coordinator.session_error)
    finished = record_signal(coordinator.process.session_finished)
    coordinator.broker.permission_requested.connect(lambda _request: coordinator.stop())

    coordinator.send_message("hello")
    assert wait_until(lambda: finished, timeout=15)
    assert errors == []
    assert coordinator.state.isProcessing is False
    assert coordinator.broker.pending() == []


# ---------------------------------------------------------------------------
# 3. Failures
# ---------------------------------------------------------------------------

def test_missing_cli(make_coordinator):
    coordinator = make_coordinator(["/nonexistent/bin/claude-not-installed"])
    errors = record_signal(coordinator.session_error)
    coordinator.send_message("hello")
    assert wait_until(lambda: errors, timeout=10)
    assert errors[0][0] == ProcessErrorKind.EXECUTABLE_MISSING.value
    assert wait_until(lambda: not coordinator.state.isProcessing, timeout=5)


def test_auth_failure_requests_login(make_coordinator, fake_cli):
    coordinator = make_coordinator(fake_cli("failing.py", "auth"))
    logins = record_signal(coordinator.login_required)
    errors = record_signal(coordinator.session_error)
    coordinator.send_message("hello")
    assert wait_until(lambda: errors, timeout=15)
    assert errors[0][0] == ProcessErrorKind.AUTH_REQUIRED.value
    assert len(logins) == 1


# ---------------------------------------------------------------------------
# 4. Mailbox ordering and teardown
# ---------------------------------------------------------------------------

def test_records_drained_in_arrival_order(make_coordinator):
    """A record emitted while another is being handled waits its turn."""
    coordinator = make_coordinator(["claude"])
    texts = []

    def on_text(text):
        texts.append(text)
        if text == "a1":
            coordinator.process.record_received.emit(
                {"type": "assistant", "message": {"content": [{"type": "text", "text": "c"}]}})

    coordinator.state.text_received.connect(on_text)
    coordinator.process.record_received.emit({"type": "assistant", "message": {"content": [
        {"type": "text", "text": "a1"}, {"type": "text", "text": "a2"},
    ]}})
    assert texts == ["a1", "a2", "c"]


def test_only_permission_requests_reach_broker(make_coordinator):
    coordinator = make_coordinator(["claude"])
    requested = record_signal(coordinator.broker.permission_requested)
    coordinator.process.record_received.emit({"type": "control_request", "request_id": "c1",
                                              "request": {"subtype": "interrupt"}})
    coordinator.process.record_received.emit({"type": "control_request", "request_id": "c2", "request": {
        "subtype": "can_use_tool", "tool_name": "Read", "input": {"file_path": "/a"}}})
    assert [r[0]["id"] for r in requested] == ["c2"]
    assert [r.request_id for r in coordinator.broker.pending()] == ["c2"]


def test_account_tier_persisted(make_coordinator):
    coordinator = make_coordinator(["claude"])
    coordinator.process.record_received.emit({"type": "control_response", "response": {
        "subtype": "success", "response": {"account": {"subscriptionType": "max"}},
    }})
    assert coordinator.config.subscription_tier() == "max"


def test_setting_change_updates_process_command(make_coordinator):
    coordinator = make_coordinator(["claude"])
    coordinator.config.set_string("cli/command", "/opt/claude/bin/claude --debug")
    assert coordinator.process.command == ["/opt/claude/bin/claude", "--debug"]


def test_dispose_refuses_new_work(make_coordinator):
    coordinator = make_coordinator(["claude"])
    coordinator.dispose()
    assert coordinator.send_message("hello") is False
    coordinator.dispose()
