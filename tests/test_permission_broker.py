"""Tests for claude_panel.services.permission_broker."""

import pytest

from claude_panel.services.permission_broker import (
    PermissionBroker,
    command_pattern,
    suggest_pattern,
)
from claude_panel.services.permission_store import PermissionStore
from claude_panel.types.events import ControlRequestEvent
from claude_panel.types.permissions import PermissionStatus

from helpers import record_signal


class FakeWriter:
    def __init__(self, accept=True):
        self.lines = []
        self.accept = accept

    def __call__(self, record):
        self.lines.append(record)
        return self.accept


def _request(request_id="r1", tool="Bash", tool_input=None):
    return ControlRequestEvent(
        request_id=request_id,
        subtype="can_use_tool",
        tool_name=tool,
        input=tool_input if tool_input is not None else {"command": "npm install left-pad"},
    )


@pytest.fixture
def writer():
    return FakeWriter()


@pytest.fixture
def store(tmp_path):
    return PermissionStore(tmp_path / "permissions.json")


@pytest.fixture
def broker(qapp, writer, store):
    return PermissionBroker(writer=writer, store=store)


# ---------------------------------------------------------------------------
# 1. Registration
# ---------------------------------------------------------------------------

def test_register_emits_request(broker, writer):
    requested = record_signal(broker.permission_requested)
    request = broker.register(_request())
    assert request.status == PermissionStatus.PENDING
    assert request.pattern == "npm install *"
    assert requested[0][0]["id"] == "r1"
    assert requested[0][0]["tool"] == "Bash"
    assert writer.lines == []
    assert [r.request_id for r in broker.pending()] == ["r1"]


def test_duplicate_request_id_ignored(broker):
    requested = record_signal(broker.permission_requested)
    first = broker.register(_request())
    again = broker.register(_request())
    assert again is first
    assert len(requested) == 1


# ---------------------------------------------------------------------------
# 2. Resolution
# ---------------------------------------------------------------------------

def test_resolve_writes_response(broker, writer):
    resolved = record_signal(broker.permission_resolved)
    broker.register(_request())
    assert broker.resolve("r1", "allow") is True
    assert writer.lines == [{"type": "permission_response", "request_id": "r1", "decision": "allow"}]
    assert resolved == [("r1", "allowed_once")]
    assert broker.get("r1") is None


@pytest.mark.parametrize("decision,status", [
    ("deny", "denied"),
    ("allow_session", "allowed_for_session"),
    ("allow_always", "allowed_always"),
])
def test_decision_status(broker, decision, status):
    resolved = record_signal(broker.permission_resolved)
    broker.register(_request())
    broker.resolve("r1", decision)
    assert resolved == [("r1", status)]


def test_resolve_unknown_id_is_noop(broker, writer):
    resolved = record_signal(broker.permission_resolved)
    assert broker.resolve("nope", "allow") is False
    assert writer.lines == []
    assert resolved == []


def test_resolve_twice_writes_once(broker, writer):
    broker.register(_request())
    broker.resolve("r1", "deny")
    assert broker.resolve("r1", "allow") is False
    assert len(writer.lines) == 1


def test_invalid_decision_raises(broker):
    broker.register(_request())
    with pytest.raises(ValueError):
        broker.resolve("r1", "maybe")
    assert broker.get("r1") is not None


def test_closed_input_logged(qapp, caplog):
    broker = PermissionBroker(writer=FakeWriter(accept=False))
    broker.register(_request())
    broker.resolve("r1", "allow")
    assert "not delivered" in caplog.text


def test_allow_always_persists_pattern(broker, store, writer):
    broker.register(_request())
    broker.resolve("r1", "allow_always")
    assert [(e.tool_name, e.pattern) for e in store.entries()] == [("Bash", "npm install *")]

    # A matching request later is approved without asking
    requested = record_signal(broker.permission_requested)
    request = broker.register(_request("r2", tool_input={"command": "npm install react"}))
    assert requested == []
    assert request.status == PermissionStatus.ALLOWED_ONCE
    assert writer.lines[-1]["request_id"] == "r2"


def test_allow_always_for_file_tool(broker, store, writer):
    read = {"file_path": "/src/app.py"}
    requested = record_signal(broker.permission_requested)
    broker.register(_request(tool="Read", tool_input=read))
    broker.resolve("r1", "allow_always")
    assert [(e.tool_name, e.pattern) for e in store.entries()] == [("Read", "/src/app.py")]

    request = broker.register(_request("r2", tool="Read", tool_input=dict(read)))
    assert len(requested) == 1
    assert request.status == PermissionStatus.ALLOWED_ONCE
    assert writer.lines[-1]["request_id"] == "r2"

    # A different file still asks
    broker.register(_request("r3", tool="Read", tool_input={"file_path": "/src/other.py"}))
    assert len(requested) == 2


def test_allow_always_without_matchable_input_stores_nothing(broker, store, writer):
    broker.register(_request(tool="WebFetch", tool_input={"url": "https://example.com"}))
    assert broker.resolve("r1", "allow_always") is True
    assert store.entries() == []
    assert writer.lines[-1]["decision"] == "allow_always"


# ---------------------------------------------------------------------------
# 3. Auto-approve
# ---------------------------------------------------------------------------

def test_toggle_auto_approve_resolves_all_pending(broker, writer):
    resolved = record_signal(broker.permission_resolved)
    broker.register(_request("r1"))
    broker.register(_request("r2", tool="Read", tool_input={"file_path": "/x"}))

    broker.set_auto_approve(True)

    assert broker.pending() == []
    assert sorted(r[0] for r in resolved) == ["r1", "r2"]
    assert all(status == "allowed_once" for _, status in resolved)
    assert {line["request_id"] for line in writer.lines} == {"r1", "r2"}
    assert all(line["decision"] == "allow" for line in writer.lines)
    assert broker.autoApprove is True


def test_auto_approve_skips_prompt(qapp, writer):
    broker = PermissionBroker(writer=writer, auto_approve=True)
    requested = record_signal(broker.permission_requested)
    request = broker.register(_request())
    assert requested == []
    assert request.status == PermissionStatus.ALLOWED_ONCE
    assert writer.lines[0]["decision"] == "allow"


def test_auto_approve_still_asks_interactive_tools(qapp, writer):
    broker = PermissionBroker(writer=writer, auto_approve=True)
    requested = record_signal(broker.permission_requested)
    broker.register(_request("q1", tool="AskUserQuestion", tool_input={"questions": []}))
    assert len(requested) == 1
    assert writer.lines == []


def test_approve_all_pending_count(broker):
    broker.register(_request("r1"))
    broker.register(_request("r2"))
    assert broker.approve_all_pending() == 2
    assert broker.approve_all_pending() == 0


def test_abandon_all(broker, writer):
    resolved = record_signal(broker.permission_resolved)
    broker.register(_request("r1"))
    broker.abandon_all()
    assert resolved == [("r1", "abandoned")]
    assert writer.lines == []
    assert broker.pending() == []


# ---------------------------------------------------------------------------
# 4. Pattern suggestions
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("command,pattern", [
    ("npm install lodash", "npm install *"),
    ("git commit -m 'x'", "git commit *"),
    ("git status", "git status"),
    ("npx vitest", "npx *"),
    ("terraform plan -out x", "terraform *"),
    ("whoami", "whoami"),
    ("", ""),
])
def test_command_pattern(command, pattern):
    assert command_pattern(command) == pattern


def test_suggest_pattern():
    assert suggest_pattern("Bash", {"command": "  make build "}) == "make *"
    assert suggest_pattern("Read", {"file_path": " /x "}) == "/x"
    assert suggest_pattern("Grep", {"pattern": "TODO"}) == "TODO"
    assert suggest_pattern("WebFetch", {"url": "https://example.com"}) == ""
