"""Stand-in for `claude` in stream-json mode.

Reads the user message, asks for one Bash permission, waits for the
decision, then reports a result and exits when stdin closes. The argv it
was started with is written to $FAKE_CLI_ARGS_FILE when set. SIGTERM is
ignored when $FAKE_CLI_IGNORE_TERM is set.
"""

import json
import os
import signal
import sys


def emit(record):
    sys.stdout.write(json.dumps(record) + "\n")
    sys.stdout.flush()


def main():
    if os.environ.get("FAKE_CLI_IGNORE_TERM"):
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    args_file = os.environ.get("FAKE_CLI_ARGS_FILE")
    if args_file:
        with open(args_file, "w") as f:
            json.dump({"argv": sys.argv[1:], "cwd": os.getcwd(),
                       "no_color": os.environ.get("NO_COLOR")}, f)

    user = json.loads(sys.stdin.readline())
    prompt = user["message"]["content"][0]["text"]

    session_id = "sess-fake-1"
    if "--resume" in sys.argv:
        session_id = sys.argv[sys.argv.index("--resume") + 1]

    emit({"type": "system", "subtype": "init", "session_id": session_id,
          "tools": ["Bash", "Read"], "mcp_servers": [], "model": "claude-sonnet"})
    # Split one record across two writes
    line = json.dumps({"type": "assistant", "message": {
        "content": [{"type": "text", "text": f"echo: {prompt}"}],
        "usage": {"input_tokens": 10, "output_tokens": 5,
                  "cache_read_input_tokens": 2, "cache_creation_input_tokens": 1},
    }}) + "\n"
    sys.stdout.write(line[:20])
    sys.stdout.flush()
    sys.stdout.write(line[20:])
    sys.stdout.write("this is not json\n")
    sys.stdout.flush()

    if "--dangerously-skip-permissions" not in sys.argv:
        emit({"type": "assistant", "message": {"content": [
            {"type": "tool_use", "id": "tool-1", "name": "Bash", "input": {"command": "ls -la"}},
        ]}})
        emit({"type": "control_request", "request_id": "req-1", "request": {
            "subtype": "can_use_tool", "tool_name": "Bash",
            "input": {"command": "ls -la"}, "tool_use_id": "tool-1",
        }})
        decision = json.loads(sys.stdin.readline())
        emit({"type": "user", "message": {"content": [
            {"type": "tool_result", "tool_use_id": "tool-1",
             "content": f"decision={decision['decision']}",
             "is_error": decision["decision"] == "deny"},
        ]}})

    emit({"type": "result", "subtype": "success", "is_error": False,
          "total_cost_usd": 0.25, "duration_ms": 1200, "num_turns": 1,
          "result": "done", "session_id": session_id})

    # Exit once the coordinator closes our stdin
    sys.stdin.read()


if __name__ == "__main__":
    main()
