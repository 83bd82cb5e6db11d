"""Application entry point: headless Qt event loop around the coordinator."""

import argparse
import json
import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from claude_panel.services.config_manager import ConfigManager
from claude_panel.services.coordinator import SessionCoordinator
from claude_panel.types.permissions import PermissionDecision

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_ANSWERS = {
    "y": PermissionDecision.ALLOW,
    "s": PermissionDecision.ALLOW_SESSION,
    "a": PermissionDecision.ALLOW_ALWAYS,
    "n": PermissionDecision.DENY,
}


def configure_logging(config: ConfigManager):
    level = logging.DEBUG if config.get_bool("advanced/debugLogging") else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="claude-panel", description="Talk to the claude CLI.")
    parser.add_argument("prompt", nargs="?", help="message to send; omit with --usage")
    parser.add_argument("--usage", action="store_true", help="print rate-limit usage and exit")
    parser.add_argument("--resume", metavar="SESSION_ID", help="continue an earlier session")
    parser.add_argument("--model", help="model override")
    parser.add_argument("--cwd", default="", help="working directory for the CLI")
    parser.add_argument("--plan", action="store_true", help="plan mode")
    parser.add_argument("--yolo", action="store_true", help="skip permission prompts")
    return parser.parse_args(argv)


def _ask_permission(coordinator: SessionCoordinator, request: dict):
    print(f"\n[permission] {request['tool']}: {json.dumps(request['input'])}", file=sys.stderr)
    if request.get("pattern"):
        print(f"  suggested pattern: {request['pattern']}", file=sys.stderr)
    try:
        answer = input("Allow? [y]es / [s]ession / [a]lways / [n]o: ").strip().lower()[:1]
    except EOFError:
        answer = "n"
    coordinator.resolve_permission(request["id"], _ANSWERS.get(answer, PermissionDecision.DENY).value)


def run(argv: list[str] | None = None) -> int:
    """Launch the application."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    if not args.prompt and not args.usage:
        print("Nothing to do: give a prompt or --usage.", file=sys.stderr)
        return 2

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    app.setApplicationName("Claude Panel")
    app.setOrganizationName("claude-panel")
    app.setOrganizationDomain("claude.local")

    # Allow Ctrl+C to kill the app
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    config = ConfigManager()
    configure_logging(config)
    coordinator = SessionCoordinator(config)
    logger.debug("Using CLI command %s", config.cli_command())
    state = coordinator.state
    exit_code = 0

    def fail(kind: str, message: str):
        nonlocal exit_code
        exit_code = 1
        print(f"error ({kind}): {message}", file=sys.stderr)

    coordinator.session_error.connect(fail)
    coordinator.warning.connect(lambda message: print(f"warning: {message}", file=sys.stderr))

    if args.usage:
        usage = coordinator.usage
        usage.usage_updated.connect(lambda view: print(json.dumps(view, indent=2)))
        usage.usage_error.connect(lambda message: fail("usage", message))

        def fetch():
            # start() prints any cached reading, then joins the live fetch here
            usage.start()
            usage.fetch_usage_data().add_done_callback(lambda _f: app.quit())

        QTimer.singleShot(0, fetch)
    else:
        state.text_received.connect(lambda text: print(text, end="", flush=True))
        state.tool_used.connect(
            lambda tool: print(f"\n[{tool['toolName']}]", file=sys.stderr))

        def show_totals(totals: dict):
            turn = state.last_turn
            if "currentCost" not in totals or turn is None:
                return
            print(f"\n-- ${turn.cost:.4f} this turn (${totals['totalCost']:.4f} total), "
                  f"{turn.duration_ms / 1000:.1f}s, {totals['totalTokensOutput']} output tokens, "
                  f"session {state.session_id or '?'}", file=sys.stderr)

        state.totals_updated.connect(show_totals)
        coordinator.broker.permission_requested.connect(
            lambda request: _ask_permission(coordinator, request))
        coordinator.process.session_finished.connect(lambda _code: app.quit())

        if args.resume:
            state.set_session_id(args.resume)
        options = coordinator.default_options()
        options.cwd = args.cwd
        options.plan_mode = args.plan
        options.yolo_mode = args.yolo or options.yolo_mode
        if args.model:
            options.model = args.model
        coordinator.broker.set_auto_approve(options.yolo_mode)

        def send():
            if not coordinator.send_message(args.prompt, options):
                app.quit()

        QTimer.singleShot(0, send)

    ret = app.exec()
    coordinator.dispose()
    return ret or exit_code
