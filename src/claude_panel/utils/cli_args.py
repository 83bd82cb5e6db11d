"""Argument and stdin payload construction for claude CLI invocations."""

import re

from claude_panel.types.session import SendOptions

STREAM_ARGS = ["--output-format", "stream-json", "--input-format", "stream-json", "--verbose"]

DIAGNOSTIC_MODEL = "claude-haiku-4-5-20251001"
DIAGNOSTIC_ARGS = ["-p", ".", "--output-format", "json", "--model", DIAGNOSTIC_MODEL]

SESSION_ENV = {"FORCE_COLOR": "0", "NO_COLOR": "1"}
DIAGNOSTIC_ENV = {"ANTHROPIC_LOG": "debug"}

THINKING_PROMPTS = {
    "think": "THINK",
    "think-hard": "THINK HARD",
    "think-harder": "THINK HARDER",
    "ultrathink": "ULTRATHINK",
}

MIN_CLI_VERSION = (1, 0, 0)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def build_session_args(options: SendOptions, session_id: str | None = None) -> list[str]:
    """CLI arguments for one interactive stream-json turn."""
    args = list(STREAM_ARGS)

    if options.yolo_mode:
        args.append("--dangerously-skip-permissions")
    else:
        args += ["--permission-prompt-tool", "stdio"]

    if options.mcp_config_path:
        args += ["--mcp-config", options.mcp_config_path]

    # Plan mode is meaningless when every tool is already allowed
    if options.plan_mode and not options.yolo_mode:
        args += ["--permission-mode", "plan"]

    if options.model and options.model != "default":
        args += ["--model", options.model]

    if options.allowed_tools:
        args += ["--allowedTools", ",".join(options.allowed_tools)]
    if options.disallowed_tools:
        args += ["--disallowedTools", ",".join(options.disallowed_tools)]

    if session_id:
        args += ["--resume", session_id]

    return args


def apply_thinking_prompt(message: str, options: SendOptions) -> str:
    if not options.thinking_mode:
        return message
    prompt = THINKING_PROMPTS.get(options.thinking_intensity, "THINK")
    return f"{prompt} THROUGH THIS STEP BY STEP: \n{message}"


def build_user_message(message: str, options: SendOptions, session_id: str | None = None) -> dict:
    """The stream-json record that carries the user's prompt on stdin."""
    text = apply_thinking_prompt(message, options)
    if options.images:
        # Attached images are passed as file mentions the CLI resolves itself
        text += "\n\n" + "\n".join(f"@{path}" for path in options.images)
    return {
        "type": "user",
        "session_id": session_id or "",
        "message": {
            "role": "user",
            "content": [{"type": "text", "text": text}],
        },
        "parent_tool_use_id": None,
    }


def parse_cli_version(output: str) -> tuple[int, int, int] | None:
    """Extract the first ``X.Y.Z`` from ``claude --version`` output."""
    match = _VERSION_RE.search(output or "")
    if match is None:
        return None
    return tuple(int(part) for part in match.groups())


def is_compatible_version(version: tuple[int, int, int] | None) -> bool:
    return version is not None and version >= MIN_CLI_VERSION
