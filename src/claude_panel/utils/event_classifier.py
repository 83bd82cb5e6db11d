"""Classify decoded stream-json records into typed protocol events."""

import logging

from claude_panel.types.events import (
    AssistantEvent,
    CompactBoundaryEvent,
    ControlRequestEvent,
    ControlResponseEvent,
    InitEvent,
    ProtocolEvent,
    ResultEvent,
    StatusEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
    UserEvent,
)

logger = logging.getLogger(__name__)

PERMISSION_SUBTYPE = "can_use_tool"


def classify_event(raw: dict) -> ProtocolEvent | None:
    """Classify a raw record by its ``type`` (and ``subtype``) discriminator.

    Validation is structural only. Unknown types and subtypes return None so
    that protocol additions upstream are ignored rather than fatal.
    """
    if not isinstance(raw, dict):
        return None

    handler = _HANDLERS.get(raw.get("type", ""))
    if handler is None:
        logger.debug("Ignoring unrecognized event type %r", raw.get("type"))
        return None
    return handler(raw)


def parse_usage(raw_usage) -> Usage | None:
    """Parse an API usage dict; negative or non-numeric counts become zero."""
    if not isinstance(raw_usage, dict):
        return None
    return Usage(
        input_tokens=_count(raw_usage.get("input_tokens")),
        output_tokens=_count(raw_usage.get("output_tokens")),
        cache_read_input_tokens=_count(raw_usage.get("cache_read_input_tokens")),
        cache_creation_input_tokens=_count(raw_usage.get("cache_creation_input_tokens")),
    )


def _classify_system(raw: dict) -> ProtocolEvent | None:
    subtype = raw.get("subtype", "")
    if subtype == "init":
        session_id = raw.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            return None
        return InitEvent(
            session_id=session_id,
            tools=_list(raw.get("tools")),
            mcp_servers=_list(raw.get("mcp_servers")),
            model=_str(raw.get("model")),
        )
    if subtype == "status":
        status = raw.get("status")
        return StatusEvent(status=status if isinstance(status, str) else None)
    if subtype == "compact_boundary":
        metadata = raw.get("compact_metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        return CompactBoundaryEvent(
            trigger=_str(metadata.get("trigger")),
            pre_tokens=_count(metadata.get("pre_tokens")),
        )
    logger.debug("Ignoring unrecognized system subtype %r", subtype)
    return None


def _classify_assistant(raw: dict) -> AssistantEvent | None:
    message = raw.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("content"), list):
        return None

    blocks = []
    for block in message["content"]:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = _str(block.get("text"))
            if text.strip():
                blocks.append(TextBlock(text=text.strip()))
        elif block_type == "thinking":
            thinking = _str(block.get("thinking"))
            if thinking.strip():
                blocks.append(ThinkingBlock(thinking=thinking.strip()))
        elif block_type == "tool_use":
            tool_id = block.get("id")
            if not isinstance(tool_id, str) or not tool_id:
                continue
            tool_input = block.get("input")
            blocks.append(ToolUseBlock(
                id=tool_id,
                name=_str(block.get("name")),
                input=tool_input if isinstance(tool_input, dict) else {},
            ))

    return AssistantEvent(
        blocks=blocks,
        usage=parse_usage(message.get("usage")),
        model=_str(message.get("model")),
    )


def _classify_user(raw: dict) -> UserEvent | None:
    message = raw.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        # Plain string content is an echoed prompt, not a tool result
        return None

    results = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_result":
            continue
        tool_use_id = block.get("tool_use_id")
        if not isinstance(tool_use_id, str) or not tool_use_id:
            continue
        results.append(ToolResultBlock(
            tool_use_id=tool_use_id,
            content=block.get("content", ""),
            is_error=bool(block.get("is_error", False)),
        ))

    return UserEvent(results=results, usage=parse_usage(message.get("usage")))


def _classify_result(raw: dict) -> ResultEvent:
    cost = raw.get("total_cost_usd")
    return ResultEvent(
        subtype=_str(raw.get("subtype")) or "success",
        is_error=bool(raw.get("is_error", False)),
        total_cost_usd=float(cost) if isinstance(cost, (int, float)) and cost > 0 else 0.0,
        duration_ms=_count(raw.get("duration_ms")),
        num_turns=_count(raw.get("num_turns")),
        result=_str(raw.get("result")),
        session_id=_str(raw.get("session_id")),
    )


def _classify_control_request(raw: dict) -> ControlRequestEvent | None:
    request_id = raw.get("request_id")
    request = raw.get("request")
    if not isinstance(request_id, str) or not request_id or not isinstance(request, dict):
        return None

    subtype = _str(request.get("subtype"))
    if subtype != PERMISSION_SUBTYPE:
        logger.debug("Ignoring control request subtype %r", subtype)
        return None

    tool_name = _str(request.get("tool_name")) or "Unknown Tool"
    tool_input = request.get("input")
    if not isinstance(tool_input, dict):
        tool_input = {}

    return ControlRequestEvent(
        request_id=request_id,
        subtype=subtype,
        tool_name=tool_name,
        input=tool_input,
        tool_use_id=_str(request.get("tool_use_id")) or request_id,
        description=_str(request.get("description")) or describe_tool_use(tool_name, tool_input),
        suggestions=_list(request.get("permission_suggestions")),
        decision_reason=_str(request.get("decision_reason")),
        blocked_path=_str(request.get("blocked_path")),
    )


def _classify_control_response(raw: dict) -> ControlResponseEvent:
    response = raw.get("response")
    if not isinstance(response, dict):
        response = {}
    inner = response.get("response")
    if not isinstance(inner, dict):
        inner = {}

    account = response.get("account", inner.get("account"))
    return ControlResponseEvent(
        request_id=_str(raw.get("request_id")) or _str(response.get("request_id")),
        subtype=_str(response.get("subtype")),
        response=response,
        account=account if isinstance(account, dict) else {},
    )


def describe_tool_use(tool_name: str, tool_input: dict) -> str:
    """Human-readable one-liner for a tool invocation."""
    if tool_name == "Bash" and tool_input.get("command"):
        return f"Run command: {tool_input['command']}"
    if tool_input.get("file_path"):
        return f"{tool_name}: {tool_input['file_path']}"
    if tool_input.get("pattern"):
        return f"{tool_name}: {tool_input['pattern']}"
    if tool_input.get("url"):
        return f"{tool_name}: {tool_input['url']}"
    return f"Use tool: {tool_name}"


def _str(value) -> str:
    return value if isinstance(value, str) else ""


def _list(value) -> list:
    return value if isinstance(value, list) else []


def _count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


_HANDLERS = {
    "system": _classify_system,
    "assistant": _classify_assistant,
    "user": _classify_user,
    "result": _classify_result,
    "control_request": _classify_control_request,
    "control_response": _classify_control_response,
}
