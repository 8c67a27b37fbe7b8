"""Outbound request transformation.

Makes a caller's Messages API request acceptable to upstream when sent with
an OAuth token:

- authorization, beta and user-agent headers are set; ``x-api-key`` is removed
- tool names are namespaced with a prefix, recording how to undo it
- blocked product names in the system prompt are substituted
- ``/v1/messages`` gets ``?beta=true``

Bodies that are not a JSON object are forwarded unchanged.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import orjson
from structlog import get_logger

from claude_multi_auth.config.settings import Settings
from claude_multi_auth.services.capability_probe import CapabilityProbe


logger = get_logger(__name__)

MESSAGES_PATH = "/v1/messages"

SYSTEM_IDENTITY = "You are Claude Code, Anthropic's official CLI for Claude."

# Dropped from the caller's headers; httpx recomputes or we set them
_DROPPED_HEADERS = frozenset(
    {
        "host",
        "content-length",
        "connection",
        "transfer-encoding",
        "keep-alive",
        "x-api-key",
        "authorization",
        "anthropic-beta",
        "user-agent",
    }
)

# A match touching a path-like token is left alone: "~/.opencode/",
# "opencode.json", "@scope/opencode-ai" and friends
_NOT_IN_PATH_BEFORE = r"(?<![\w/\\.-])"
_NOT_IN_PATH_AFTER = r"(?![\w/\\-]|\.[A-Za-z0-9])"

SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(_NOT_IN_PATH_BEFORE + "OpenCode" + _NOT_IN_PATH_AFTER), "Claude Code"),
    (
        re.compile(_NOT_IN_PATH_BEFORE + "opencode" + _NOT_IN_PATH_AFTER, re.IGNORECASE),
        "Claude",
    ),
)


@dataclass
class TransformOptions:
    """Knobs for the outbound transformation."""

    required_betas: list[str] = field(
        default_factory=lambda: ["oauth-2025-04-20", "interleaved-thinking-2025-05-14"]
    )
    long_context_beta: str = "context-1m-2025-08-07"
    long_context_models: re.Pattern[str] = field(
        default_factory=lambda: re.compile(r"^claude-(?:sonnet|opus)-4")
    )
    tool_prefix: str = "mcp_"
    user_agent: str = "claude-cli/2.1.2 (external, cli)"
    system_identity: str = SYSTEM_IDENTITY

    @classmethod
    def from_settings(cls, settings: Settings) -> "TransformOptions":
        return cls(
            required_betas=list(settings.required_betas),
            long_context_beta=settings.long_context_beta,
            long_context_models=re.compile(settings.long_context_models),
            tool_prefix=settings.tool_prefix,
            user_agent=settings.user_agent,
            system_identity=settings.system_identity,
        )


@dataclass
class OutboundRequest:
    """A request ready to send upstream."""

    method: str
    url: httpx.URL
    headers: dict[str, str]
    content: bytes
    # Prefixed tool name to the caller's original name
    tool_names: dict[str, str] = field(default_factory=dict)
    long_context_eligible: bool = False
    long_context_attached: bool = False


def split_beta_flags(value: str | None) -> list[str]:
    if not value:
        return []
    return [flag.strip() for flag in value.split(",") if flag.strip()]


def merge_beta_flags(
    required: Iterable[str], *extra_groups: Iterable[str]
) -> str:
    """Merge capability flags into one header value.

    Required flags come first, then each extra group in order. Duplicates
    keep their first position, so merging is idempotent.
    """
    merged: dict[str, None] = {}
    for flag in required:
        merged.setdefault(flag, None)
    for group in extra_groups:
        for flag in group:
            merged.setdefault(flag, None)
    return ",".join(merged)


def sanitize_text(text: str) -> str:
    """Apply the substitution table to free text."""
    for pattern, replacement in SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_system(body: dict[str, Any]) -> bool:
    """Sanitize the system prompt in place. Returns True if anything changed."""
    system = body.get("system")
    if isinstance(system, str):
        cleaned = sanitize_text(system)
        body["system"] = cleaned
        return cleaned != system

    changed = False
    if isinstance(system, list):
        for block in system:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                cleaned = sanitize_text(block["text"])
                if cleaned != block["text"]:
                    block["text"] = cleaned
                    changed = True
    return changed


def prepend_system_identity(body: dict[str, Any], identity: str) -> bool:
    """Lead the Messages API system prompt with the client identity in place.

    A string prompt gets the identity as its first paragraph. A block list gets
    a leading identity block and its first text block is prefixed as well.
    Prompts that already start with the identity are left alone.

    Returns:
        True if the body was modified
    """
    if not identity or "messages" not in body:
        return False

    system = body.get("system")
    if not system:
        body["system"] = identity
        return True
    if isinstance(system, str):
        if system.startswith(identity):
            return False
        body["system"] = f"{identity}\n\n{system}"
        return True
    if not isinstance(system, list):
        return False

    first = system[0]
    if isinstance(first, dict) and isinstance(first.get("text"), str):
        if first["text"].startswith(identity):
            return False
        first["text"] = f"{identity}\n\n{first['text']}"
    system.insert(0, {"type": "text", "text": identity})
    return True


def prefix_tool_names(body: dict[str, Any], prefix: str) -> dict[str, str]:
    """Namespace every tool name in the body in place.

    Covers tool definitions, ``tool_choice`` and ``tool_use`` blocks in the
    conversation history.

    Returns:
        Mapping of prefixed name to original name
    """
    tool_names: dict[str, str] = {}

    def rename(holder: dict[str, Any]) -> None:
        name = holder.get("name")
        if isinstance(name, str) and name:
            prefixed = prefix + name
            tool_names[prefixed] = name
            holder["name"] = prefixed

    tools = body.get("tools")
    if isinstance(tools, list):
        for tool in tools:
            if isinstance(tool, dict):
                rename(tool)

    tool_choice = body.get("tool_choice")
    if isinstance(tool_choice, dict) and tool_choice.get("type") == "tool":
        rename(tool_choice)

    messages = body.get("messages")
    if isinstance(messages, list):
        for message in messages:
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, list):
                continue
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_use":
                    rename(block)

    return tool_names


def is_long_context_eligible(body: Mapping[str, Any] | None, pattern: re.Pattern[str]) -> bool:
    model = body.get("model") if body is not None else None
    return isinstance(model, str) and pattern.search(model) is not None


def rewrite_url(url: httpx.URL) -> httpx.URL:
    """Add ``beta=true`` to Messages API calls that don't carry a beta param."""
    if url.path == MESSAGES_PATH and "beta" not in url.params:
        return url.copy_merge_params({"beta": "true"})
    return url


def _parse_body(content: bytes) -> dict[str, Any] | None:
    if not content:
        return None
    try:
        body = orjson.loads(content)
    except orjson.JSONDecodeError:
        logger.debug("request_body_not_json", size=len(content))
        return None
    return body if isinstance(body, dict) else None


def transform_request(
    method: str,
    url: httpx.URL | str,
    headers: Mapping[str, str],
    content: bytes,
    *,
    access_token: str,
    probe: CapabilityProbe | None = None,
    options: TransformOptions | None = None,
) -> OutboundRequest:
    """Build the upstream request for one attempt.

    Args:
        method: HTTP method
        url: Full upstream URL
        headers: Caller's headers
        content: Caller's raw body
        access_token: Token of the account serving this attempt
        probe: Long-context probe of the session; without one, eligible
            requests always get the flag
        options: Transformation options (defaults if not provided)

    Returns:
        OutboundRequest with rewritten URL, headers and body
    """
    if options is None:
        options = TransformOptions()

    body = _parse_body(content)
    tool_names: dict[str, str] = {}
    new_content = content
    if body is not None:
        tool_names = prefix_tool_names(body, options.tool_prefix)
        sanitized = sanitize_system(body)
        identified = prepend_system_identity(body, options.system_identity)
        if tool_names or sanitized or identified:
            new_content = orjson.dumps(body)

    eligible = is_long_context_eligible(body, options.long_context_models)
    attach = probe.should_attach(eligible) if probe is not None else eligible

    lowered = {key.lower(): value for key, value in headers.items()}
    caller_betas = [
        flag
        for flag in split_beta_flags(lowered.get("anthropic-beta"))
        if flag != options.long_context_beta
    ]
    betas = merge_beta_flags(
        options.required_betas,
        caller_betas,
        [options.long_context_beta] if attach else [],
    )

    out_headers = {
        key: value for key, value in lowered.items() if key not in _DROPPED_HEADERS
    }
    out_headers["authorization"] = f"Bearer {access_token}"
    out_headers["anthropic-beta"] = betas
    out_headers["user-agent"] = options.user_agent

    return OutboundRequest(
        method=method.upper(),
        url=rewrite_url(httpx.URL(url)),
        headers=out_headers,
        content=new_content,
        tool_names=tool_names,
        long_context_eligible=eligible,
        long_context_attached=attach,
    )
