from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from partner_common.errors import AssistantError, excerpt

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "claude"


class ActionType(str, Enum):
    COMPLETE_TASK = "complete_task"
    DRAFT_EMAIL = "draft_email"
    CREATE_TASK = "create_task"


class SuggestedAction(BaseModel):
    type: ActionType
    description: str


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0


class AssistantReply(BaseModel):
    text: str
    action: Optional[SuggestedAction] = None
    # opaque; pass back verbatim to continue the conversation
    continuation_token: Optional[str] = None
    usage: Optional[Usage] = None


class _CLIUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class _CLIResponse(BaseModel):
    """Shape of ``claude -p ... --output-format json``."""

    type: str = ""
    subtype: str = ""
    is_error: bool = False
    duration_ms: int = 0
    result: str = ""
    session_id: str = ""
    total_cost_usd: float = 0.0
    usage: _CLIUsage = _CLIUsage()


_ACTION_PHRASES: List[Tuple[Tuple[str, ...], ActionType, str]] = [
    (("i suggest completing", "mark as done"), ActionType.COMPLETE_TASK, "Complete task"),
    (("draft email", "send an email"), ActionType.DRAFT_EMAIL, "Draft email"),
    (("create a task", "add a task"), ActionType.CREATE_TASK, "Create task"),
]


def detect_action(text: str) -> Optional[SuggestedAction]:
    lower = text.lower()
    for phrases, action_type, description in _ACTION_PHRASES:
        if any(p in lower for p in phrases):
            return SuggestedAction(type=action_type, description=description)
    return None


def build_prompt(prompt: str, context: str = "") -> str:
    if not context:
        return prompt
    return f"Context:\n{context}\n\nRequest:\n{prompt}"


def build_argv(prompt: str, continuation_token: Optional[str] = None, *, command: str = DEFAULT_COMMAND) -> List[str]:
    argv = [command, "-p", prompt, "--output-format", "json"]
    if continuation_token:
        argv += ["--resume", continuation_token]
    return argv


async def _run_cli(argv: Sequence[str], timeout: Optional[float]) -> Tuple[int, str, str]:
    """Run the CLI to completion; returns (exit status, stdout, stderr)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise AssistantError(f"failed to start {argv[0]}: {e}") from e

    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise AssistantError(f"{argv[0]} timed out after {timeout}s") from e
    finally:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    return (
        proc.returncode if proc.returncode is not None else -1,
        out.decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
    )


def _parse_output(stdout: str) -> AssistantReply:
    try:
        data: Any = json.loads(stdout)
        resp = _CLIResponse.model_validate(data)
    except (ValueError, ValidationError):
        # older CLIs or --output-format text: take the raw output
        text = stdout.strip()
        return AssistantReply(text=text, action=detect_action(text))

    if resp.is_error:
        raise AssistantError(f"claude API error: {excerpt(resp.result)}")

    return AssistantReply(
        text=resp.result,
        action=detect_action(resp.result),
        continuation_token=resp.session_id or None,
        usage=Usage(
            input_tokens=resp.usage.input_tokens,
            output_tokens=resp.usage.output_tokens,
            cost_usd=resp.total_cost_usd,
            duration_ms=resp.duration_ms,
        ),
    )


async def ask(
    prompt: str,
    context: str = "",
    continuation_token: Optional[str] = None,
    *,
    command: str = DEFAULT_COMMAND,
    timeout: Optional[float] = None,
) -> AssistantReply:
    """
    One stateless assistant call.

    Pass the previous reply's ``continuation_token`` to continue that
    conversation. Raises AssistantError when the CLI is missing, exits
    non-zero or reports ``is_error``.
    """
    argv = build_argv(build_prompt(prompt, context), continuation_token, command=command)
    logger.debug("assistant call resume=%s prompt_len=%d", bool(continuation_token), len(argv[2]))

    status, out, err = await _run_cli(argv, timeout)
    if status != 0:
        raise AssistantError(f"claude command failed with status {status} (stderr: {excerpt(err.strip())})")
    return _parse_output(out)


async def task_breakdown(task_title: str, task_notes: str = "", **kwargs: Any) -> AssistantReply:
    prompt = (
        "Break down this task into 3-5 actionable subtasks:\n\n"
        f"Task: {task_title}\n"
        f"Notes: {task_notes}\n\n"
        "Provide a numbered list of concrete next steps. "
        "Keep each step small and completable in one session."
    )
    return await ask(prompt, **kwargs)


async def draft_email(recipient: str, subject: str, context: str, **kwargs: Any) -> AssistantReply:
    prompt = (
        "Draft a brief, professional email:\n\n"
        f"To: {recipient}\n"
        f"Subject: {subject}\n"
        f"Context: {context}\n\n"
        "Keep it concise (under 100 words). Include a clear call-to-action."
    )
    return await ask(prompt, **kwargs)


async def summarize(content: str, **kwargs: Any) -> AssistantReply:
    return await ask(f"Summarize the following in 2-3 bullet points:\n\n{content}", **kwargs)


async def needle_mover(tasks: Sequence[str], goals: str, **kwargs: Any) -> AssistantReply:
    task_list = "\n- ".join(tasks)
    prompt = (
        "Given these tasks and goals, which ONE task is the highest-leverage needle-mover right now?\n\n"
        f"Tasks:\n- {task_list}\n\n"
        f"Goals: {goals}\n\n"
        "Identify the single most impactful task and briefly explain why (1-2 sentences)."
    )
    return await ask(prompt, **kwargs)


async def check_available(command: str = DEFAULT_COMMAND) -> None:
    """Raise AssistantError unless ``<command> --version`` runs cleanly."""
    status, _, err = await _run_cli([command, "--version"], timeout=10)
    if status != 0:
        raise AssistantError(f"claude CLI not available (status {status}): {excerpt(err.strip())}")
