# PURPOSE: turn free text into a task draft ("simple" tasks).
#
# The language model only proposes raw fields. Whatever it returns is
# normalized here: timestamps must parse and are converted to UTC, the
# deadline is mandatory, and status is always recomputed by the lifecycle
# rules. Any failure raises DerivationError and nothing is persisted.

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Protocol

import openai
from openai import OpenAI
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .config import settings
from .errors import DerivationError, InvalidTimestamp
from .lifecycle import TaskDraft, draft_task, parse_instant

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant that extracts structured tasks."

PROMPT_TEMPLATE = """You are a task-parsing assistant.
Current date and time (UTC): {now}

Turn the user's sentence into exactly one JSON object (no extra text, no code fences):
{{
  "title": string,
  "description": string or null,
  "start_time": ISO 8601 UTC timestamp, e.g. "2026-10-01T12:00:00Z",
  "deadline": ISO 8601 UTC timestamp
}}

Rules:
1. A relative duration without a start ("in one hour") means start_time = {now}
   and deadline = start_time + that duration.
2. A specific moment ("tomorrow at 6 PM") is the start_time; the deadline is
   start_time plus the mentioned duration, or the explicit end time.
3. Explicit start and end times are used as given.
4. No time at all: start_time = {now}, deadline = start_time + 1 hour.
deadline must never be null.
"""


class RawTaskDraft(BaseModel):
    """Fields as proposed by the model, before normalization."""

    title: str | None = None
    description: str | None = None
    start_time: str | None = None
    deadline: str | None = None
    status: str | None = None  # advisory only, always recomputed
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class TaskGenerator(Protocol):
    """External text-generation capability: one attempt, returns raw text."""

    def generate(self, text: str, now: datetime) -> str: ...


class OpenAITaskGenerator:
    """Chat-completions backed generator (single attempt, bounded timeout)."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        timeout_s: float,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._client: OpenAI | None = None

    @classmethod
    def from_settings(cls) -> "OpenAITaskGenerator":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            base_url=settings.OPENAI_BASE_URL,
            timeout_s=settings.DERIVATION_TIMEOUT_SECONDS,
        )

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        if not self.api_key or not self.api_key.strip():
            raise DerivationError("Text-to-task generation is not configured (OPENAI_API_KEY)")
        self._client = OpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout_s,
            max_retries=0,
        )
        return self._client

    def generate(self, text: str, now: datetime) -> str:
        client = self._get_client()
        prompt = PROMPT_TEMPLATE.format(now=now.isoformat())
        try:
            completion = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f'{prompt}\nUser Input: "{text}"'},
                ],
                temperature=0.0,
                max_tokens=300,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            logger.warning("task generation failed model=%s reason=%s", self.model, exc.__class__.__name__)
            raise DerivationError("Task generation service failed") from exc

        if not completion.choices:
            raise DerivationError("Task generation returned no choices")
        content = completion.choices[0].message.content
        if not content or not content.strip():
            raise DerivationError("Task generation returned empty content")
        return content


_generator: OpenAITaskGenerator | None = None


def get_task_generator() -> TaskGenerator:
    """FastAPI dependency; tests override it with a fake generator."""
    global _generator
    if _generator is None:
        _generator = OpenAITaskGenerator.from_settings()
    return _generator


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_raw_draft(raw: str) -> RawTaskDraft:
    """Decode the model output into a RawTaskDraft or raise DerivationError."""
    try:
        payload: Any = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError as exc:
        logger.warning("task generation returned invalid JSON: %r", raw[:200])
        raise DerivationError("Task generation returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise DerivationError("Task generation must return a JSON object")
    try:
        return RawTaskDraft.model_validate(payload)
    except PydanticValidationError as exc:
        raise DerivationError("Task generation returned malformed fields") from exc


def normalize_draft(raw: RawTaskDraft, now: datetime) -> TaskDraft:
    """Apply the normalization rules and recompute status."""
    title = (raw.title or "").strip()
    if not title:
        raise DerivationError("Derived task has no title")
    if raw.deadline is None or not raw.deadline.strip():
        raise DerivationError("Derived task has no deadline")
    try:
        start_time = parse_instant(raw.start_time, "start_time") if raw.start_time else None
        deadline = parse_instant(raw.deadline, "deadline")
    except InvalidTimestamp as exc:
        raise DerivationError(f"Derived task has an invalid timestamp: {exc.detail}") from exc

    return draft_task(
        title=title,
        description=raw.description,
        start_time=start_time,
        deadline=deadline,
        now=now,
    )


def derive_task(text: str, now: datetime, generator: TaskGenerator) -> TaskDraft:
    """Free text -> TaskDraft. One generator call; any failure is a DerivationError."""
    raw = generator.generate(text, now)
    draft = normalize_draft(parse_raw_draft(raw), now)
    logger.info(
        "derived task title=%r start_time=%s deadline=%s status=%s",
        draft.title,
        draft.start_time,
        draft.deadline,
        draft.status.value,
    )
    return draft
