# models.py
# Data contracts for the plan-then-execute web automation engine.
# No business logic lives here, only schema and validation.

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionKind(str, Enum):
    """The closed set of capabilities a plan step may use."""

    OBSERVE = "observe"
    EXTRACT = "extract"
    ACT = "act"

    @property
    def is_read(self) -> bool:
        return self is not ActionKind.ACT


class PlanStep(BaseModel):
    """A single atomic web-automation step."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    query: str = Field(..., min_length=1, description="Natural-language instruction.")


class Plan(BaseModel):
    """Ordered steps. Execution order is list order."""

    model_config = ConfigDict(frozen=True)

    steps: tuple[PlanStep, ...] = ()

    def __len__(self) -> int:
        return len(self.steps)

    def to_payload(self) -> dict:
        """The `{"plan": [...]}` shape the model emits and the API returns."""
        return {"plan": [{"name": s.kind.value, "query": s.query} for s in self.steps]}


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

_SLUG_SCHEME = re.compile(r"https?://")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_length: int = 60) -> str:
    """Filesystem-safe slug for artifact names."""
    slug = _SLUG_SCHEME.sub("", value.lower())
    slug = _SLUG_INVALID.sub("-", slug).strip("-")
    return slug[:max_length].rstrip("-") or "step"


class ArtifactRequest(BaseModel):
    """What the executor asks the artifact collaborator to record after a step."""

    model_config = ConfigDict(frozen=True)

    ordinal: int = Field(..., ge=1, description="1-based step position.")
    kind: ActionKind
    query: str

    @property
    def slug(self) -> str:
        return slugify(self.query)

    @property
    def stem(self) -> str:
        return f"{self.ordinal:02d}-{self.kind.value}-{self.slug}"


class TraceEntry(BaseModel):
    """One executed step: what ran, what it returned, what was captured."""

    model_config = ConfigDict(frozen=True)

    step: PlanStep
    output: str
    artifact: str | None = None


class ExecutionTrace(BaseModel):
    """Per-step results, same length and order as the executed plan."""

    entries: list[TraceEntry] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def outputs(self) -> list[str]:
        return [entry.output for entry in self.entries]

    @property
    def artifacts(self) -> list[str]:
        return [entry.artifact for entry in self.entries if entry.artifact is not None]


# ---------------------------------------------------------------------------
# Model transport
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A tool invocation requested by the language model."""

    id: str
    name: str
    arguments: str = Field(default="", description="Raw JSON argument string.")


class Completion(BaseModel):
    """One model turn: tool calls, free text, or (rarely) neither."""

    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ConversationState(BaseModel):
    """
    Transcript exchanged with the model during one negotiation.

    Immutable: every append returns a new state, so each round can be
    inspected or replayed in isolation.
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[dict, ...] = ()

    def append(self, *messages: dict) -> "ConversationState":
        return ConversationState(messages=self.messages + tuple(messages))

    def as_list(self) -> list[dict]:
        return [dict(message) for message in self.messages]

    def __len__(self) -> int:
        return len(self.messages)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class NavigationResult(BaseModel):
    """What `navigate` returns: the plan and its execution trace."""

    plan: Plan
    trace: ExecutionTrace

    @property
    def outputs(self) -> list[str]:
        return self.trace.outputs


class AutomationResult(BaseModel):
    """Caller-facing envelope for a whole task run."""

    success: bool
    plan: Plan = Field(default_factory=Plan)
    outputs: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    output: str | None = Field(default=None, description="Synthesized final answer.")
    error: str | None = None


class TaskRequest(BaseModel):
    """A natural-language task as submitted by a caller."""

    prompt: str = Field(..., min_length=1, max_length=1000)

    @field_validator("prompt", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value
