# validation.py
# Plan shape checks and step-name coercion.
#
# The model is asked for {"plan": [{"name": ..., "query": ...}]}, but it
# drifts: "click" instead of "act", "wait until" instead of "observe".
# Everything the executor receives has passed through validate_plan().

import json
import re
from typing import Any

from web_pilot.models import ActionKind, Plan, PlanStep


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PlanValidationError(Exception):
    """Base class for plans that cannot be executed as submitted."""


class InvalidPlanShape(PlanValidationError):
    """Raised when the payload is not an object with a 'plan' array."""


class InvalidPlanStep(PlanValidationError):
    """Raised when a single step is malformed. Carries the offending index."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"Plan step {index} {reason}")
        self.index = index
        self.reason = reason


# ---------------------------------------------------------------------------
# Name normalization
# ---------------------------------------------------------------------------

_OBSERVE_HINTS = re.compile(r"ensure|verify|check|confirm")
_ACT_HINTS = re.compile(r"click|type|press|navigate|open|select|submit|scroll|hover")
_EXTRACT_HINTS = re.compile(r"read|get|scrape|capture|grab|copy|extract")


def normalize_name(name: str) -> ActionKind | None:
    """
    Map a free-form step name onto an ActionKind.

    Case-insensitive; first matching rule wins:
      1. exact canonical name
      2. starts with "wait", or mentions ensure/verify/check/confirm → observe
      3. mentions a mutating verb                                  → act
      4. mentions a reading verb                                    → extract

    Returns None when nothing matches.
    """
    n = name.strip().lower()
    try:
        return ActionKind(n)
    except ValueError:
        pass

    if n.startswith("wait") or _OBSERVE_HINTS.search(n):
        return ActionKind.OBSERVE
    if _ACT_HINTS.search(n):
        return ActionKind.ACT
    if _EXTRACT_HINTS.search(n):
        return ActionKind.EXTRACT
    return None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_plan(raw: Any) -> Plan:
    """
    Validate a decoded `{"plan": [...]}` payload and coerce step names.

    Raises InvalidPlanShape for a bad envelope, InvalidPlanStep(index)
    for the first bad step.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("plan"), list):
        raise InvalidPlanShape("Model did not return an object with a 'plan' array.")

    steps: list[PlanStep] = []
    for index, item in enumerate(raw["plan"]):
        if not isinstance(item, dict):
            raise InvalidPlanStep(index, "is not an object.")

        query = item.get("query")
        if not isinstance(query, str) or not query.strip():
            raise InvalidPlanStep(index, "must include a non-empty string 'query'.")

        name = item.get("name")
        kind = normalize_name(name) if isinstance(name, str) else None
        if kind is None:
            raise InvalidPlanStep(
                index,
                f"has invalid name {name!r}. Must be one of: observe | extract | act.",
            )

        steps.append(PlanStep(kind=kind, query=query))

    return Plan(steps=steps)


# ---------------------------------------------------------------------------
# Free-text fallback
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def parse_plan_text(content: str) -> Any | None:
    """
    Decode a plan object from model text that bypassed the finalize tool.

    Tries the whole string as JSON, then the first fenced code block.
    Returns None when neither decodes; the caller decides what that means.
    """
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    match = _FENCE.search(content)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
