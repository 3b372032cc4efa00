# synthesis.py
# Pick one human-meaningful answer out of a run's outputs.
#
# Preference order: the latest usable extract output (cleaned), then the
# latest output that looks like a navigation or substantive result, then
# a fixed sentence.

import re

from web_pilot.capabilities import is_error_payload
from web_pilot.models import ActionKind, Plan

FALLBACK_RESULT = "Task completed successfully - no specific content extracted"

MIN_EXTRACT_LENGTH = 10
MIN_FALLBACK_LENGTH = 20

_TECHNICAL_PREFIXES = [
    re.compile(r"^[A-Z_]+\([^)]*\)\s*=>\s*"),
    re.compile(r"^Found text content:\s*"),
    re.compile(r"^Headline:\s*"),
    re.compile(r"^Current temperature:\s*"),
    re.compile(r"^High/Low temperatures:\s*"),
]

_UNUSABLE_MARKERS = ("(not found", "(extraction failed")
_NAVIGATION_MARKER = "NAVIGATED("
_ECHO_MARKERS = ("ACTION_OK", "Observed:")


def clean_output(output: str) -> str:
    """Strip the provider's technical prefixes from an extract result."""
    cleaned = output
    for prefix in _TECHNICAL_PREFIXES:
        cleaned = prefix.sub("", cleaned)
    return cleaned.strip()


def _usable_extract(output: str) -> str | None:
    if is_error_payload(output):
        return None
    cleaned = clean_output(output)
    if len(cleaned) <= MIN_EXTRACT_LENGTH:
        return None
    if any(marker in cleaned for marker in _UNUSABLE_MARKERS):
        return None
    return cleaned


def _meaningful(output: str) -> bool:
    if _NAVIGATION_MARKER in output:
        return True
    if is_error_payload(output) or any(m in output for m in _UNUSABLE_MARKERS):
        return False
    return len(output) > MIN_FALLBACK_LENGTH and not any(m in output for m in _ECHO_MARKERS)


def synthesize(plan: Plan, outputs: list[str]) -> str:
    """Return the final answer for a run. Outputs align index-for-index with plan steps."""
    for step, output in reversed(list(zip(plan.steps, outputs))):
        if step.kind is not ActionKind.EXTRACT:
            continue
        cleaned = _usable_extract(output)
        if cleaned is not None:
            return cleaned

    candidates = [output for output in outputs if _meaningful(output)]
    if candidates:
        return candidates[-1]

    return FALLBACK_RESULT
