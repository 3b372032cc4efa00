# capabilities.py
# Collaborator contracts: the capability provider that drives the page and
# the artifact collaborator that records each executed step.
#
# Concrete browser control lives outside this package. DryRunCapabilities
# answers every call with a canned string so the engine can be exercised
# without a page.

import json
import re
from typing import Protocol

from web_pilot.models import ActionKind, ArtifactRequest


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CapabilityInvocationError(Exception):
    """A capability provider call failed. Absorbed into the step output."""

    def __init__(self, kind: ActionKind, query: str, cause: BaseException) -> None:
        super().__init__(str(cause) or type(cause).__name__)
        self.kind = kind
        self.query = query
        self.cause = cause

    def to_payload(self) -> str:
        return error_payload(str(self))


class ArtifactCaptureError(Exception):
    """An artifact could not be recorded. Logged, never propagated."""

    def __init__(self, request: ArtifactRequest, cause: BaseException) -> None:
        super().__init__(
            f"Failed to capture artifact for step {request.ordinal} "
            f"({request.kind.value}): {cause}"
        )
        self.request = request
        self.cause = cause


# ---------------------------------------------------------------------------
# Error payloads
# ---------------------------------------------------------------------------


def error_payload(message: str) -> str:
    """JSON-shaped error string used wherever a failure becomes data."""
    return json.dumps({"error": message})


def is_error_payload(text: str) -> bool:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return False
    return isinstance(data, dict) and set(data) == {"error"}


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class CapabilityProvider(Protocol):
    """observe / extract / act against one live automation session."""

    async def observe(self, query: str) -> str: ...

    async def extract(self, query: str) -> str: ...

    async def act(self, query: str) -> str: ...


class ArtifactCollaborator(Protocol):
    """Records one artifact (e.g. a screenshot) per executed step."""

    async def capture(self, request: ArtifactRequest) -> str | None: ...


# ---------------------------------------------------------------------------
# Offline implementations
# ---------------------------------------------------------------------------

_NAVIGATION_PATTERNS = [
    re.compile(r"navigate to ['\"]([^'\"]+)['\"]", re.IGNORECASE),
    re.compile(r"navigate to\s+(\S+)", re.IGNORECASE),
    re.compile(r"^go to\s+(\S+)", re.IGNORECASE),
    re.compile(r"^([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})$"),
    re.compile(r"^(https?://\S+)", re.IGNORECASE),
]


def resolve_navigation_url(query: str) -> str | None:
    """
    Return the absolute URL a navigation-style query points at, else None.

    Accepts "navigate to 'x'", "navigate to x", "go to x", a bare domain
    such as "en.wikipedia.org", or a full http(s) URL.
    """
    text = query.strip()
    for pattern in _NAVIGATION_PATTERNS:
        match = pattern.search(text)
        if match:
            url = match.group(1)
            if not url.lower().startswith(("http://", "https://")):
                url = "https://" + url
            return url
    return None


class DryRunCapabilities:
    """Capability provider that touches nothing and echoes intent."""

    def __init__(self) -> None:
        self.calls: list[tuple[ActionKind, str]] = []

    async def observe(self, query: str) -> str:
        self.calls.append((ActionKind.OBSERVE, query))
        return f"Observed: {query}"

    async def extract(self, query: str) -> str:
        self.calls.append((ActionKind.EXTRACT, query))
        return f'EXTRACTED("{query}") => "(dry run)"'

    async def act(self, query: str) -> str:
        self.calls.append((ActionKind.ACT, query))
        url = resolve_navigation_url(query)
        if url:
            return f"NAVIGATED({url})"
        return f'ACTION_OK("{query}")'


class NullArtifacts:
    """Artifact collaborator that records nothing."""

    async def capture(self, request: ArtifactRequest) -> str | None:
        return None
