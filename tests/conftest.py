"""
Shared fakes for the engine's collaborators.
"""
import json
from collections import Counter

import pytest

from web_pilot import display
from web_pilot.models import ArtifactRequest, Completion, ToolCall


@pytest.fixture(autouse=True)
def quiet_console():
    display.set_quiet(True)
    yield
    display.set_quiet(False)


def tool_call(name: str, call_id: str = "call_1", **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


def finalize(steps: list[tuple[str, str]], call_id: str = "call_final") -> Completion:
    plan = [{"name": name, "query": query} for name, query in steps]
    return Completion(tool_calls=[tool_call("finalize_plan", call_id, plan=plan)])


class ScriptedCompletions:
    """Completion provider that replays a fixed list of turns."""

    def __init__(self, turns: list[Completion]) -> None:
        self._turns = list(turns)
        self.requests: list[list[dict]] = []

    async def complete(self, messages, tools) -> Completion:
        self.requests.append(list(messages))
        if not self._turns:
            raise AssertionError("ScriptedCompletions ran out of turns")
        return self._turns.pop(0)


class EndlessCompletions:
    """Never finalizes: answers every round with unparseable prose."""

    def __init__(self) -> None:
        self.calls = 0

    async def complete(self, messages, tools) -> Completion:
        self.calls += 1
        return Completion(content="Still thinking about it.")


class RecordingCapabilities:
    """Capability provider that records calls and can be told to fail."""

    def __init__(self, responses: dict[str, str] | None = None, fail_on: set[str] | None = None):
        self.responses = responses or {}
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, str]] = []

    def counts(self) -> Counter:
        return Counter(self.calls)

    async def _answer(self, kind: str, query: str) -> str:
        self.calls.append((kind, query))
        if query in self.fail_on:
            raise RuntimeError(f"{kind} blew up on {query!r}")
        return self.responses.get(query, f"{kind.upper()}_RESULT({query}) #{len(self.calls)}")

    async def observe(self, query: str) -> str:
        return await self._answer("observe", query)

    async def extract(self, query: str) -> str:
        return await self._answer("extract", query)

    async def act(self, query: str) -> str:
        return await self._answer("act", query)


class RecordingArtifacts:
    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.requests: list[ArtifactRequest] = []

    async def capture(self, request: ArtifactRequest) -> str | None:
        self.requests.append(request)
        if request.ordinal in self.fail_on:
            raise OSError("disk full")
        return f"shots/{request.stem}.jpg"
