import asyncio
import json

import pytest

from conftest import (
    EndlessCompletions,
    RecordingCapabilities,
    ScriptedCompletions,
    finalize,
    tool_call,
)
from web_pilot.cache import ActionCache, cache_key
from web_pilot.models import ActionKind, Completion, ToolCall
from web_pilot.negotiator import (
    MAX_ROUNDS,
    NegotiationInProgress,
    NegotiationStatus,
    PlanNegotiator,
    PlanningExhausted,
    seed_conversation,
)
from web_pilot.tools import CapabilityTable
from web_pilot.validation import InvalidPlanShape, InvalidPlanStep


def _negotiator(turns, provider=None, **kwargs):
    completions = turns if not isinstance(turns, list) else ScriptedCompletions(turns)
    provider = provider or RecordingCapabilities()
    return PlanNegotiator(completions, CapabilityTable(provider), **kwargs), completions, provider


def _tool_messages(messages):
    return [m for m in messages if m["role"] == "tool"]


# ---------------------------------------------------------------------------
# Finalize path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_finalize_returns_validated_plan():
    negotiator, completions, provider = _negotiator(
        [finalize([("act", "google.com"), ("wait until loaded", "results"), ("extract", "top heading")])]
    )

    plan = await negotiator.plan("Search Google")

    assert [(s.kind, s.query) for s in plan.steps] == [
        (ActionKind.ACT, "google.com"),
        (ActionKind.OBSERVE, "results"),
        (ActionKind.EXTRACT, "top heading"),
    ]
    assert negotiator.status is NegotiationStatus.FINALIZED
    assert negotiator.rounds_used == 1
    assert provider.calls == []

    first_request = completions.requests[0]
    assert [m["role"] for m in first_request] == ["system", "user"]
    assert "Search Google" in first_request[1]["content"]


@pytest.mark.asyncio
async def test_finalize_with_empty_plan():
    negotiator, _, _ = _negotiator([finalize([])])
    plan = await negotiator.plan("Do nothing")
    assert len(plan) == 0
    assert negotiator.status is NegotiationStatus.FINALIZED


@pytest.mark.asyncio
async def test_finalize_invalid_step_fails():
    negotiator, _, _ = _negotiator([finalize([("act", "google.com"), ("dance", "wildly")])])

    with pytest.raises(InvalidPlanStep) as exc_info:
        await negotiator.plan("Dance")

    assert exc_info.value.index == 1
    assert negotiator.status is NegotiationStatus.FAILED


@pytest.mark.asyncio
async def test_finalize_malformed_arguments_is_shape_error():
    bad = Completion(tool_calls=[ToolCall(id="f", name="finalize_plan", arguments="{not json")])
    negotiator, _, _ = _negotiator([bad])

    with pytest.raises(InvalidPlanShape):
        await negotiator.plan("anything")
    assert negotiator.status is NegotiationStatus.FAILED


@pytest.mark.asyncio
async def test_finalize_missing_plan_field_is_shape_error():
    bad = Completion(tool_calls=[tool_call("finalize_plan", steps=[])])
    negotiator, _, _ = _negotiator([bad])

    with pytest.raises(InvalidPlanShape):
        await negotiator.plan("anything")


@pytest.mark.asyncio
async def test_finalize_ends_round_and_skips_later_calls():
    turn = Completion(
        tool_calls=[
            tool_call("observe", "c1", query="login button"),
            tool_call("finalize_plan", "c2", plan=[{"name": "act", "query": "click login"}]),
            tool_call("act", "c3", query="should not run"),
        ]
    )
    negotiator, _, provider = _negotiator([turn])

    plan = await negotiator.plan("Log in")

    assert len(plan) == 1
    assert provider.calls == [("observe", "login button")]


# ---------------------------------------------------------------------------
# Capability calls while planning
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_tool_results_are_tagged_to_their_calls():
    turns = [
        Completion(
            tool_calls=[
                tool_call("act", "c1", query="google.com"),
                tool_call("extract", "c2", query="page title"),
            ]
        ),
        finalize([("act", "google.com")]),
    ]
    provider = RecordingCapabilities(responses={"google.com": "NAVIGATED(https://google.com)", "page title": "Google"})
    negotiator, completions, _ = _negotiator(turns, provider)

    await negotiator.plan("Open Google")

    # Same-turn calls run one at a time, in the order returned.
    assert provider.calls == [("act", "google.com"), ("extract", "page title")]

    second_request = completions.requests[1]
    assistant = second_request[2]
    assert assistant["role"] == "assistant"
    assert [tc["id"] for tc in assistant["tool_calls"]] == ["c1", "c2"]

    tool_messages = _tool_messages(second_request)
    assert [(m["tool_call_id"], m["name"], m["content"]) for m in tool_messages] == [
        ("c1", "act", "NAVIGATED(https://google.com)"),
        ("c2", "extract", "Google"),
    ]


@pytest.mark.asyncio
async def test_repeated_extract_is_served_from_cache():
    turns = [
        Completion(tool_calls=[tool_call("extract", "c1", query="headline")]),
        Completion(tool_calls=[tool_call("extract", "c2", query="headline")]),
        finalize([("extract", "headline")]),
    ]
    negotiator, completions, provider = _negotiator(turns)

    await negotiator.plan("Read the headline")

    assert provider.counts()[("extract", "headline")] == 1
    results = [m["content"] for m in _tool_messages(completions.requests[2])]
    assert len(results) == 2
    assert results[0] == results[1]


@pytest.mark.asyncio
async def test_reads_separated_by_another_read_still_hit():
    turns = [
        Completion(tool_calls=[tool_call("observe", "c1", query="results")]),
        Completion(tool_calls=[tool_call("extract", "c2", query="title")]),
        Completion(tool_calls=[tool_call("observe", "c3", query="results")]),
        finalize([]),
    ]
    negotiator, _, provider = _negotiator(turns)

    await negotiator.plan("Look around")

    assert provider.counts()[("observe", "results")] == 1


@pytest.mark.asyncio
async def test_read_after_act_misses_cache():
    turns = [
        Completion(tool_calls=[tool_call("observe", "c1", query="results")]),
        Completion(tool_calls=[tool_call("act", "c2", query="click next page")]),
        Completion(tool_calls=[tool_call("observe", "c3", query="results")]),
        finalize([]),
    ]
    negotiator, completions, provider = _negotiator(turns)

    await negotiator.plan("Page through results")

    assert provider.counts()[("observe", "results")] == 2
    results = [m["content"] for m in _tool_messages(completions.requests[3]) if m["name"] == "observe"]
    assert results[0] != results[1]


@pytest.mark.asyncio
async def test_act_is_never_served_from_cache():
    turns = [
        Completion(tool_calls=[tool_call("act", "c1", query="scroll down")]),
        Completion(tool_calls=[tool_call("act", "c2", query="scroll down")]),
        finalize([]),
    ]
    negotiator, _, provider = _negotiator(turns)

    await negotiator.plan("Scroll")

    assert provider.counts()[("act", "scroll down")] == 2


@pytest.mark.asyncio
async def test_injected_cache_is_consulted():
    turns = [
        Completion(tool_calls=[tool_call("extract", "c1", query="headline")]),
        finalize([]),
    ]
    negotiator, completions, provider = _negotiator(turns)
    cache = ActionCache({cache_key(ActionKind.EXTRACT, "headline"): "Cached headline"})

    await negotiator.plan("Read", cache=cache)

    assert provider.calls == []
    assert _tool_messages(completions.requests[1])[0]["content"] == "Cached headline"


@pytest.mark.asyncio
async def test_each_session_gets_a_fresh_cache():
    turns = [
        Completion(tool_calls=[tool_call("extract", "c1", query="headline")]),
        finalize([]),
        Completion(tool_calls=[tool_call("extract", "c2", query="headline")]),
        finalize([]),
    ]
    negotiator, _, provider = _negotiator(turns)

    await negotiator.plan("first")
    await negotiator.plan("second")

    assert provider.counts()[("extract", "headline")] == 2


@pytest.mark.asyncio
async def test_capability_failure_becomes_error_payload():
    turns = [
        Completion(tool_calls=[tool_call("extract", "c1", query="price")]),
        Completion(tool_calls=[tool_call("extract", "c2", query="price")]),
        finalize([("extract", "price")]),
    ]
    provider = RecordingCapabilities(fail_on={"price"})
    negotiator, completions, _ = _negotiator(turns, provider)

    plan = await negotiator.plan("Get the price")

    assert len(plan) == 1
    payload = json.loads(_tool_messages(completions.requests[1])[0]["content"])
    assert "blew up" in payload["error"]
    # The failure is cached like any other read result.
    assert provider.counts()[("extract", "price")] == 1
    second = json.loads(_tool_messages(completions.requests[2])[1]["content"])
    assert second == payload


@pytest.mark.asyncio
async def test_unknown_tool_returns_error_and_continues():
    turns = [
        Completion(tool_calls=[tool_call("teleport", "c1", query="mars")]),
        finalize([("act", "google.com")]),
    ]
    negotiator, completions, provider = _negotiator(turns)

    plan = await negotiator.plan("Go to Mars")

    assert len(plan) == 1
    message = _tool_messages(completions.requests[1])[0]
    assert message["tool_call_id"] == "c1"
    assert json.loads(message["content"]) == {"error": "Unknown tool 'teleport'."}
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unknown_tool_name_with_markup_brackets_is_reported():
    turns = [
        Completion(tool_calls=[tool_call("[/]", "c1", query="x")]),
        finalize([("act", "google.com")]),
    ]
    negotiator, completions, _ = _negotiator(turns)

    plan = await negotiator.plan("Anything")

    assert len(plan) == 1
    assert negotiator.status is NegotiationStatus.FINALIZED
    message = _tool_messages(completions.requests[1])[0]
    assert json.loads(message["content"]) == {"error": "Unknown tool '[/]'."}


@pytest.mark.asyncio
async def test_capability_call_with_bad_arguments_returns_error():
    turns = [
        Completion(
            tool_calls=[
                ToolCall(id="c1", name="observe", arguments="{oops"),
                tool_call("extract", "c2"),
            ]
        ),
        finalize([]),
    ]
    negotiator, completions, provider = _negotiator(turns)

    await negotiator.plan("Observe")

    messages = _tool_messages(completions.requests[1])
    assert len(messages) == 2
    assert all("error" in json.loads(m["content"]) for m in messages)
    assert provider.calls == []


# ---------------------------------------------------------------------------
# Free-text fallback
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_text_plan_is_accepted():
    content = json.dumps({"plan": [{"name": "click", "query": "the login button"}]})
    negotiator, _, _ = _negotiator([Completion(content=content)])

    plan = await negotiator.plan("Log in")

    assert plan.steps[0].kind is ActionKind.ACT
    assert negotiator.status is NegotiationStatus.FINALIZED


@pytest.mark.asyncio
async def test_fenced_text_plan_is_accepted():
    content = 'Sure.\n```json\n{"plan": [{"name": "extract", "query": "top story"}]}\n```'
    negotiator, _, _ = _negotiator([Completion(content=content)])

    plan = await negotiator.plan("Top story")

    assert plan.steps[0].query == "top story"


@pytest.mark.asyncio
async def test_unparseable_text_gets_another_round():
    turns = [
        Completion(content="Let me think about this."),
        Completion(content=None),
        finalize([("act", "cnn.com")]),
    ]
    negotiator, completions, _ = _negotiator(turns)

    plan = await negotiator.plan("CNN")

    assert len(plan) == 1
    assert negotiator.rounds_used == 3
    last = completions.requests[2]
    assert last[2] == {"role": "assistant", "content": "Let me think about this."}
    assert last[3] == {"role": "assistant", "content": ""}


@pytest.mark.asyncio
async def test_text_json_without_plan_fails():
    negotiator, _, _ = _negotiator([Completion(content='{"thoughts": "hmm"}')])

    with pytest.raises(InvalidPlanShape):
        await negotiator.plan("anything")
    assert negotiator.status is NegotiationStatus.FAILED


# ---------------------------------------------------------------------------
# Round budget
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_exhausts_after_sixteen_rounds():
    completions = EndlessCompletions()
    negotiator, _, _ = _negotiator(completions)

    with pytest.raises(PlanningExhausted) as exc_info:
        await negotiator.plan("Never decide")

    assert MAX_ROUNDS == 16
    assert completions.calls == 16
    assert exc_info.value.rounds == 16
    assert negotiator.rounds_used == 16
    assert negotiator.status is NegotiationStatus.EXHAUSTED


@pytest.mark.asyncio
async def test_finalize_on_last_round_succeeds():
    turns = [Completion(content="thinking")] * 2 + [finalize([])]
    negotiator, _, _ = _negotiator(turns, max_rounds=3)

    await negotiator.plan("Just in time")

    assert negotiator.status is NegotiationStatus.FINALIZED


def test_max_rounds_must_be_positive():
    with pytest.raises(ValueError):
        _negotiator([], max_rounds=0)


def test_seed_conversation():
    conversation = seed_conversation("Check the weather in New York")
    assert len(conversation) == 2
    system, user = conversation.as_list()
    assert system["role"] == "system" and "finalize_plan" in system["content"]
    assert "json" in system["content"]
    assert user["role"] == "user" and "Check the weather in New York" in user["content"]


# ---------------------------------------------------------------------------
# Session ownership
# ---------------------------------------------------------------------------


class GatedCompletions:
    """Holds the first turn open until released, then finalizes."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, messages, tools) -> Completion:
        self.entered.set()
        await self.release.wait()
        return finalize([("act", "google.com")])


@pytest.mark.asyncio
async def test_second_session_on_busy_negotiator_is_rejected():
    completions = GatedCompletions()
    negotiator, _, _ = _negotiator(completions)

    first = asyncio.create_task(negotiator.plan("First task"))
    await completions.entered.wait()

    with pytest.raises(NegotiationInProgress):
        await negotiator.plan("Second task")
    assert negotiator.status is NegotiationStatus.NEGOTIATING

    completions.release.set()
    plan = await first

    assert len(plan) == 1
    assert negotiator.status is NegotiationStatus.FINALIZED


@pytest.mark.asyncio
async def test_negotiator_is_reusable_after_a_failed_session():
    turns = [Completion(content='{"nope": []}'), finalize([])]
    negotiator, _, _ = _negotiator(turns)

    with pytest.raises(InvalidPlanShape):
        await negotiator.plan("Broken")
    await negotiator.plan("Fine")

    assert negotiator.status is NegotiationStatus.FINALIZED
