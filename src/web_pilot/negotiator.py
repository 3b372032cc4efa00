# negotiator.py
# Plan negotiation with the planner model.
#
# The model may call observe / extract / act while it plans, to look at
# the live page before committing. It ends the session by calling
# finalize_plan (or, as a fallback, by replying with the plan as text).
#
# Control flow per round:
#   transcript → completion → tool calls? → resolve each in order → loop
#                                         → finalize_plan → validate → done
#                           → text?       → parse + validate → done
#                                         → unparseable → keep talking
#
# Rounds are bounded; running out is PlanningExhausted.

import json
from enum import Enum

from web_pilot import display
from web_pilot.cache import ActionCache
from web_pilot.capabilities import error_payload
from web_pilot.llm import CompletionProvider
from web_pilot.models import Completion, ConversationState, Plan, ToolCall
from web_pilot.tools import FINALIZE_TOOL, CapabilityTable, planner_tools
from web_pilot.validation import InvalidPlanShape, parse_plan_text, validate_plan

MAX_ROUNDS = 16


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PlanningExhausted(Exception):
    """Raised when the round budget runs out before a plan is finalized."""

    def __init__(self, rounds: int) -> None:
        super().__init__(
            f"Planning loop exceeded {rounds} rounds without a final plan."
        )
        self.rounds = rounds


class NegotiationInProgress(RuntimeError):
    """Raised when plan() is called on a negotiator that is already negotiating."""

    def __init__(self) -> None:
        super().__init__(
            "This negotiator is already running a session; use one negotiator per session."
        )


class NegotiationStatus(str, Enum):
    NEGOTIATING = "negotiating"
    FINALIZED = "finalized"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

PLANNER_SYSTEM_PROMPT = """\
You are a planning agent that turns a user request into natural-language web \
automation steps.

You must produce json. Your responses must be valid json whenever you return \
the final plan.

TOOLS:
- observe(query): look for elements or wait for page conditions, in NATURAL LANGUAGE
  (e.g. "wait until the search results appear", "look for the login button")
- extract(query): read text or information from the page, in NATURAL LANGUAGE
  (e.g. "get the order status text", "extract the product title")
- act(query): perform an action, in NATURAL LANGUAGE
  (e.g. "click the login button", "type my email address", "scroll down")

You may call observe / extract / act while planning to inspect the live page.

RULES FOR STEP QUERIES:
1) Never use CSS selectors, IDs or markup terms (no #, ., div, span, ...).
2) Describe elements by visible text or purpose: "search box", "submit button".
3) Use natural verbs: "click", "type", "scroll", "look for".
4) For navigation use the bare domain: "google.com", not "navigate to google.com".
5) Be specific: "click the blue login button", "find the order tracking section".

PLANNING STRATEGY:
1) Break the request into the steps a person would take.
2) Start with navigation when needed.
3) Handle sign-in if the task requires it.
4) Move to the relevant section of the site.
5) Finish with extract steps that read the information the user asked for.

WHEN READY:
Call the tool "finalize_plan" exactly once with the full plan as json: \
{ "plan": [ { "name": "observe" | "extract" | "act", "query": "..." } ] }.\
"""


def planner_user_prompt(task: str) -> str:
    return (
        f'User Request: "{task}"\n\n'
        "Convert this request into a step-by-step plan of natural-language "
        "instructions, each using only {observe, extract, act}.\n\n"
        "Good queries look like:\n"
        '- "google.com" (navigation)\n'
        '- "look for the sign in button"\n'
        '- "type the search term into the search box"\n'
        '- "get the tracking information for the latest order"\n\n'
        'When ready, call "finalize_plan" with json: '
        '{ "plan": [ { "name": "...", "query": "..." } ] }.\n'
        "Return json only."
    )


def seed_conversation(task: str) -> ConversationState:
    return ConversationState().append(
        {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
        {"role": "user", "content": planner_user_prompt(task)},
    )


# ---------------------------------------------------------------------------
# Transcript helpers
# ---------------------------------------------------------------------------


def _assistant_turn(completion: Completion) -> dict:
    return {
        "role": "assistant",
        "content": completion.content,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in completion.tool_calls
        ],
    }


def _tool_message(call: ToolCall, content: str) -> dict:
    return {"role": "tool", "tool_call_id": call.id, "name": call.name, "content": content}


def _decode_arguments(call: ToolCall) -> dict:
    """Raises ValueError when the arguments are not a JSON object."""
    try:
        args = json.loads(call.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError(f"Arguments for '{call.name}' are not valid json: {exc}") from exc
    if not isinstance(args, dict):
        raise ValueError(f"Arguments for '{call.name}' must be a json object.")
    return args


# ---------------------------------------------------------------------------
# Negotiator
# ---------------------------------------------------------------------------


class PlanNegotiator:
    """
    Bounded tool-calling loop that ends in a validated Plan.

    Each call to plan() is one session: a fresh transcript and, unless one
    is injected, a fresh ActionCache. Status reflects the latest session,
    so one negotiator runs one session at a time; starting plan() while
    another is in flight raises NegotiationInProgress.

    Example:
        negotiator = PlanNegotiator(completions, CapabilityTable(provider))
        plan = await negotiator.plan("Go to Hacker News and get the top 3 stories")
    """

    def __init__(
        self,
        completions: CompletionProvider,
        capabilities: CapabilityTable,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1.")
        self._completions = completions
        self._capabilities = capabilities
        self._max_rounds = max_rounds
        self._tools = planner_tools()
        self.status = NegotiationStatus.NEGOTIATING
        self.rounds_used = 0
        self._in_flight = False

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    # ------------------------------------------------------------------
    # Session loop
    # ------------------------------------------------------------------

    async def plan(self, task: str, cache: ActionCache | None = None) -> Plan:
        """
        Negotiate a plan for `task`.

        Raises PlanningExhausted when the budget runs out, and lets
        InvalidPlanShape / InvalidPlanStep from a bad finalize propagate.
        """
        if self._in_flight:
            raise NegotiationInProgress()
        self._in_flight = True
        try:
            return await self._negotiate(task, cache)
        finally:
            self._in_flight = False

    async def _negotiate(self, task: str, cache: ActionCache | None) -> Plan:
        if cache is None:
            cache = ActionCache()
        conversation = seed_conversation(task)
        self.status = NegotiationStatus.NEGOTIATING
        self.rounds_used = 0

        for round_no in range(1, self._max_rounds + 1):
            self.rounds_used = round_no
            display.negotiation_round(round_no, self._max_rounds)
            try:
                conversation, plan = await self.run_round(conversation, cache)
            except Exception as exc:
                self.status = NegotiationStatus.FAILED
                display.planning_failed(str(exc))
                raise

            if plan is not None:
                self.status = NegotiationStatus.FINALIZED
                display.plan_finalized(plan, round_no)
                return plan

        self.status = NegotiationStatus.EXHAUSTED
        error = PlanningExhausted(self._max_rounds)
        display.planning_failed(str(error))
        raise error

    async def run_round(
        self, conversation: ConversationState, cache: ActionCache
    ) -> tuple[ConversationState, Plan | None]:
        """
        One model turn. Returns the extended transcript and, if the model
        finalized, the validated plan.
        """
        completion = await self._completions.complete(conversation.as_list(), self._tools)

        if completion.tool_calls:
            conversation = conversation.append(_assistant_turn(completion))
            for call in completion.tool_calls:
                if call.name == FINALIZE_TOOL:
                    try:
                        args = _decode_arguments(call)
                    except ValueError as exc:
                        raise InvalidPlanShape(str(exc)) from exc
                    plan = validate_plan(args)
                    conversation = conversation.append(
                        _tool_message(call, json.dumps({"status": "received"}))
                    )
                    return conversation, plan

                result = await self._resolve(call, cache)
                conversation = conversation.append(_tool_message(call, result))
            return conversation, None

        # Fallback: the model answered in text instead of calling finalize_plan.
        content = completion.content or ""
        if content.strip():
            raw = parse_plan_text(content)
            if raw is not None:
                return conversation, validate_plan(raw)
            display.free_text_unparsed(content)
        return conversation.append({"role": "assistant", "content": content}), None

    # ------------------------------------------------------------------
    # Capability calls during planning
    # ------------------------------------------------------------------

    async def _resolve(self, call: ToolCall, cache: ActionCache) -> str:
        kind = CapabilityTable.lookup(call.name)
        if kind is None:
            display.unknown_tool(call.name)
            return error_payload(f"Unknown tool '{call.name}'.")

        try:
            args = _decode_arguments(call)
        except ValueError as exc:
            display.bad_tool_arguments(call.name, str(exc))
            return error_payload(str(exc))

        query = args.get("query")
        if not isinstance(query, str):
            display.bad_tool_arguments(call.name, "missing string 'query'")
            return error_payload(f"Tool '{call.name}' requires a string 'query'.")

        display.tool_call(kind.value, query)

        if not kind.is_read:
            result = await self._capabilities.invoke(kind, query)
            cache.mark_stale()
            display.cache_invalidated()
            display.tool_result(result)
            return result

        cached = cache.get(kind, query)
        if cached is not None:
            display.cache_hit(kind.value, query)
            return cached

        result = await self._capabilities.invoke(kind, query)
        cache.put(kind, query, result)
        display.tool_result(result)
        return result
