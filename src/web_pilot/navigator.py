# navigator.py
# Web Pilot facade
#
# The Navigator owns one automation session for the lifetime of a task:
# the planner model proposes, the capability provider acts, and this class
# wires the two together.
#
# Control flow:
#   task → PlanNegotiator (tools + read cache) → validated Plan
#        → StepExecutor (one output + one artifact per step)
#        → synthesize() → final answer
#
# All terminal output is delegated to display.py; no formatting here.

from openai import OpenAIError
from pydantic import ValidationError

from web_pilot import display
from web_pilot.cache import ActionCache
from web_pilot.capabilities import ArtifactCollaborator, CapabilityProvider, NullArtifacts
from web_pilot.config import NavigatorConfig
from web_pilot.executor import StepExecutor
from web_pilot.llm import CompletionError, CompletionProvider, OpenAICompletions
from web_pilot.models import (
    AutomationResult,
    ExecutionTrace,
    NavigationResult,
    Plan,
    TaskRequest,
)
from web_pilot.negotiator import MAX_ROUNDS, PlanNegotiator, PlanningExhausted
from web_pilot.synthesis import synthesize
from web_pilot.tools import CapabilityTable
from web_pilot.validation import PlanValidationError

EXAMPLE_PROMPTS: dict[str, str] = {
    "google_search": "Go to Google and search for OpenAI",
    "news_extraction": "Go to CNN and get the top news story",
    "wikipedia_research": "Visit Wikipedia and find a random article about science",
    "ecommerce": "Go to Amazon and search for wireless headphones",
    "weather_check": "Check the weather in New York",
    "hacker_news": "Go to Hacker News and get the top 3 stories",
}

# Faults that end a run before execution starts.
PLANNING_ERRORS = (
    PlanValidationError,
    PlanningExhausted,
    CompletionError,
    OpenAIError,
)


class Navigator:
    """
    Plan-then-execute entry point for one automation session.

    Example:
        navigator = Navigator(
            completions=OpenAICompletions(model="gpt-5", api_key="sk-..."),
            capabilities=my_browser_provider,
            artifacts=my_screenshot_writer,
        )
        result = await navigator.run("Go to Hacker News and get the top 3 stories")
    """

    def __init__(
        self,
        completions: CompletionProvider,
        capabilities: CapabilityProvider,
        artifacts: ArtifactCollaborator | None = None,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        table = CapabilityTable(capabilities)
        self.negotiator = PlanNegotiator(completions, table, max_rounds=max_rounds)
        self.executor = StepExecutor(table, artifacts or NullArtifacts())

    @classmethod
    def from_config(
        cls,
        config: NavigatorConfig,
        capabilities: CapabilityProvider,
        artifacts: ArtifactCollaborator | None = None,
    ) -> "Navigator":
        """Build a navigator backed by the OpenAI adapter. Requires an API key."""
        display.set_quiet(config.quiet)
        completions = OpenAICompletions(
            model=config.model,
            api_key=config.require_api_key(),
            base_url=config.base_url,
            temperature=config.temperature,
        )
        display.banner(config.model)
        return cls(completions, capabilities, artifacts, max_rounds=config.max_rounds)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def plan(self, task: str, cache: ActionCache | None = None) -> Plan:
        return await self.negotiator.plan(task, cache=cache)

    async def execute(self, plan: Plan) -> ExecutionTrace:
        return await self.executor.execute(plan)

    async def navigate(self, task: str) -> NavigationResult:
        """Plan, then execute. Planning faults propagate."""
        plan = await self.plan(task)
        trace = await self.execute(plan)
        return NavigationResult(plan=plan, trace=trace)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, task: str) -> AutomationResult:
        """
        Full pipeline entry point.

        Returns an AutomationResult in all cases. Planning faults become
        success=False with the error message; step failures are embedded
        in the outputs of a successful result.
        """
        try:
            request = TaskRequest(prompt=task)
        except ValidationError as exc:
            message = f"Invalid task: {exc.errors()[0]['msg']}"
            display.halt(message)
            return AutomationResult(success=False, error=message)

        display.prompt_received(request.prompt)

        try:
            result = await self.navigate(request.prompt)
        except PLANNING_ERRORS as exc:
            display.halt(str(exc))
            return AutomationResult(success=False, error=str(exc))

        output = synthesize(result.plan, result.outputs)
        display.final_result(output)
        return AutomationResult(
            success=True,
            plan=result.plan,
            outputs=result.outputs,
            artifacts=result.trace.artifacts,
            output=output,
        )
