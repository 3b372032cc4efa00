# executor.py
# Sequential plan execution.
#
# Steps run strictly in plan order against the same automation session;
# step N+1 may depend on what step N did to the page. A failing step
# does not stop the run; its output is the error payload. After every
# step exactly one artifact is requested.

from web_pilot import display
from web_pilot.capabilities import ArtifactCaptureError, ArtifactCollaborator
from web_pilot.models import ArtifactRequest, ExecutionTrace, Plan, PlanStep, TraceEntry
from web_pilot.tools import CapabilityTable


class StepExecutor:
    """Runs a validated Plan and returns one TraceEntry per step."""

    def __init__(self, capabilities: CapabilityTable, artifacts: ArtifactCollaborator) -> None:
        self._capabilities = capabilities
        self._artifacts = artifacts

    async def execute(self, plan: Plan) -> ExecutionTrace:
        """
        Execute every step in order. Never raises for step or artifact
        failures; len(trace) == len(plan) always holds.
        """
        trace = ExecutionTrace()
        total = len(plan)
        display.execution_start(total)

        for ordinal, step in enumerate(plan.steps, start=1):
            display.step_start(ordinal, total, step)

            output = await self._capabilities.invoke(step.kind, step.query)
            display.step_output(output)

            artifact = await self._capture(ordinal, step)
            trace.entries.append(TraceEntry(step=step, output=output, artifact=artifact))

        return trace

    async def _capture(self, ordinal: int, step: PlanStep) -> str | None:
        request = ArtifactRequest(ordinal=ordinal, kind=step.kind, query=step.query)
        try:
            reference = await self._artifacts.capture(request)
        except Exception as exc:
            display.artifact_capture_failed(str(ArtifactCaptureError(request, exc)))
            return None

        if reference:
            display.artifact_saved(reference)
        return reference or None
