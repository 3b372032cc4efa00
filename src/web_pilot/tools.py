# tools.py
# Tool surface offered to the planner model, and the handler table that
# routes each ActionKind to the capability provider.
#
# The negotiator and executor never call provider methods directly; they
# go through CapabilityTable.invoke(), which turns provider failures into
# error payload strings.

from typing import Awaitable, Callable

from web_pilot import display
from web_pilot.capabilities import CapabilityInvocationError, CapabilityProvider
from web_pilot.models import ActionKind

FINALIZE_TOOL = "finalize_plan"

Handler = Callable[[str], Awaitable[str]]


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_QUERY_PARAMS = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": (
                "A natural language instruction describing what to do, using "
                "human-readable terms like 'login button' instead of CSS selectors."
            ),
        },
    },
    "required": ["query"],
    "additionalProperties": False,
}

_CAPABILITY_DESCRIPTIONS: dict[ActionKind, str] = {
    ActionKind.OBSERVE: (
        "Look for elements or wait for conditions using natural language "
        "(e.g., 'wait until the search results appear', 'look for the login button'). "
        "NO CSS selectors or IDs."
    ),
    ActionKind.EXTRACT: (
        "Get information from the page using natural language descriptions "
        "(e.g., 'get the order status', 'extract the product title'). "
        "NO CSS selectors or IDs."
    ),
    ActionKind.ACT: (
        "Perform actions using natural language (e.g., 'click the login button', "
        "'type email address', 'scroll down'). NO CSS selectors or IDs."
    ),
}


def _function(name: str, description: str, parameters: dict) -> dict:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


def finalize_tool() -> dict:
    """Schema tool that clamps the final plan to the three step kinds."""
    return _function(
        FINALIZE_TOOL,
        "Return the final plan as an array of steps. Each step must be one of "
        "{observe, extract, act}.",
        {
            "type": "object",
            "properties": {
                "plan": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "enum": [k.value for k in ActionKind]},
                            "query": {"type": "string"},
                        },
                        "required": ["name", "query"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["plan"],
            "additionalProperties": False,
        },
    )


def planner_tools() -> list[dict]:
    """observe, extract, act, then finalize_plan."""
    tools = [
        _function(kind.value, _CAPABILITY_DESCRIPTIONS[kind], _QUERY_PARAMS)
        for kind in ActionKind
    ]
    tools.append(finalize_tool())
    return tools


# ---------------------------------------------------------------------------
# Handler table
# ---------------------------------------------------------------------------


class CapabilityTable:
    """
    Routes an ActionKind to the matching provider coroutine.

    The table is built once per provider and checked for exhaustiveness,
    so adding an ActionKind without a handler fails at construction.
    """

    def __init__(self, provider: CapabilityProvider) -> None:
        self._handlers: dict[ActionKind, Handler] = {
            ActionKind.OBSERVE: provider.observe,
            ActionKind.EXTRACT: provider.extract,
            ActionKind.ACT: provider.act,
        }
        missing = set(ActionKind) - set(self._handlers)
        if missing:
            raise TypeError(f"No capability handler for: {sorted(k.value for k in missing)}")

    @staticmethod
    def lookup(name: str) -> ActionKind | None:
        """Resolve a tool name issued by the model. Case-insensitive."""
        try:
            return ActionKind(name.strip().lower())
        except ValueError:
            return None

    async def invoke(self, kind: ActionKind, query: str) -> str:
        """Run one capability call. Never raises; failures come back as error payloads."""
        try:
            return await self._handlers[kind](query)
        except Exception as exc:
            error = CapabilityInvocationError(kind, query, exc)
            display.capability_failed(kind.value, query, str(error))
            return error.to_payload()
