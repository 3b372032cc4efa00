# llm.py
# Completion transport. The negotiator only sees CompletionProvider;
# OpenAICompletions is the production adapter over the OpenAI SDK (or any
# OpenAI-compatible endpoint such as OpenRouter).

from typing import Protocol, Sequence

from openai import AsyncOpenAI

from web_pilot.models import Completion, ToolCall


class CompletionError(Exception):
    """Raised when the transport returns no usable message."""


class CompletionProvider(Protocol):
    async def complete(self, messages: Sequence[dict], tools: list[dict]) -> Completion: ...


class OpenAICompletions:
    """
    Chat-completions adapter with tool calling and JSON response mode.

    Example:
        completions = OpenAICompletions(model="gpt-5", api_key="sk-...")
        completion = await completions.complete(messages, planner_tools())
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 1.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, messages: Sequence[dict], tools: list[dict]) -> Completion:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=list(messages),
            tools=tools,
            tool_choice="auto",
            response_format={"type": "json_object"},
            temperature=self._temperature,
        )
        if not response.choices:
            raise CompletionError("No completion message returned.")

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "",
            )
            for tc in (message.tool_calls or [])
        ]
        return Completion(content=message.content, tool_calls=tool_calls)
