"""
Agent Invocation.

An invoker turns an agent configuration plus a prompt into a text
response. The engine only depends on the AgentInvoker protocol; the
default implementation talks to an OpenAI-compatible chat completions
endpoint over httpx and runs the agent's tool calls locally.
"""

from typing import Any, Dict, List, Optional, Protocol
from dataclasses import dataclass, field
import json
import logging

import httpx

from app.agents.registry import AgentConfig, ResponseFormat
from app.engine.errors import AgentInvocationError
from app.engine.state import AmbientContext
from app.tools.registry import ToolRegistry, tool_registry


logger = logging.getLogger(__name__)


@dataclass
class Usage:
    """Token counts for one invocation (summed over tool rounds)."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens


@dataclass
class ToolCallRecord:
    """One tool call made during an invocation."""
    name: str
    arguments: Dict[str, Any]
    output: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arguments": self.arguments,
            "output": self.output,
            "error": self.error,
        }


@dataclass
class InvocationResult:
    """What an agent returned."""
    text: str
    usage: Optional[Usage] = None
    tool_trace: List[ToolCallRecord] = field(default_factory=list)


class AgentInvoker(Protocol):
    """Calls an agent. Raises on failure."""

    async def invoke(
        self,
        agent: AgentConfig,
        prompt: str,
        context: AmbientContext,
    ) -> InvocationResult:
        ...


def model_name(model: str) -> str:
    """Strip a provider prefix: "openai/gpt-4o" -> "gpt-4o"."""
    return model.split("/", 1)[1] if "/" in model else model


CONSTRAINTS_SECTION = (
    "\n\n## CONSTRAINTS\n"
    "The user has provided the following constraints that you MUST follow:\n{constraints}"
)

JSON_FORMAT_SECTION = (
    "\n\n## RESPONSE FORMAT\n"
    "You MUST provide your final response in a valid JSON object. "
    "Do not include any explanatory text before or after the JSON object."
)


def build_system_prompt(agent: AgentConfig) -> str:
    """The agent's system prompt plus its constraints and response format rules."""
    prompt = agent.system_prompt
    if agent.constraints:
        prompt += CONSTRAINTS_SECTION.format(constraints=agent.constraints)
    if agent.response_format == ResponseFormat.JSON:
        prompt += JSON_FORMAT_SECTION
    return prompt


class OpenAICompatibleInvoker:
    """
    Invoker for OpenAI-compatible chat completion APIs.

    Tool calls requested by the model are executed through the tool
    registry and fed back, up to max_tool_rounds times. Usage is summed
    over all rounds.

    Usage:
        invoker = OpenAICompatibleInvoker(base_url="https://api.openai.com/v1", api_key="...")
        result = await invoker.invoke(agent, "Summarize this", context)
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        tools: ToolRegistry = tool_registry,
        temperature: float = 0.7,
        max_tool_rounds: int = 5,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._tools = tools
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds
        self._timeout = timeout
        self._transport = transport

    async def invoke(
        self,
        agent: AgentConfig,
        prompt: str,
        context: AmbientContext,
    ) -> InvocationResult:
        tools = self._tools.get_many(agent.tools)
        messages: List[Dict[str, Any]] = [{"role": "system", "content": build_system_prompt(agent)}]
        messages.extend(
            {"role": m["role"], "content": m["content"]} for m in context.history
        )
        messages.append({"role": "user", "content": prompt})
        usage = Usage()
        trace: List[ToolCallRecord] = []

        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        async with httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        ) as client:
            for _ in range(self._max_tool_rounds + 1):
                payload = self._build_payload(agent, messages, tools)
                data = await self._post(client, payload, agent)

                usage.add(self._parse_usage(data))
                message = data["choices"][0]["message"]
                tool_calls = message.get("tool_calls") or []

                if not tool_calls:
                    return InvocationResult(
                        text=message.get("content") or "",
                        usage=usage,
                        tool_trace=trace,
                    )

                messages.append(message)
                for call in tool_calls:
                    record = await self._run_tool_call(call, context)
                    trace.append(record)
                    messages.append({
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": record.output,
                    })

        raise AgentInvocationError(
            f"Agent '{agent.name}' exceeded {self._max_tool_rounds} tool rounds"
        )

    def _build_payload(
        self,
        agent: AgentConfig,
        messages: List[Dict[str, Any]],
        tools: list,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model_name(agent.model),
            "messages": messages,
            "temperature": self._temperature,
        }
        if tools:
            payload["tools"] = [t.to_function_schema() for t in tools]
        if agent.response_format == ResponseFormat.JSON:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def _post(
        self,
        client: httpx.AsyncClient,
        payload: Dict[str, Any],
        agent: AgentConfig,
    ) -> Dict[str, Any]:
        url = f"{self._base_url}/chat/completions"
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise AgentInvocationError(
                f"Request for agent '{agent.name}' timed out after {self._timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise AgentInvocationError(
                f"LLM API error: {e.response.status_code} - {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise AgentInvocationError(f"LLM API request failed: {e}") from e

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> Usage:
        usage_data = data.get("usage") or {}
        return Usage(
            input_tokens=usage_data.get("prompt_tokens", 0),
            output_tokens=usage_data.get("completion_tokens", 0),
        )

    async def _run_tool_call(self, call: Dict[str, Any], context: AmbientContext) -> ToolCallRecord:
        """Run one tool call; failures are reported back to the model, not raised."""
        function = call.get("function", {})
        name = function.get("name", "")
        try:
            arguments = json.loads(function.get("arguments") or "{}")
        except json.JSONDecodeError:
            arguments = {}

        logger.info(f"Tool call: {name} (execution {context.execution_id})")
        try:
            output = await self._tools.call(name, context, arguments)
        except Exception as e:
            logger.warning(f"Tool '{name}' failed: {e}")
            return ToolCallRecord(name=name, arguments=arguments, output=f"Error: {e}", error=str(e))

        if not isinstance(output, str):
            output = json.dumps(output, default=str)
        return ToolCallRecord(name=name, arguments=arguments, output=output)
