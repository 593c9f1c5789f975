"""
Language-model interface for tripflow.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
memory) stays model-agnostic and talks to :class:`BaseLLM.ask_tool`.

We support three back-ends out of the box:

1. **OpenAI** via the official SDK (requires ``OPENAI_API_KEY``).
2. **Anthropic** via the official SDK; tool-use blocks are translated to and from the OpenAI shape.
3. **http**: any OpenAI-compatible ``/chat/completions`` endpoint (TGI, vLLM, ...) over httpx.

Additional providers can be added by subclassing :class:`BaseLLM` and registering via
:func:`register_llm`.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Sequence,
    Type,
)

import httpx

from tripflow.config import settings
from tripflow.core.errors import (
    LLMTransportError,
    MalformedToolCallError,
)
from tripflow.core.schema import (
    LLMReply,
    Message,
    Role,
    ToolCall,
    ToolChoice,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_LLM_REGISTRY: dict[str, Type["BaseLLM"]] = {}


def register_llm(name: str) -> Callable:
    """Decorator to register an LLM back-end class under *name*."""

    def wrapper(cls: Type["BaseLLM"]) -> Type["BaseLLM"]:
        _LLM_REGISTRY[name] = cls
        return cls

    return wrapper


def load_llm(name: str | None = None) -> "BaseLLM":
    """
    Factory that returns an instantiated LLM back-end.

    Fallback order:
    1. *name* arg
    2. ``settings.LLM_BACKEND`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "LLM_BACKEND", "openai")
    cls = _LLM_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"LLM back-end '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------
def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    return "".join(ch for ch in content if ch >= " " or ch in "\n\r\t").strip()


def decode_arguments(name: str, raw: Any) -> Dict[str, Any]:
    """Decode a tool call's argument payload into a dict."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, str):
        raise MalformedToolCallError(f"Arguments for tool '{name}' have type {type(raw).__name__}")
    try:
        decoded = json.loads(_sanitize_json_string(raw))
    except json.JSONDecodeError as e:
        raise MalformedToolCallError(f"Arguments for tool '{name}' are not valid JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise MalformedToolCallError(f"Arguments for tool '{name}' must be a JSON object")
    return decoded


def parse_openai_message(message: Mapping[str, Any]) -> LLMReply:
    """Convert an OpenAI-style ``choices[0].message`` dict into an :class:`LLMReply`."""
    calls: List[ToolCall] = []
    for raw_call in message.get("tool_calls") or []:
        try:
            function = raw_call["function"]
            name = function["name"]
            call_id = raw_call.get("id") or f"call_{len(calls)}"
        except (AttributeError, KeyError, TypeError) as e:
            raise MalformedToolCallError(f"Malformed tool call payload: {raw_call!r}") from e
        arguments = decode_arguments(name, function.get("arguments"))
        calls.append(ToolCall(id=call_id, name=name, arguments=arguments))
    content = message.get("content")
    return LLMReply(content=content if isinstance(content, str) else None, tool_calls=calls)


def drop_orphan_tool_results(messages: Sequence[Message]) -> List[Message]:
    """
    Remove tool results whose originating assistant call is no longer in *messages*.

    Memory eviction can drop an assistant message while keeping the tool replies that follow it;
    providers reject a transcript in which a tool result precedes (or lacks) its call.
    """
    known_calls: set[str] = set()
    kept: List[Message] = []
    for message in messages:
        if message.role is Role.ASSISTANT:
            known_calls.update(call.id for call in message.tool_calls)
        elif message.role is Role.TOOL and message.tool_call_id not in known_calls:
            logger.debug("Dropping orphan tool result for call %s", message.tool_call_id)
            continue
        kept.append(message)
    return kept


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseLLM(ABC):
    """Abstract model transport used by the agent's think phase."""

    @abstractmethod
    def ask_tool(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
    ) -> LLMReply:
        """Send the transcript plus tool descriptors; return text and/or tool calls."""

    def ask(self, messages: Sequence[Message]) -> str:
        """Plain completion without tools."""
        return self.ask_tool(messages, None, ToolChoice.NONE).content or ""


def _openai_payload(
    model: str,
    messages: Sequence[Message],
    tools: Sequence[Dict[str, Any]] | None,
    tool_choice: ToolChoice,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": [m.to_llm_dict() for m in drop_orphan_tool_results(messages)],
        "temperature": settings.LLM_TEMPERATURE,
    }
    if tools:
        payload["tools"] = list(tools)
        payload["tool_choice"] = tool_choice.value
    return payload


# ---------------------------------------------------------------------------
# Concrete back-ends
# ---------------------------------------------------------------------------
@register_llm("http")
class HTTPChatLLM(BaseLLM):
    """OpenAI-compatible chat endpoint over httpx (TGI, vLLM, llama.cpp server, ...)."""

    def __init__(
        self,
        endpoint: str | None = None,
        model: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint or settings.LLM_ENDPOINT
        self.model = model or getattr(settings, "OPENAI_MODEL", "tgi")
        self.transport = transport

    def ask_tool(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
    ) -> LLMReply:
        payload = _openai_payload(self.model, messages, tools, tool_choice)
        headers = {}
        if settings.OPENAI_API_KEY:
            headers["Authorization"] = f"Bearer {settings.OPENAI_API_KEY}"

        try:
            with httpx.Client(timeout=settings.LLM_TIMEOUT, transport=self.transport) as client:
                resp = client.post(self.endpoint, json=payload, headers=headers)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPError as e:
            logger.error("LLM endpoint request error: %s", str(e))
            raise LLMTransportError(f"Error calling LLM endpoint: {str(e)}") from e
        except ValueError as e:
            raise LLMTransportError(f"LLM endpoint returned invalid JSON: {str(e)}") from e

        logger.debug("HTTP LLM response: %s", body)
        try:
            message = body["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMTransportError(f"Unexpected LLM response shape: {body!r}") from e
        return parse_openai_message(message)


@register_llm("openai")
class OpenAILLM(BaseLLM):
    """OpenAI chat completions with native tool calling."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or getattr(settings, "OPENAI_MODEL", "gpt-4o-mini")
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.OpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=settings.LLM_TIMEOUT,
            )
        return self._client

    def ask_tool(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
    ) -> LLMReply:
        try:
            client = self._get_client()
            resp = client.chat.completions.create(
                **_openai_payload(self.model, messages, tools, tool_choice)
            )
            message = resp.choices[0].message.model_dump()
        except ImportError as e:
            logger.error("OpenAI SDK not installed")
            raise LLMTransportError("OpenAI SDK not installed. Run 'pip install openai'") from e
        except Exception as e:  # pylint: disable=broad-except
            logger.error("OpenAI request error: %s", str(e))
            raise LLMTransportError(f"Error calling OpenAI: {str(e)}") from e

        logger.debug("OpenAI response: %s", message)
        return parse_openai_message(message)


@register_llm("anthropic")
class AnthropicLLM(BaseLLM):
    """Anthropic Claude with tool use."""

    def __init__(self, model: str | None = None, max_tokens: int = 8192) -> None:
        self.model = model or getattr(settings, "ANTHROPIC_MODEL", "claude-3-5-haiku-latest")
        self.max_tokens = max_tokens
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.Anthropic(
                api_key=settings.ANTHROPIC_API_KEY, timeout=settings.LLM_TIMEOUT
            )
        return self._client

    @staticmethod
    def convert_messages(messages: Sequence[Message]) -> tuple[str, List[Dict[str, Any]]]:
        """
        Split out the system prompt and translate the rest into Anthropic content blocks.

        The conversation must open with a user turn, so anything before the first user message
        (left over after memory eviction) is skipped.
        """
        system_parts = [m.content for m in messages if m.role is Role.SYSTEM]
        turns = [m for m in messages if m.role is not Role.SYSTEM]
        first_user = next((i for i, m in enumerate(turns) if m.role is Role.USER), len(turns))
        converted: List[Dict[str, Any]] = []
        for message in drop_orphan_tool_results(turns[first_user:]):
            if message.role is Role.TOOL:
                role = "user"
                blocks: List[Dict[str, Any]] = [
                    {
                        "type": "tool_result",
                        "tool_use_id": message.tool_call_id,
                        "content": message.content,
                    }
                ]
            else:
                role = message.role.value
                blocks = [{"type": "text", "text": message.content}] if message.content else []
                if message.base64_image and message.role is Role.USER:
                    blocks.append(
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": message.base64_image,
                            },
                        }
                    )
                for call in message.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
            if not blocks:
                continue
            # Anthropic expects alternating roles; merge consecutive same-role turns.
            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})
        return "\n\n".join(system_parts), converted

    @staticmethod
    def convert_tools(tools: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        converted = []
        for tool in tools:
            function = tool.get("function", tool)
            converted.append(
                {
                    "name": function["name"],
                    "description": function.get("description", ""),
                    "input_schema": function.get("parameters", {"type": "object"}),
                }
            )
        return converted

    def ask_tool(
        self,
        messages: Sequence[Message],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: ToolChoice = ToolChoice.AUTO,
    ) -> LLMReply:
        system_prompt, converted = self.convert_messages(messages)
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
            "temperature": settings.LLM_TEMPERATURE,
        }
        if system_prompt:
            request["system"] = system_prompt
        if tools and tool_choice is not ToolChoice.NONE:
            request["tools"] = self.convert_tools(tools)
            choice = "any" if tool_choice is ToolChoice.REQUIRED else "auto"
            request["tool_choice"] = {"type": choice}

        try:
            response = self._get_client().messages.create(**request)
        except ImportError as e:
            logger.error("Anthropic SDK not installed")
            raise LLMTransportError(
                "Anthropic SDK not installed. Run 'pip install anthropic'"
            ) from e
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Anthropic request error: %s", str(e))
            raise LLMTransportError(f"Error calling Anthropic: {str(e)}") from e

        logger.debug("Anthropic response: %s", response.content)
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                arguments = decode_arguments(block.name, block.input)
                calls.append(ToolCall(id=block.id, name=block.name, arguments=arguments))
        return LLMReply(content="\n".join(texts) if texts else None, tool_calls=calls)
