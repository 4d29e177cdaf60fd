import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

import openai

from openagent.core.agents.errors import ModelError

logger = logging.getLogger(__name__)


@dataclass
class ToolCallRequest:
    """A capability invocation requested by the model"""
    id: str
    name: str
    # None when the model produced arguments that are not a JSON object
    arguments: Optional[Dict[str, Any]]
    raw_arguments: str = ""


@dataclass
class ChatResponse:
    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    finish_reason: Optional[str] = None


class AIProvider(ABC):
    """Chat model contract used by the agent loop and the swarm"""

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        """One non-streaming request; ``tools`` is the capability catalog"""

    @abstractmethod
    def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
    ) -> AsyncGenerator[str, None]:
        """Stream content fragments of a reply produced without tool access"""

    async def list_models(self) -> List[str]:
        return []


def catalog_to_openai_tools(catalog: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Wrap catalog entries in the ``{"type": "function", ...}`` envelope"""
    return [{"type": "function", "function": entry} for entry in catalog]


def _parse_arguments(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def _model_error(e: Exception) -> ModelError:
    if isinstance(e, openai.APIStatusError):
        logger.error(f"Model API status error: {e.status_code} - {e.message}")
        if e.status_code == 503:
            return ModelError("AI service is temporarily unavailable. Please try again later.")
        if e.status_code == 401:
            return ModelError("Invalid API key or authentication failed.")
        if e.status_code == 429:
            return ModelError("Rate limit exceeded. Please try again later.")
        return ModelError(f"API error: {e.message}")
    if isinstance(e, openai.APITimeoutError):
        logger.error(f"Model API timeout error: {e}")
        return ModelError("Request timed out. Please try again.")
    if isinstance(e, openai.APIConnectionError):
        logger.error(f"Model API connection error: {e}")
        return ModelError("Failed to connect to AI service. Is the model server running?")
    logger.error(f"Unexpected model error: {e}", exc_info=True)
    return ModelError(f"An unexpected error occurred: {e}")


class OpenAIProvider(AIProvider):
    """OpenAI-compatible /v1/chat/completions endpoint (Ollama by default)"""

    def __init__(self, api_key: str, api_base: Optional[str] = None, timeout: float = 120.0):
        self.api_key = api_key
        self.api_base = api_base
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=timeout,
            max_retries=0,
        )

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        request_params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if tools:
            request_params["tools"] = catalog_to_openai_tools(tools)

        logger.info(f"Calling model API with model: {model}, base_url: {self.api_base}")

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.OpenAIError as e:
            raise _model_error(e)

        if not response.choices:
            raise ModelError("Model returned no choices")

        message = response.choices[0].message
        tool_calls = []
        for i, call in enumerate(message.tool_calls or []):
            raw = call.function.arguments or ""
            tool_calls.append(ToolCallRequest(
                id=call.id or f"call_{i}",
                name=call.function.name,
                arguments=_parse_arguments(raw),
                raw_arguments=raw,
            ))

        return ChatResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            finish_reason=response.choices[0].finish_reason,
        )

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
    ) -> AsyncGenerator[str, None]:
        try:
            stream = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise _model_error(e)

    async def list_models(self) -> List[str]:
        try:
            page = await self.client.models.list()
        except openai.OpenAIError as e:
            raise _model_error(e)
        return [m.id for m in page.data]
