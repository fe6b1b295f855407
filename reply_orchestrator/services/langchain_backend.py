"""
LangChain Backend
Chat and embedding backend built on langchain-openai. Works against
OpenAI or any OpenAI-compatible endpoint (Ollama).

Every call is bounded by a timeout and retried with exponential
backoff; the pipeline itself never retries.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from reply_orchestrator.config.settings import Settings, get_embeddings, get_llm
from reply_orchestrator.orchestrator.errors import BackendError
from reply_orchestrator.services.base import (
    ChatBackend, ChatParams, ChatResult, EmbedResult, TokenUsage, ToolCall
)
from reply_orchestrator.services.usage import UsageRecord, UsageTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LangChainBackend(ChatBackend):
    """
    Backend using ChatOpenAI / OpenAIEmbeddings.

    Chat models are created per call because temperature and token
    budget differ between pipeline stages.
    """

    name = "langchain"

    def __init__(
        self,
        settings: Settings,
        usage_tracker: Optional[UsageTracker] = None
    ):
        """
        Initialize backend.

        Args:
            settings: Application settings (provider, model, timeouts)
            usage_tracker: Optional usage log
        """
        self.settings = settings
        self.usage_tracker = usage_tracker
        self._embeddings = get_embeddings(settings)

    async def chat(
        self,
        params: ChatParams,
        interaction_id: Optional[str] = None
    ) -> ChatResult:
        llm = get_llm(
            self.settings,
            temperature=params.temperature,
            max_tokens=params.max_tokens
        )
        if params.tools:
            llm = llm.bind_tools([self._to_openai_tool(t) for t in params.tools])

        messages = self._build_messages(params)
        started = time.monotonic()

        try:
            response = await self._with_retry(lambda: llm.ainvoke(messages))
        except Exception as e:
            self._record(params.usage_type, self.settings.llm_model, TokenUsage(), started, interaction_id, e)
            raise BackendError(
                f"Chat call failed: {e}",
                context={"interaction_id": interaction_id, "usage_type": params.usage_type},
                cause=e
            ) from e

        usage_meta = getattr(response, "usage_metadata", None) or {}
        usage = TokenUsage(
            prompt_tokens=usage_meta.get("input_tokens", 0),
            completion_tokens=usage_meta.get("output_tokens", 0)
        )
        model = (getattr(response, "response_metadata", None) or {}).get(
            "model_name", self.settings.llm_model
        )
        self._record(params.usage_type, model, usage, started, interaction_id)

        tool_calls = [
            ToolCall(
                id=tc.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                name=tc["name"],
                arguments=tc.get("args") or {}
            )
            for tc in (getattr(response, "tool_calls", None) or [])
        ]

        return ChatResult(
            content=self._content_text(response.content),
            model=model,
            tool_calls=tool_calls,
            usage=usage
        )

    async def embed(
        self,
        text: str,
        interaction_id: Optional[str] = None
    ) -> EmbedResult:
        if not text or not text.strip():
            raise BackendError("Cannot generate embedding for empty text")

        started = time.monotonic()
        try:
            vector = await self._with_retry(lambda: self._embeddings.aembed_query(text))
        except Exception as e:
            self._record("embedding", self.settings.embedding_model, TokenUsage(), started, interaction_id, e)
            raise BackendError(f"Embedding call failed: {e}", cause=e) from e

        self._record("embedding", self.settings.embedding_model, TokenUsage(), started, interaction_id)
        return EmbedResult(embedding=list(vector))

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run call with a per-attempt timeout and exponential backoff."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.llm_max_retries)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Backend call attempt {attempt.retry_state.attempt_number}"
                        f"/{self.settings.llm_max_retries}"
                    )
                return await asyncio.wait_for(call(), timeout=self.settings.llm_timeout_seconds)

    def _build_messages(self, params: ChatParams) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=params.system_prompt)]
        for turn in params.history:
            if turn.role == "assistant":
                messages.append(AIMessage(content=turn.content))
            elif turn.role == "system":
                messages.append(SystemMessage(content=turn.content))
            else:
                messages.append(HumanMessage(content=turn.content))
        messages.append(HumanMessage(content=params.user_message))
        return messages

    @staticmethod
    def _to_openai_tool(tool: Dict[str, Any]) -> Dict[str, Any]:
        """Wrap a bare tool definition in the OpenAI function format."""
        if tool.get("type") == "function":
            return tool
        return {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("parameters", {"type": "object", "properties": {}})
            }
        }

    @staticmethod
    def _content_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        # Content blocks
        parts = []
        for block in content or []:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)

    def _record(
        self,
        operation: str,
        model: str,
        usage: TokenUsage,
        started: float,
        interaction_id: Optional[str],
        error: Optional[Exception] = None
    ) -> None:
        if not self.usage_tracker:
            return
        self.usage_tracker.record(UsageRecord(
            provider=self.settings.llm_provider,
            model=model,
            operation=operation,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            latency_ms=(time.monotonic() - started) * 1000,
            success=error is None,
            interaction_id=interaction_id,
            error_message=str(error) if error else None
        ))
