"""
Language-model completion client for structured extraction.

Wraps `langchain_openai.ChatOpenAI` behind the LLMClient port:

    client     = ChatOpenAIClient()
    completion = await client.complete(system_prompt, user_prompt, max_tokens=3000)
    completion.content, completion.model, completion.usage

JSON mode is requested for chat models that support it; reasoning models
(o1 / o3) take neither response_format nor temperature.
"""

from __future__ import annotations

import logging
import time

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from docpipeline.core.config import settings
from docpipeline.observability.tracing import traced
from docpipeline.extraction.types import LLMClient, LLMCompletion

logger = logging.getLogger(__name__)


def _is_reasoning_model(model: str) -> bool:
    return model.startswith(("o1", "o3"))


class ChatOpenAIClient(LLMClient):

    def __init__(
        self,
        model:   str | None = None,
        api_key: str | None = None,
        llm:     BaseChatModel | None = None,
    ) -> None:
        self._model = model or settings.llm_model
        self._llm   = llm or self._build_llm(self._model, api_key or settings.openai_api_key)

    @staticmethod
    def _build_llm(model: str, api_key: str) -> BaseChatModel:
        from langchain_openai import ChatOpenAI

        if _is_reasoning_model(model):
            return ChatOpenAI(model=model, api_key=api_key)
        return ChatOpenAI(
            model=model,
            api_key=api_key,
            temperature=settings.llm_temperature,
            model_kwargs={"response_format": {"type": "json_object"}},
        )

    @traced("llm_complete")
    async def complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        max_tokens:    int | None = None,
    ) -> LLMCompletion:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        t0 = time.monotonic()
        result = await self._llm.ainvoke(messages, max_tokens=max_tokens or settings.llm_max_tokens)

        usage = None
        usage_metadata = getattr(result, "usage_metadata", None)
        if usage_metadata:
            usage = {
                "prompt_tokens":     usage_metadata.get("input_tokens", 0),
                "completion_tokens": usage_metadata.get("output_tokens", 0),
                "total_tokens":      usage_metadata.get("total_tokens", 0),
            }

        logger.info(
            "LLM | model=%s prompt_chars=%d tokens=%s elapsed_ms=%.0f",
            self._model, len(system_prompt) + len(user_prompt),
            usage["total_tokens"] if usage else "?",
            (time.monotonic() - t0) * 1000,
        )
        return LLMCompletion(content=str(result.content or ""), model=self._model, usage=usage)
