# backend/aihub/services/llm/completion_gateway.py
"""
Completion gateway
==================
Thin wrapper around the OpenRouter chat-completions API (OpenAI compatible),
driven through LangChain's ``ChatOpenAI``.

* ``complete``        : single-shot answer
* ``stream_complete`` : lazy, single-use async iterator of text deltas

Provider/network failures surface as ``ProviderError``. Cancellation is not
wrapped: closing the iterator closes the upstream HTTP stream.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from aihub.core.config import Settings, settings as default_settings
from aihub.services.chat import model_registry

log = logging.getLogger("aihub.services.llm.completion_gateway")

PromptMessages = Sequence[Mapping[str, str]]


class ProviderError(RuntimeError):
    """The upstream model provider failed (network, auth, quota, bad response)."""


class CompletionBackend(Protocol):
    async def complete(self, model_id: str, messages: PromptMessages) -> str: ...

    def stream_complete(self, model_id: str, messages: PromptMessages) -> AsyncIterator[str]: ...


def to_langchain_messages(messages: PromptMessages) -> List[BaseMessage]:
    out: List[BaseMessage] = []
    for m in messages:
        role = (m.get("role") or "").lower()
        content = m.get("content") or ""
        if role == "system":
            out.append(SystemMessage(content=content))
        elif role in ("assistant", "ai"):
            out.append(AIMessage(content=content))
        else:
            out.append(HumanMessage(content=content))
    return out


def _iter_text_from_chunk(chunk: Any) -> Iterable[str]:
    content = getattr(chunk, "content", None)
    if isinstance(content, str):
        if content:
            yield content
        return
    if isinstance(content, list):
        for part in content:
            if isinstance(part, str) and part:
                yield part
            elif isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]:
                yield part["text"]


class CompletionGateway:
    def __init__(self, cfg: Optional[Settings] = None) -> None:
        self._cfg = cfg or default_settings
        self._clients: Dict[tuple[str, bool], ChatOpenAI] = {}

    def _llm(self, model_id: str, *, streaming: bool) -> ChatOpenAI:
        provider_model = model_registry.provider_model(model_id)
        key = (provider_model, streaming)
        llm = self._clients.get(key)
        if llm is None:
            if not self._cfg.openrouter_api_key:
                raise ProviderError("OPENROUTER_API_KEY is not configured")
            llm = ChatOpenAI(
                model=provider_model,
                api_key=self._cfg.openrouter_api_key,
                base_url=self._cfg.openrouter_base_url,
                default_headers={
                    "HTTP-Referer": self._cfg.app_url,
                    "X-Title": self._cfg.app_name,
                },
                max_tokens=self._cfg.llm_max_tokens,
                streaming=streaming,
                timeout=self._cfg.llm_timeout_s,
                max_retries=self._cfg.llm_max_retries,
            )
            log.info("LLM-INIT: model=%s, streaming=%s, base_url=%s", provider_model, streaming, self._cfg.openrouter_base_url)
            self._clients[key] = llm
        return llm

    async def complete(self, model_id: str, messages: PromptMessages) -> str:
        llm = self._llm(model_id, streaming=False)
        try:
            resp = await llm.ainvoke(to_langchain_messages(messages))
        except Exception as exc:
            raise ProviderError(f"completion failed: {exc}") from exc
        return "".join(_iter_text_from_chunk(resp)).strip()

    async def stream_complete(self, model_id: str, messages: PromptMessages) -> AsyncIterator[str]:
        llm = self._llm(model_id, streaming=True)
        agen = llm.astream(to_langchain_messages(messages))
        try:
            async for chunk in agen:
                for piece in _iter_text_from_chunk(chunk):
                    yield piece
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"stream failed: {exc}") from exc
        finally:
            await agen.aclose()
