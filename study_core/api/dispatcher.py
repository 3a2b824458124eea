"""代理核心：按模式选择结构化或纯文本调用，并在结构化失败时降级。

两层失败处理：
1. 结构化模式下，结构化调用本身失败（网络/上游错误或返回内容未通过
   schema 校验）时，改用稍高温度做一次纯文本调用，结果标记为 kind=text。
   降级调用同样失败时，异常直接向上抛出，由 HTTP 层映射为 500。
2. 非结构化模式只做一次纯文本调用。

两次上游调用严格顺序执行。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging
import time

from study_core.api.normalizer import normalize_messages
from study_core.api.schemas import RespondRequest, RespondResult, StructuredResult, TextResult
from study_core.domain.cheatsheet import (
    CHEAT_SHEET_JSON_SCHEMA,
    CHEAT_SHEET_SCHEMA_NAME,
    parse_cheat_sheet,
)
from study_core.domain.exceptions import SchemaMismatch, UpstreamFailure
from study_core.domain.models import ChatMessage, ChatRequest, ResponseSchema
from study_core.infrastructure.logging.logger import log_event
from study_core.prompts import build_instruction
from study_core.providers.base import ProviderClient


@dataclass
class DispatcherConfig:
    default_mode_label: str = "Cheat Sheet"
    structured_mode_label: str = "Cheat Sheet"
    model: str = "study-chat"
    max_context_messages: int = 20
    structured_temperature: float = 0.0
    text_temperature: float = 0.4
    structured_fallback: bool = True

    @classmethod
    def from_settings(cls, settings) -> "DispatcherConfig":
        return cls(
            default_mode_label=settings.default_mode_label,
            structured_mode_label=settings.structured_mode_label,
            max_context_messages=settings.max_context_messages,
            structured_temperature=settings.structured_temperature,
            text_temperature=settings.text_temperature,
            structured_fallback=settings.structured_fallback,
        )


class ResponseDispatcher:
    def __init__(self, provider_client: ProviderClient, config: Optional[DispatcherConfig] = None):
        self._provider = provider_client
        self._config = config or DispatcherConfig()

    def is_structured_mode(self, mode_label: str) -> bool:
        return mode_label.strip().casefold() == self._config.structured_mode_label.strip().casefold()

    def respond(self, request: RespondRequest) -> RespondResult:
        """处理一次 /api/respond 请求，返回 tagged union 结果。

        Raises:
            UpstreamFailure: 纯文本调用失败（包括降级调用失败）。
        """

        start_time = time.time()
        mode_label = (request.mode_label or "").strip() or self._config.default_mode_label
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "mode": mode_label,
            "provider": self._provider.name,
        }
        history = normalize_messages(request.messages, self._config.max_context_messages)
        messages = [ChatMessage(role="developer", content=build_instruction(mode_label))] + history
        log_event(
            logging.INFO,
            "Dispatching respond request",
            log_ctx,
            received=len(request.messages),
            forwarded=len(history),
        )

        if self.is_structured_mode(mode_label):
            try:
                result: RespondResult = self._structured_call(messages, log_ctx)
            except (UpstreamFailure, SchemaMismatch) as e:
                if not self._config.structured_fallback:
                    raise self._as_upstream_failure(e)
                log_event(
                    logging.WARNING,
                    "Structured call failed, falling back to text",
                    log_ctx,
                    error_code=e.code,
                    error=e.message[:500],
                )
                result = self._text_call(messages, log_ctx, degraded=True)
        else:
            result = self._text_call(messages, log_ctx)

        log_event(
            logging.INFO,
            "Respond request completed",
            log_ctx,
            kind=result.kind,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return result

    def _structured_call(self, messages: List[ChatMessage], log_ctx: Dict[str, Any]) -> StructuredResult:
        req = ChatRequest(
            provider=self._provider.name,
            model=self._config.model,
            messages=messages,
            temperature=self._config.structured_temperature,
            response_schema=ResponseSchema(name=CHEAT_SHEET_SCHEMA_NAME, schema=CHEAT_SHEET_JSON_SCHEMA),
        )
        res = self._provider.chat(req)
        document = parse_cheat_sheet(res.text)
        log_event(logging.INFO, "Structured call succeeded", log_ctx, title=document.title[:80])
        return StructuredResult(document=document)

    def _text_call(self, messages: List[ChatMessage], log_ctx: Dict[str, Any], degraded: bool = False) -> TextResult:
        req = ChatRequest(
            provider=self._provider.name,
            model=self._config.model,
            messages=messages,
            temperature=self._config.text_temperature,
        )
        try:
            res = self._provider.chat(req)
        except UpstreamFailure as e:
            log_event(
                logging.ERROR,
                "Text call failed",
                log_ctx,
                degraded=degraded,
                error_code=e.code,
                error=e.message[:500],
            )
            raise
        log_event(logging.INFO, "Text call succeeded", log_ctx, degraded=degraded, chars=len(res.text))
        return TextResult(text=res.text)

    @staticmethod
    def _as_upstream_failure(e: Exception) -> UpstreamFailure:
        if isinstance(e, UpstreamFailure):
            return e
        return UpstreamFailure(code=getattr(e, "code", "UPSTREAM_FAILURE"), message=str(e))
