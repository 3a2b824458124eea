"""OpenAI Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenAI chat/completions 的 HTTP 请求格式；
   携带 response_schema 时附加 strict json_schema 的 response_format。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult。

任何实现了 chat/completions 与 json_schema response_format 的兼容服务
都可以通过 OPENAI_BASE_URL 接入。
"""

from typing import Any, Dict, Optional

import httpx

from study_core.domain.models import (
    ChatRequest,
    ChatResult,
    ChatMessage,
    ChatChoice,
    ChatUsage,
)
from study_core.domain.exceptions import NetworkError, ApiError, RateLimitError, ValidationError
from study_core.providers.registry import OPENAI_CONFIG, ModelConfig


class OpenAIClient:
    """OpenAI 提供方客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - chat: 对外统一调用入口，返回 ChatResult。
    """

    name = "openai"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。

        步骤：
        1. 读取模型配置（logical model -> provider model）。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并捕获网络错误/限流/服务端错误。
        4. 使用统一的解析函数构造 ChatResult。
        """

        if not getattr(self._settings, "openai_api_key", None):
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        model_cfg = OPENAI_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
                resp = client.post(
                    f"{base.rstrip('/')}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.openai_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit")
        if resp.status_code >= 400:
            # 其他 HTTP 错误统一包装为 ApiError，上游状态码放在 extra 里
            raise ApiError(
                code="API_ERROR",
                message=self._error_message(resp),
                upstream_status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="BAD_RESPONSE", message="Upstream returned non-JSON body")
        if not isinstance(data, dict):
            raise ApiError(code="BAD_RESPONSE", message="Upstream returned a non-object JSON body")
        return self._parse_response(data, req)

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成 OpenAI 所需的请求 JSON。"""

        payload: Dict[str, Any] = {
            "model": getattr(self._settings, "openai_model", None) or model_cfg.provider_model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": req.temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
        }
        if req.response_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": req.response_schema.name,
                    "strict": req.response_schema.strict,
                    "schema": req.response_schema.schema,
                },
            }
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        """将 OpenAI 的原始响应 JSON 解析为统一的 ChatResult。"""

        raw_choices = data.get("choices")
        if not isinstance(raw_choices, list) or not raw_choices:
            raise ApiError(code="BAD_RESPONSE", message="Upstream response has no choices")
        choices: list[ChatChoice] = []
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") if isinstance(ch, dict) else None
            if not isinstance(msg, dict):
                raise ApiError(code="BAD_RESPONSE", message=f"Upstream choice {i} has no message")
            refusal = msg.get("refusal")
            if refusal and req.response_schema is not None:
                # 结构化模式下模型拒答时没有可用的 JSON
                raise ApiError(code="MODEL_REFUSAL", message=str(refusal))
            content = msg.get("content")
            if content is not None and not isinstance(content, str):
                raise ApiError(code="BAD_RESPONSE", message=f"Upstream choice {i} content is not text")
            cm = ChatMessage(role=msg.get("role") or "assistant", content=content or "")
            choices.append(
                ChatChoice(
                    index=ch.get("index", i),
                    message=cm,
                    finish_reason=ch.get("finish_reason"),
                    refusal=refusal,
                )
            )
        usage_raw = data.get("usage")
        if not isinstance(usage_raw, dict):
            usage_raw = {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        """尽量从错误响应中提取 error.message，失败时退回原始文本。"""

        message: Optional[str] = None
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                message = err.get("message")
            elif isinstance(err, str):
                message = err
        return message or resp.text or f"HTTP {resp.status_code}"
