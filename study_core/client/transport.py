"""调用代理服务的 HTTP 适配器（httpx 异步客户端）。"""

from typing import Any, Dict, List, Optional

import httpx

from study_core.api.schemas import RespondResult, parse_respond_result
from study_core.client.cancellation import CancelToken
from study_core.domain.exceptions import ApiError, InvalidRequest, NetworkError


class ProxyClient:
    """代理服务客户端。

    每次请求携带一个 CancelToken，令牌取消时底层 HTTP 请求被中断，
    调用方得到 Cancelled 异常。
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        # 注入的 client 由调用方负责关闭
        self._client = client

    async def respond(
        self,
        mode_label: str,
        messages: List[Dict[str, str]],
        token: CancelToken,
    ) -> RespondResult:
        token.raise_if_cancelled()
        payload = {"modeLabel": mode_label, "messages": messages}
        resp = await token.guard(self._request("POST", "/api/respond", json=payload))
        token.raise_if_cancelled()
        if resp.status_code == 400:
            raise InvalidRequest(self._error_message(resp))
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=self._error_message(resp), upstream_status=resp.status_code)
        try:
            return parse_respond_result(resp.json())
        except ValueError as e:
            raise ApiError(code="BAD_RESPONSE", message=f"Unexpected response from server: {e}")

    async def health(self) -> Dict[str, Any]:
        resp = await self._request("GET", "/api/health")
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=self._error_message(resp), upstream_status=resp.status_code)
        return resp.json()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                return await client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return body["error"]
        return resp.text or f"HTTP {resp.status_code}"
