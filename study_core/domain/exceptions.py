"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 HTTP 层或客户端做统一捕获与用户提示。

错误分类：
- InvalidRequest: 请求体结构错误，映射为 HTTP 400，不重试。
- SchemaMismatch: 上游结构化输出不符合文档 schema，由服务端降级处理。
- UpstreamFailure: 调用模型的网络/服务错误，映射为 HTTP 500。
- Cancelled / Stale: 仅客户端使用，被取消或过期的请求，静默丢弃。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "INVALID_REQUEST"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class InvalidRequest(BusinessError):
    """客户端请求体不合法。"""

    def __init__(self, message: str = "Invalid request body", **extra):
        super().__init__(code="INVALID_REQUEST", message=message, http_status=400, **extra)


class SchemaMismatch(BusinessError):
    """上游返回的结构化内容未通过文档 schema 校验。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="SCHEMA_MISMATCH", message=message, http_status=502, **extra)


class UpstreamFailure(BusinessError):
    """调用上游模型失败的基类。"""

    def __init__(self, code: str = "UPSTREAM_FAILURE", message: str = "Upstream failure", http_status: int = 500, **extra):
        super().__init__(code=code, message=message, http_status=http_status, **extra)


class NetworkError(UpstreamFailure):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(UpstreamFailure):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(UpstreamFailure):
    """Provider 限流错误。"""


class ValidationError(UpstreamFailure):
    """配置校验失败（例如缺少 API 密钥），对调用方而言等同于上游不可用。"""


class Cancelled(BusinessError):
    """请求被用户取消或被新的请求取代。"""

    def __init__(self, message: str = "Request cancelled", **extra):
        super().__init__(code="CANCELLED", message=message, http_status=499, **extra)


class Stale(BusinessError):
    """响应到达时已有更新的请求发出。"""

    def __init__(self, message: str = "Stale response", **extra):
        super().__init__(code="STALE", message=message, http_status=409, **extra)
