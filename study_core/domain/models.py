"""统一的对话与结果数据模型。

本模块定义了代理服务与上游 Provider 之间共享的标准数据结构：

- ChatMessage: 一条发给上游的消息（system/developer/user/assistant）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。

Provider 适配器（如 OpenAIClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Any, Dict, List


# LLM 消息角色类型（与 OpenAI 的 role 字段对应）
Role = Literal["system", "developer", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色。
    - content: 纯文本内容。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResponseSchema:
    """结构化输出约束：要求模型返回满足 schema 的 JSON。"""

    name: str
    schema: Dict[str, Any]
    strict: bool = True


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    Dispatcher 将指令与裁剪后的历史拼成 ChatRequest，再交给具体 ProviderClient。
    response_schema 非空时 Provider 必须以结构化模式调用上游。
    """

    provider: str  # 逻辑 Provider 名，如 "openai"
    model: str  # 逻辑模型名，如 "study-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: float = 0.4
    top_p: float = 1.0
    max_tokens: Optional[int] = None
    response_schema: Optional[ResponseSchema] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None
    refusal: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。

    - provider: 逻辑 Provider 名。
    - model: 逻辑模型名。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        """第一个候选的文本内容，没有候选时为空串。"""

        if not self.choices:
            return ""
        return self.choices[0].message.content or ""
