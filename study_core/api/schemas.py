"""代理 HTTP 接口的请求与响应模型。

请求侧只校验顶层结构：body 必须是对象，modeLabel 可选且为字符串，
messages 必须存在且为数组。数组中的单条消息是否合法由
normalizer 过滤，不在这里拒绝。

响应侧是严格的 tagged union：
    {"kind": "structured", "document": CheatSheet} | {"kind": "text", "text": str}
"""

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from study_core.domain.cheatsheet import CheatSheet
from study_core.domain.exceptions import InvalidRequest


class RespondRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode_label: Optional[StrictStr] = Field(default=None, alias="modeLabel")
    messages: List[Any]


class StructuredResult(BaseModel):
    kind: Literal["structured"] = "structured"
    document: CheatSheet


class TextResult(BaseModel):
    kind: Literal["text"] = "text"
    text: str


RespondResult = Annotated[Union[StructuredResult, TextResult], Field(discriminator="kind")]

_RESULT_ADAPTER: TypeAdapter = TypeAdapter(RespondResult)


def parse_respond_request(body: Any) -> RespondRequest:
    """校验原始请求体，结构不对时抛出 InvalidRequest。"""

    if not isinstance(body, dict):
        raise InvalidRequest()
    try:
        return RespondRequest.model_validate(body)
    except PydanticValidationError as e:
        raise InvalidRequest(errors=e.errors(include_url=False))


def parse_respond_result(body: Any) -> RespondResult:
    """客户端使用：把代理的 200 响应解析为 tagged union。"""

    return _RESULT_ADAPTER.validate_python(body)
