"""客户端会话与 Pack（已保存会话）的数据模型。"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple
from uuid import uuid4

from study_core.domain.cheatsheet import CheatSheet, cheat_sheet_to_markdown


MessageRole = Literal["user", "assistant"]
MessageKind = Literal["text", "structured"]
# thinking: 等待响应的占位消息；error: 请求失败后替换占位的错误提示
MessageStatus = Literal["ready", "thinking", "error"]


def new_message_id() -> str:
    return f"m-{uuid4().hex}"


@dataclass(frozen=True)
class Message:
    """会话中的一条消息。

    渲染后不可变；唯一的例外是占位消息会按 id 被原位替换为最终内容。
    """

    id: str
    role: MessageRole
    kind: MessageKind = "text"
    text: Optional[str] = None
    document: Optional[CheatSheet] = None
    status: MessageStatus = "ready"

    @property
    def is_placeholder(self) -> bool:
        return self.status == "thinking"

    def display_text(self) -> str:
        """渲染与上行历史共用的纯文本表示。"""

        if self.kind == "structured" and self.document is not None:
            return cheat_sheet_to_markdown(self.document)
        return self.text or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "kind": self.kind,
            "text": self.text,
            "document": self.document.model_dump() if self.document is not None else None,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        document = data.get("document")
        kind = data.get("kind") or "text"
        return cls(
            id=data["id"],
            role=data["role"],
            kind=kind,
            text=data.get("text"),
            document=CheatSheet.model_validate(document) if document is not None else None,
            status=data.get("status") or "ready",
        )


Conversation = Tuple[Message, ...]


def replace_message(conversation: Conversation, message_id: str, new: Message) -> Conversation:
    """按 id 原位替换消息；id 不存在时原样返回。"""

    return tuple(new if m.id == message_id else m for m in conversation)


@dataclass
class Pack:
    """已保存的会话快照。"""

    id: str
    title: str
    mode: str
    messages: List[Message]
    created_at: datetime
    updated_at: datetime

    def touched(self, *, title: str, mode: str, messages: List[Message], now: datetime) -> "Pack":
        return replace(self, title=title, mode=mode, messages=list(messages), updated_at=now)


class PackStore(Protocol):
    def list_packs(self) -> List[Pack]:
        ...

    def get_pack(self, pack_id: str) -> Pack:
        ...

    def save_pack(self, pack: Pack) -> None:
        ...

    def delete_pack(self, pack_id: str) -> None:
        ...
