"""上行历史消息的过滤与裁剪。"""

from typing import Any, Iterable, List, Mapping

from study_core.domain.models import ChatMessage


ALLOWED_ROLES = ("user", "assistant")


def normalize_messages(items: Iterable[Any], limit: int) -> List[ChatMessage]:
    """保留结构正确的 {role, text}，只取最近 limit 条并转换为 ChatMessage。

    顺序保持从旧到新，超出部分只从最旧的一端丢弃。
    """

    if limit <= 0:
        return []
    valid = [
        m
        for m in items or []
        if isinstance(m, Mapping) and m.get("role") in ALLOWED_ROLES and isinstance(m.get("text"), str)
    ]
    return [ChatMessage(role=m["role"], content=m["text"]) for m in valid[-limit:]]
