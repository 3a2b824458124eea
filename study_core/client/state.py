"""客户端会话状态与状态迁移。

所有迁移都是 (当前状态, 事件) -> 新状态 的纯函数，不做 I/O，
控制器只负责持有当前状态并在网络事件到达时调用这些函数。
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from study_core.domain.conversation import Conversation, Message, replace_message


MODE_LABELS = ("Cheat Sheet", "Explain", "Practice Quiz", "Flashcards")
DEFAULT_MODE_LABEL = MODE_LABELS[0]

GREETING_TEXT = (
    "Hi! I'm StudyToolsGPT. Pick a mode and send me a topic, "
    "and I'll turn it into study-ready material."
)
THINKING_TEXT = "Thinking..."
BUSY_NOTICE = "Please wait for the current response to finish."


@dataclass(frozen=True)
class ChatState:
    """一个客户端会话的完整状态。

    - messages: 当前会话，追加写入，只有占位消息会被按 id 原位替换。
    - generation: 最近一次请求的代号，响应返回时与之比对以丢弃过期结果。
    - pending_id: 当前在途请求的占位消息 id。
    - notice: 最近一条面向用户的提示（拒绝发送、保存失败等）。
    """

    messages: Conversation = ()
    mode_label: str = DEFAULT_MODE_LABEL
    sending: bool = False
    generation: int = 0
    pending_id: Optional[str] = None
    notice: Optional[str] = None


def greeting_message(message_id: str) -> Message:
    return Message(id=message_id, role="assistant", text=GREETING_TEXT)


def initial_state(greeting: Message, mode_label: str = DEFAULT_MODE_LABEL) -> ChatState:
    return ChatState(messages=(greeting,), mode_label=mode_label)


def with_notice(state: ChatState, notice: Optional[str]) -> ChatState:
    return replace(state, notice=notice)


def with_mode(state: ChatState, mode_label: str) -> ChatState:
    return replace(state, mode_label=mode_label)


def begin_send(state: ChatState, user_message: Message, placeholder: Message) -> ChatState:
    """乐观更新：追加用户消息和占位消息，并推进 generation。

    之前被取消而遗留的占位消息在这里移除。
    """

    kept = tuple(m for m in state.messages if not m.is_placeholder)
    return replace(
        state,
        messages=kept + (user_message, placeholder),
        sending=True,
        generation=state.generation + 1,
        pending_id=placeholder.id,
        notice=None,
    )


def settle(state: ChatState, generation: int, placeholder_id: str, final: Message) -> ChatState:
    """用最终消息替换占位消息；generation 不一致时原样返回。"""

    if generation != state.generation:
        return state
    return replace(
        state,
        messages=replace_message(state.messages, placeholder_id, replace(final, id=placeholder_id)),
        sending=False,
        pending_id=None,
    )


def fail(state: ChatState, generation: int, placeholder_id: str, description: str) -> ChatState:
    """用错误提示替换占位消息，会话保持可用。"""

    error = Message(id=placeholder_id, role="assistant", text=f"Error: {description}", status="error")
    return settle(state, generation, placeholder_id, error)


def supersede(state: ChatState) -> ChatState:
    """放弃在途请求：推进 generation 使其响应失效，并退出发送中状态。"""

    return replace(state, generation=state.generation + 1, sending=False, pending_id=None)


def reset(state: ChatState, messages: Sequence[Message], mode_label: Optional[str] = None) -> ChatState:
    """切换到另一个会话（新建或载入 pack）。"""

    return replace(
        supersede(state),
        messages=tuple(messages),
        mode_label=mode_label or state.mode_label,
        notice=None,
    )


def upstream_history(messages: Sequence[Message], limit: int) -> List[Dict[str, str]]:
    """取最近 limit 条可上行的消息，转换为 {role, text}。

    占位消息和错误提示不发送；结构化消息以 Markdown 文本发送。
    """

    if limit <= 0:
        return []
    items = [{"role": m.role, "text": m.display_text()} for m in messages if m.status == "ready"]
    return items[-limit:]


def has_user_message(messages: Sequence[Message]) -> bool:
    return any(m.role == "user" and m.status == "ready" for m in messages)
