"""请求生命周期控制器。

每次发送的状态：Idle -> Sending -> {Settled, Superseded, Cancelled}
（另有 Failed 与 Rejected 两种结果）。

不变量：
- 同一时刻最多一个在途请求；发送中再次发送会被拒绝并给出提示，
  不排队也不并发。
- 响应应用前比较其 generation 与当前 generation，不一致即静默丢弃，
  慢响应不会覆盖更新的内容。
- 占位消息按 id 替换，不按位置。
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
import logging

from study_core.api.schemas import RespondResult, StructuredResult
from study_core.client import state as st
from study_core.client.cancellation import CancelToken
from study_core.domain.conversation import Message, new_message_id
from study_core.domain.exceptions import BusinessError, Cancelled, Stale
from study_core.infrastructure.logging.logger import log_event


class SendOutcome(str, Enum):
    SETTLED = "settled"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class Transport(Protocol):
    async def respond(
        self,
        mode_label: str,
        messages: List[Dict[str, str]],
        token: CancelToken,
    ) -> RespondResult:
        ...


Listener = Callable[[st.ChatState], None]


def _describe(exc: Exception) -> str:
    if isinstance(exc, BusinessError):
        return exc.message
    return str(exc) or type(exc).__name__


def result_to_message(message_id: str, result: RespondResult) -> Message:
    if isinstance(result, StructuredResult):
        return Message(id=message_id, role="assistant", kind="structured", document=result.document)
    return Message(id=message_id, role="assistant", kind="text", text=result.text)


class RequestLifecycleController:
    def __init__(
        self,
        transport: Transport,
        *,
        mode_label: str = st.DEFAULT_MODE_LABEL,
        max_input_chars: int = 8000,
        max_history: int = 20,
        id_factory: Callable[[], str] = new_message_id,
    ):
        self._transport = transport
        self._max_input_chars = max_input_chars
        self._max_history = max_history
        self._new_id = id_factory
        self._state = st.initial_state(st.greeting_message(self._new_id()), mode_label)
        self._token: Optional[CancelToken] = None
        self._listeners: List[Listener] = []

    @property
    def state(self) -> st.ChatState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册状态变更回调，返回注销函数。"""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, new_state: st.ChatState) -> None:
        if new_state is self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)

    def notify(self, notice: Optional[str]) -> None:
        self._set(st.with_notice(self._state, notice))

    def set_mode(self, mode_label: str) -> None:
        self._set(st.with_mode(self._state, mode_label))

    async def send(self, text: str) -> SendOutcome:
        """发送一条用户消息并等待其结果应用（或被丢弃）。"""

        trimmed = (text or "").strip()
        if not trimmed:
            return SendOutcome.REJECTED
        if self._state.sending:
            self.notify(st.BUSY_NOTICE)
            return SendOutcome.REJECTED
        if len(trimmed) > self._max_input_chars:
            self.notify(
                f"Message is too long ({len(trimmed)} characters). "
                f"The limit is {self._max_input_chars}."
            )
            return SendOutcome.REJECTED

        user_message = Message(id=self._new_id(), role="user", text=trimmed)
        placeholder = Message(id=self._new_id(), role="assistant", text=st.THINKING_TEXT, status="thinking")
        history = st.upstream_history(self._state.messages + (user_message,), self._max_history)
        self._set(st.begin_send(self._state, user_message, placeholder))
        generation = self._state.generation
        mode_label = self._state.mode_label
        log_ctx: Dict[str, Any] = {"generation": generation, "mode": mode_label}

        if self._token is not None:
            self._token.cancel()
        token = CancelToken()
        self._token = token
        try:
            token.raise_if_cancelled()
            result = await self._transport.respond(mode_label, history, token)
            self._ensure_current(token, generation)
        except Cancelled:
            log_event(logging.INFO, "Request cancelled", log_ctx)
            return SendOutcome.CANCELLED
        except Stale as e:
            log_event(logging.INFO, "Discarded stale response", log_ctx, current=e.extra.get("current"))
            return SendOutcome.SUPERSEDED
        except asyncio.CancelledError:
            # 外部取消了执行 send 的任务，退出发送中状态后继续向上传播
            log_event(logging.INFO, "Send task cancelled", log_ctx)
            token.cancel()
            if generation == self._state.generation:
                self._set(st.supersede(self._state))
            raise
        except Exception as e:
            if self._is_stale(token, generation):
                log_event(logging.INFO, "Discarded stale failure", log_ctx, error=_describe(e))
                return SendOutcome.SUPERSEDED
            log_event(logging.WARNING, "Request failed", log_ctx, error=_describe(e))
            self._set(st.fail(self._state, generation, placeholder.id, _describe(e)))
            return SendOutcome.FAILED
        finally:
            if self._token is token:
                self._token = None

        self._set(st.settle(self._state, generation, placeholder.id, result_to_message(placeholder.id, result)))
        return SendOutcome.SETTLED

    def _is_stale(self, token: CancelToken, generation: int) -> bool:
        return token.cancelled or generation != self._state.generation

    def _ensure_current(self, token: CancelToken, generation: int) -> None:
        if self._is_stale(token, generation):
            raise Stale(current=self._state.generation, generation=generation)

    def cancel(self) -> bool:
        """中止在途请求；占位消息保留，下一次发送时移除。"""

        if not self._state.sending and self._token is None:
            return False
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._set(st.supersede(self._state))
        return True

    def reset(self, messages: Optional[Sequence[Message]] = None, mode_label: Optional[str] = None) -> None:
        """切换会话：先使在途请求失效，再替换消息列表。"""

        if self._token is not None:
            self._token.cancel()
            self._token = None
        if messages is None:
            messages = [st.greeting_message(self._new_id())]
        self._set(st.reset(self._state, messages, mode_label))
