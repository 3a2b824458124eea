"""客户端会话：组合生命周期控制器与 Pack 存储。"""

from datetime import datetime, timezone
from typing import Callable, List, Optional
from uuid import uuid4

from study_core.client import state as st
from study_core.client.lifecycle import RequestLifecycleController, SendOutcome
from study_core.domain.conversation import Pack, PackStore


PACK_TITLE_MAX_CHARS = 60
EMPTY_PACK_NOTICE = "Send at least one message before saving a pack."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def pack_title(messages) -> str:
    """取第一条用户消息作为标题，超长截断。"""

    for m in messages:
        if m.role == "user" and m.text:
            title = " ".join(m.text.split())
            if len(title) > PACK_TITLE_MAX_CHARS:
                title = title[: PACK_TITLE_MAX_CHARS - 3].rstrip() + "..."
            return title
    return "Untitled pack"


class StudySession:
    """一个桌面客户端会话。

    Attributes:
        controller: 请求生命周期控制器，持有会话状态。
        current_pack_id: 当前会话对应的 pack（保存过或载入的），没有时为 None。
    """

    def __init__(
        self,
        controller: RequestLifecycleController,
        store: PackStore,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.controller = controller
        self._store = store
        self._clock = clock
        self.current_pack_id: Optional[str] = None

    @property
    def state(self) -> st.ChatState:
        return self.controller.state

    async def send(self, text: str) -> SendOutcome:
        return await self.controller.send(text)

    def set_mode(self, mode_label: str) -> None:
        self.controller.set_mode(mode_label)

    def new_chat(self, mode_label: Optional[str] = None) -> None:
        self.controller.reset(mode_label=mode_label)
        self.current_pack_id = None

    def list_packs(self) -> List[Pack]:
        return self._store.list_packs()

    def save_pack(self) -> Optional[Pack]:
        """保存当前会话；没有用户消息时拒绝并提示。

        同一会话再次保存会更新原 pack，而不是新建。
        """

        messages = [m for m in self.state.messages if not m.is_placeholder]
        if not st.has_user_message(messages):
            self.controller.notify(EMPTY_PACK_NOTICE)
            return None
        now = self._clock()
        title = pack_title(messages)
        existing = None
        if self.current_pack_id:
            existing = next((p for p in self._store.list_packs() if p.id == self.current_pack_id), None)
        if existing is not None:
            pack = existing.touched(title=title, mode=self.state.mode_label, messages=messages, now=now)
        else:
            pack = Pack(
                id=f"p-{uuid4().hex}",
                title=title,
                mode=self.state.mode_label,
                messages=messages,
                created_at=now,
                updated_at=now,
            )
        self._store.save_pack(pack)
        self.current_pack_id = pack.id
        self.controller.notify(f"Saved pack \"{pack.title}\".")
        return pack

    def load_pack(self, pack_id: str) -> Pack:
        pack = self._store.get_pack(pack_id)
        self.controller.reset(pack.messages, pack.mode)
        self.current_pack_id = pack.id
        return pack

    def delete_pack(self, pack_id: str) -> None:
        self._store.delete_pack(pack_id)
        if self.current_pack_id == pack_id:
            self.current_pack_id = None
