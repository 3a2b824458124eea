import asyncio
import tkinter as tk
from tkinter import scrolledtext
from tkinter import ttk

from study_core.client import state as st
from study_core.client.lifecycle import RequestLifecycleController
from study_core.client.session import StudySession
from study_core.client.transport import ProxyClient
from study_core.config.settings import settings
from study_core.infrastructure.storage.json_store import JsonPackStore


class App:
    """StudyTools 桌面控制台。

    tkinter 与网络请求跑在同一个 asyncio 事件循环里：run() 周期性调用
    root.update() 处理界面事件，所有状态修改都发生在该线程。
    """

    def __init__(self, root, session: StudySession):
        self.root = root
        self.root.title("StudyToolsGPT")
        self.session = session
        self._running = True
        self._tasks = set()
        self._pack_ids = []
        main = tk.PanedWindow(root, orient=tk.HORIZONTAL)
        main.pack(fill=tk.BOTH, expand=True)
        left = tk.Frame(main)
        right = tk.Frame(main)
        main.add(left, minsize=240)
        main.add(right)
        tk.Button(left, text="New Chat", command=self.on_new_chat).pack(fill=tk.X)
        tk.Label(left, text="Mode").pack(anchor=tk.W)
        self.mode = ttk.Combobox(left, values=list(st.MODE_LABELS), state="readonly")
        self.mode.set(session.state.mode_label)
        self.mode.bind("<<ComboboxSelected>>", self.on_mode)
        self.mode.pack(fill=tk.X)
        tk.Label(left, text="Saved packs").pack(anchor=tk.W)
        self.pack_list = tk.Listbox(left, height=14)
        self.pack_list.pack(fill=tk.BOTH, expand=True)
        self.pack_list.bind("<Double-Button-1>", self.on_load_pack)
        lf_btns = tk.Frame(left)
        lf_btns.pack(fill=tk.X)
        tk.Button(lf_btns, text="Save", command=self.on_save_pack).pack(side=tk.LEFT)
        tk.Button(lf_btns, text="Delete", command=self.on_delete_pack).pack(side=tk.LEFT)
        self.chat = scrolledtext.ScrolledText(right, width=90, height=28, wrap=tk.WORD)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("assistant", foreground="#202124")
        self.chat.tag_config("thinking", foreground="#5f6368")
        self.chat.tag_config("error", foreground="#d93025")
        rt_in = tk.Frame(right)
        rt_in.pack(fill=tk.X)
        self.entry = tk.Entry(rt_in)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        self.send_btn = tk.Button(rt_in, text="Send", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)
        tk.Button(rt_in, text="Stop", command=self.session.controller.cancel).pack(side=tk.LEFT)
        self.status = tk.Label(right, text="Ready", anchor=tk.W)
        self.status.pack(fill=tk.X)
        tk.Label(
            right,
            text="StudyToolsGPT may produce inaccurate information about people, places, or facts.",
        ).pack(fill=tk.X)
        self.root.protocol("WM_DELETE_WINDOW", self.close)
        self.session.controller.subscribe(self.render)
        self.render(self.session.state)
        self.refresh_packs()

    def render(self, state: st.ChatState):
        self.chat.delete(1.0, tk.END)
        for m in state.messages:
            speaker = "You" if m.role == "user" else "StudyToolsGPT"
            tag = m.role if m.status == "ready" else m.status
            self.chat.insert(tk.END, f"{speaker}:\n{m.display_text()}\n\n", tag)
        self.chat.see(tk.END)
        self.send_btn.config(state=tk.DISABLED if state.sending else tk.NORMAL)
        self.entry.config(state=tk.DISABLED if state.sending else tk.NORMAL)
        if state.notice:
            self.status.config(text=state.notice)
        else:
            self.status.config(text="Sending..." if state.sending else f"Mode: {state.mode_label}")

    def refresh_packs(self):
        packs = self.session.list_packs()
        self._pack_ids = [p.id for p in packs]
        self.pack_list.delete(0, tk.END)
        for p in packs:
            self.pack_list.insert(tk.END, f"{p.title} [{p.mode}]")

    def _selected_pack_id(self):
        sel = self.pack_list.curselection()
        if not sel:
            return None
        return self._pack_ids[sel[0]]

    def on_new_chat(self):
        self.session.new_chat(self.mode.get())

    def on_mode(self, event):
        self.session.set_mode(self.mode.get())

    def on_save_pack(self):
        if self.session.save_pack() is not None:
            self.refresh_packs()

    def on_load_pack(self, event):
        pack_id = self._selected_pack_id()
        if pack_id:
            pack = self.session.load_pack(pack_id)
            self.mode.set(pack.mode)

    def on_delete_pack(self):
        pack_id = self._selected_pack_id()
        if pack_id:
            self.session.delete_pack(pack_id)
            self.refresh_packs()

    def on_send(self):
        text = self.entry.get()
        if not text.strip():
            return
        if not self.session.state.sending:
            self.entry.delete(0, tk.END)
        task = asyncio.ensure_future(self.session.send(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_send_event(self, event):
        self.on_send()
        return "break"

    def close(self):
        self.session.controller.cancel()
        self._running = False

    async def run(self):
        while self._running:
            self.root.update()
            await asyncio.sleep(0.02)
        self.root.destroy()


def main() -> None:
    controller = RequestLifecycleController(
        ProxyClient(settings.proxy_url, timeout=settings.http_timeout),
        mode_label=settings.default_mode_label,
        max_input_chars=settings.max_input_chars,
        max_history=settings.max_context_messages,
    )
    session = StudySession(controller, JsonPackStore(root=settings.storage_root))

    async def _run():
        app = App(tk.Tk(), session)
        await app.run()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
