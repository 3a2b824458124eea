import asyncio
import itertools

import pytest

from study_core.api.schemas import StructuredResult, TextResult
from study_core.client.lifecycle import RequestLifecycleController, SendOutcome
from study_core.client.state import BUSY_NOTICE
from study_core.domain.cheatsheet import CheatSheet
from study_core.domain.exceptions import ApiError


class GatedTransport:
    """每次调用等待对应的 Event 再返回预设结果。

    honor_cancel=False 时忽略取消令牌，用来模拟取消与响应竞争的情况。
    """

    def __init__(self, *results, honor_cancel=True):
        self.results = list(results)
        self.gates = [asyncio.Event() for _ in results]
        self.calls = []
        self.honor_cancel = honor_cancel

    async def respond(self, mode_label, messages, token):
        idx = len(self.calls)
        self.calls.append((mode_label, messages))
        if self.honor_cancel:
            await token.guard(self.gates[idx].wait())
        else:
            await self.gates[idx].wait()
        result = self.results[idx]
        if isinstance(result, Exception):
            raise result
        return result


def _controller(transport, **kw):
    counter = itertools.count(1)
    return RequestLifecycleController(transport, id_factory=lambda: f"m-{next(counter)}", **kw)


def test_structured_response_replaces_placeholder(cheat_sheet_payload):
    async def scenario():
        transport = GatedTransport(StructuredResult(document=CheatSheet.model_validate(cheat_sheet_payload)))
        ctl = _controller(transport)
        seen = []
        ctl.subscribe(seen.append)
        task = asyncio.ensure_future(ctl.send("  derivatives "))
        await asyncio.sleep(0)
        pending = ctl.state
        assert pending.sending
        assert [m.status for m in pending.messages] == ["ready", "ready", "thinking"]
        transport.gates[0].set()
        return ctl, pending, await task, seen

    ctl, pending, outcome, seen = asyncio.run(scenario())
    assert outcome == SendOutcome.SETTLED
    final = ctl.state.messages[-1]
    assert final.id == pending.pending_id
    assert final.kind == "structured"
    assert final.document.title == "Derivatives"
    assert ctl.state.messages[1].text == "derivatives"
    assert not ctl.state.sending
    assert len(seen) == 2


def test_history_sent_upstream_excludes_placeholders_and_is_capped():
    async def scenario():
        transport = GatedTransport(TextResult(text="a1"), TextResult(text="a2"))
        ctl = _controller(transport, max_history=2, mode_label="Explain")
        for gate in transport.gates:
            gate.set()
        await ctl.send("q1")
        await ctl.send("q2")
        return transport

    transport = asyncio.run(scenario())
    assert transport.calls[0][0] == "Explain"
    assert transport.calls[0][1][-1] == {"role": "user", "text": "q1"}
    assert transport.calls[1][1] == [{"role": "assistant", "text": "a1"}, {"role": "user", "text": "q2"}]


def test_send_while_sending_is_rejected():
    async def scenario():
        transport = GatedTransport(TextResult(text="done"))
        ctl = _controller(transport)
        first = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        second = await ctl.send("second")
        notice = ctl.state.notice
        transport.gates[0].set()
        return ctl, transport, second, notice, await first

    ctl, transport, second, notice, first = asyncio.run(scenario())
    assert second == SendOutcome.REJECTED
    assert notice == BUSY_NOTICE
    assert len(transport.calls) == 1
    assert first == SendOutcome.SETTLED
    assert [m.text for m in ctl.state.messages if m.role == "user"] == ["first"]


def test_cancelled_request_never_mutates_conversation():
    async def scenario():
        transport = GatedTransport(TextResult(text="late"), TextResult(text="fresh"))
        ctl = _controller(transport)
        first = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        assert ctl.cancel()
        after_cancel = ctl.state.messages
        transport.gates[0].set()
        first_outcome = await first
        assert ctl.state.messages == after_cancel
        second = asyncio.ensure_future(ctl.send("second"))
        await asyncio.sleep(0)
        transport.gates[1].set()
        return ctl, first_outcome, await second

    ctl, first_outcome, second_outcome = asyncio.run(scenario())
    assert first_outcome == SendOutcome.CANCELLED
    assert second_outcome == SendOutcome.SETTLED
    texts = [m.text for m in ctl.state.messages]
    assert "late" not in texts
    assert texts[-1] == "fresh"
    assert ctl.state.notice is None


def test_response_racing_with_cancel_is_discarded():
    async def scenario():
        transport = GatedTransport(TextResult(text="late"), honor_cancel=False)
        ctl = _controller(transport)
        first = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        ctl.cancel()
        snapshot = ctl.state
        transport.gates[0].set()
        return ctl, snapshot, await first

    ctl, snapshot, outcome = asyncio.run(scenario())
    assert outcome == SendOutcome.SUPERSEDED
    assert ctl.state == snapshot
    assert ctl.state.messages[-1].status == "thinking"


def test_reset_discards_in_flight_response():
    async def scenario():
        transport = GatedTransport(ApiError(message="boom"), honor_cancel=False)
        ctl = _controller(transport)
        first = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        ctl.reset(mode_label="Flashcards")
        transport.gates[0].set()
        return ctl, await first

    ctl, outcome = asyncio.run(scenario())
    assert outcome == SendOutcome.SUPERSEDED
    assert len(ctl.state.messages) == 1
    assert ctl.state.messages[0].role == "assistant"
    assert ctl.state.mode_label == "Flashcards"
    assert not ctl.state.sending


def test_failure_replaces_placeholder_with_error():
    async def scenario():
        transport = GatedTransport(ApiError(message="Server error calling the model: down"), TextResult(text="ok"))
        for gate in transport.gates:
            gate.set()
        ctl = _controller(transport)
        first = await ctl.send("first")
        failed = ctl.state
        second = await ctl.send("again")
        return ctl, failed, first, second

    ctl, failed, first, second = asyncio.run(scenario())
    assert first == SendOutcome.FAILED
    error = failed.messages[-1]
    assert error.status == "error"
    assert error.id == "m-3"
    assert "down" in error.text
    assert not failed.sending
    assert second == SendOutcome.SETTLED
    assert ctl.state.messages[-1].text == "ok"


def test_length_guard_rejects_before_network():
    async def scenario():
        transport = GatedTransport(TextResult(text="ok"))
        transport.gates[0].set()
        ctl = _controller(transport, max_input_chars=8000)
        too_long = await ctl.send("x" * 8001)
        notice = ctl.state.notice
        at_limit = await ctl.send("  " + "y" * 8000 + "  ")
        return transport, too_long, notice, at_limit

    transport, too_long, notice, at_limit = asyncio.run(scenario())
    assert too_long == SendOutcome.REJECTED
    assert "8000" in notice
    assert at_limit == SendOutcome.SETTLED
    assert len(transport.calls) == 1


def test_blank_send_is_ignored():
    async def scenario():
        transport = GatedTransport()
        ctl = _controller(transport)
        return ctl, await ctl.send("   ")

    ctl, outcome = asyncio.run(scenario())
    assert outcome == SendOutcome.REJECTED
    assert len(ctl.state.messages) == 1
    assert ctl.state.notice is None


def test_cancel_when_idle_is_noop():
    ctl = _controller(GatedTransport())
    before = ctl.state
    assert ctl.cancel() is False
    assert ctl.state is before


def test_next_send_clears_placeholder_left_by_cancel():
    async def scenario():
        transport = GatedTransport(TextResult(text="late"), TextResult(text="fresh"))
        transport.gates[1].set()
        ctl = _controller(transport)
        first = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        ctl.cancel()
        await first
        assert ctl.state.messages[-1].status == "thinking"
        return ctl, await ctl.send("second")

    ctl, outcome = asyncio.run(scenario())
    assert outcome == SendOutcome.SETTLED
    assert not any(m.status == "thinking" for m in ctl.state.messages)
    assert [(m.role, m.text) for m in ctl.state.messages[1:]] == [
        ("user", "first"),
        ("user", "second"),
        ("assistant", "fresh"),
    ]


def test_externally_cancelled_send_leaves_controller_usable():
    async def scenario():
        transport = GatedTransport(TextResult(text="never"), TextResult(text="ok"))
        transport.gates[1].set()
        ctl = _controller(transport)
        task = asyncio.ensure_future(ctl.send("first"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        after_cancel = ctl.state
        return ctl, after_cancel, await ctl.send("again")

    ctl, after_cancel, outcome = asyncio.run(scenario())
    assert not after_cancel.sending
    assert after_cancel.pending_id is None
    assert outcome == SendOutcome.SETTLED
    assert ctl.state.messages[-1].text == "ok"
