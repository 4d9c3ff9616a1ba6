"""Tests for the tool loop in cafe_assistant.pipeline.orchestrator."""

import asyncio
import json

import pytest

from cafe_assistant.catalog import default_shop
from cafe_assistant.models import Turn
from cafe_assistant.pipeline import Assistant
from cafe_assistant.pipeline.orchestrator import (
    FAILED_TOOL_NUDGE,
    FALLBACK_REPLY,
    MAX_STEPS,
    run_turn,
)
from cafe_assistant.protocol import MALFORMED_REMINDER, UNRECOGNIZED_REMINDER
from cafe_assistant.storage import MAX_HISTORY_TURNS

INSTRUCTIONS = "You are a test assistant."


def _tool_call(name: str, **arguments) -> str:
    return json.dumps({"tool_call": {"name": name, "arguments": arguments}})


def _final(text: str) -> str:
    return json.dumps({"final": text})


@pytest.fixture
def run(registry, conversations):
    async def _run(llm, message: str, session_id: str = "s1", **kwargs) -> str:
        return await run_turn(
            session_id=session_id,
            message=message,
            llm=llm,
            registry=registry,
            conversations=conversations,
            instructions=INSTRUCTIONS,
            **kwargs,
        )
    return _run


# ---------------------------------------------------------------------------
# Final answers and history
# ---------------------------------------------------------------------------

async def test_direct_final_answer(run, stub_llm, conversations):
    llm = stub_llm([_final("We open at 07:00.")])
    reply = await run(llm, "When do you open?")

    assert reply == "We open at 07:00."
    assert len(llm.calls) == 1
    assert conversations.load("s1") == [
        Turn(role="user", content="When do you open?"),
        Turn(role="assistant", content="We open at 07:00."),
    ]


async def test_transcript_layout(run, stub_llm, conversations):
    conversations.save("s1", [
        Turn(role="user", content="hi"),
        Turn(role="assistant", content="hello"),
    ])
    llm = stub_llm([_final("ok")])
    await run(llm, "and now?")

    sent = llm.calls[0]
    assert sent[0] == Turn(role="system", content=INSTRUCTIONS)
    assert [t.content for t in sent[1:]] == ["hi", "hello", "and now?"]


async def test_history_sent_to_model_is_bounded(run, stub_llm, conversations):
    llm = stub_llm(default=_final("noted"))
    for i in range(15):
        await run(llm, f"message {i}")
        sent = llm.calls[-1]
        assert len(sent[1:-1]) <= MAX_HISTORY_TURNS
        assert sent[-1] == Turn(role="user", content=f"message {i}")
    assert len(conversations.load("s1")) == MAX_HISTORY_TURNS
    assert conversations.load("s1")[-1].content == "noted"


async def test_system_turn_not_persisted(run, stub_llm, conversations):
    await run(stub_llm([_final("hi")]), "hello")
    assert all(t.role != "system" for t in conversations.load("s1"))


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------

async def test_tool_call_then_final(run, stub_llm, conversations):
    llm = stub_llm([_tool_call("get_menu", tag="tea"), _final("We have tea for 2.80.")])
    reply = await run(llm, "Do you have tea?")

    assert reply == "We have tea for 2.80."
    second = llm.calls[1]
    assert second[-2] == Turn(role="assistant", content=_tool_call("get_menu", tag="tea"))
    tool_turn = second[-1]
    assert tool_turn.role == "tool"
    payload = json.loads(tool_turn.content)
    assert payload["tool"] == "get_menu"
    assert payload["result"]["ok"] is True
    assert [i["id"] for i in payload["result"]["items"]] == ["tea"]
    # tool traffic is scratch only
    assert [t.role for t in conversations.load("s1")] == ["user", "assistant"]


async def test_failed_tool_adds_explain_nudge(run, stub_llm):
    llm = stub_llm([_tool_call("get_order_status", orderId="ORD-NOPE0000"), _final("I can't find it.")])
    await run(llm, "Where is my order?")

    second = llm.calls[1]
    assert json.loads(second[-2].content)["result"] == {"ok": False, "error": "Order not found."}
    assert second[-1] == Turn(role="user", content=FAILED_TOOL_NUDGE)


async def test_unknown_tool_does_not_end_loop(run, stub_llm):
    llm = stub_llm([_tool_call("teleport"), _final("Sorry, I can't do that.")])
    assert await run(llm, "beam me up") == "Sorry, I can't do that."
    assert "Tool not implemented: teleport" in llm.calls[1][-2].content


async def test_multiple_tool_calls_run_sequentially(run, stub_llm, ledger):
    llm = stub_llm([
        _tool_call("get_menu", tag="pastry"),
        _tool_call("create_order", customerName="Sam", phone="1", items=[{"menuItemId": "cro", "qty": 2}]),
        _final("Two croissants ordered."),
    ])
    assert await run(llm, "two croissants please, Sam, 1") == "Two croissants ordered."
    assert len(llm.calls) == 3
    assert len(ledger) == 1


# ---------------------------------------------------------------------------
# Protocol violations and the step budget
# ---------------------------------------------------------------------------

async def test_malformed_reply_gets_reminder(run, stub_llm):
    llm = stub_llm(["Sure, here you go!", _final("fixed")])
    assert await run(llm, "hi") == "fixed"
    second = llm.calls[1]
    assert second[-2] == Turn(role="assistant", content="Sure, here you go!")
    assert second[-1] == Turn(role="user", content=MALFORMED_REMINDER)


async def test_unrecognized_shape_gets_reminder(run, stub_llm):
    llm = stub_llm(['{"answer": "hi"}', _final("fixed")])
    assert await run(llm, "hi") == "fixed"
    assert llm.calls[1][-1] == Turn(role="user", content=UNRECOGNIZED_REMINDER)


async def test_always_malformed_exhausts_budget(run, stub_llm, conversations):
    before = [Turn(role="user", content="earlier"), Turn(role="assistant", content="reply")]
    conversations.save("s1", before)
    llm = stub_llm(default="not json at all")

    reply = await run(llm, "hello?")

    assert reply == FALLBACK_REPLY
    assert len(llm.calls) == MAX_STEPS == 6
    assert conversations.load("s1") == before


async def test_endless_tool_calls_exhaust_budget(run, stub_llm, conversations):
    llm = stub_llm(default=_tool_call("get_menu"))
    assert await run(llm, "menu") == FALLBACK_REPLY
    assert len(llm.calls) == MAX_STEPS
    assert conversations.load("s1") == []


async def test_custom_step_budget(run, stub_llm):
    llm = stub_llm(default="junk")
    assert await run(llm, "x", max_steps=2) == FALLBACK_REPLY
    assert len(llm.calls) == 2


async def test_model_timeout_returns_fallback(run, conversations):
    async def slow_llm(transcript):
        await asyncio.sleep(5)
        return _final("too late")

    assert await run(slow_llm, "hello", timeout=0.01) == FALLBACK_REPLY
    assert conversations.load("s1") == []


async def test_unsaved_sessions_leave_no_locks_behind(run, stub_llm, conversations):
    llm = stub_llm(default="not json at all")
    for i in range(50):
        assert await run(llm, "hello?", session_id=f"anon-{i}") == FALLBACK_REPLY
    assert len(conversations) == 0
    assert conversations._locks == {}


async def test_timed_out_session_leaves_no_lock_behind(run, conversations):
    async def slow_llm(transcript):
        await asyncio.sleep(5)
        return _final("too late")

    await run(slow_llm, "hello", session_id="slow", timeout=0.01)
    assert "slow" not in conversations._locks


async def test_same_session_requests_are_serialised(run, stub_llm, conversations):
    llm = stub_llm(default=_final("ok"))
    await asyncio.gather(run(llm, "one"), run(llm, "two"))
    assert len(conversations.load("s1")) == 4


# ---------------------------------------------------------------------------
# End-to-end ordering scenario
# ---------------------------------------------------------------------------

async def test_order_two_cappuccinos_with_oat_milk(stub_llm):
    llm = stub_llm([
        _tool_call(
            "create_order",
            customerName="Alex",
            phone="555",
            items=[{"menuItemId": "cap", "qty": 2, "milk": "oat"}],
        ),
        _final("Your order is confirmed..."),
    ])
    assistant = Assistant(shop=default_shop(), llm=llm)
    reply = await assistant.reply("web-1", "I want 2 cappuccinos with oat milk")

    assert reply == "Your order is confirmed..."
    tool_result = json.loads(llm.calls[1][-1].content)["result"]
    order = tool_result["order"]
    assert tool_result["ok"] is True
    assert order["total"] == 7.6
    assert order["status"] == "RECEIVED"
    assert order["items"][0]["milk"] == "oat"
    assert assistant.ledger.get(order["orderId"]) is not None
    assert assistant.conversations.load("web-1") == [
        Turn(role="user", content="I want 2 cappuccinos with oat milk"),
        Turn(role="assistant", content="Your order is confirmed..."),
    ]
    assert "create_order" in llm.calls[0][0].content
