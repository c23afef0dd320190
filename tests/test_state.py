import asyncio

from chatcal.agent.schemas import PendingIntent
from chatcal.agent.state import SessionStore
from chatcal.config import SESSION_MAX_AGE_SECONDS

from conftest import run


def test_sweep_evicts_only_idle_sessions(store, clock):
    store.append_turn("old", "user", "hi")
    clock.advance(80_000)
    store.append_turn("fresh", "user", "hi")
    clock.advance(10_000)

    evicted = store.sweep()

    assert evicted == ["old"]
    assert "old" not in store
    assert "fresh" in store


def test_sweep_skips_session_being_processed(store, clock):
    store.append_turn("busy", "user", "hi")
    clock.advance(SESSION_MAX_AGE_SECONDS + 1)

    async def sweep_while_locked():
        async with store.lock("busy"):
            return store.sweep()

    assert run(sweep_while_locked()) == []
    assert "busy" in store
    assert store.sweep() == ["busy"]


def test_history_trims_to_max_and_returns_copies():
    store = SessionStore(max_history=3)
    for i in range(5):
        store.append_turn("u1", "user", f"t{i}")

    history = store.history("u1")
    assert [turn.text for turn in history] == ["t2", "t3", "t4"]
    assert [turn.text for turn in store.history("u1", limit=2)] == ["t3", "t4"]

    history[0].text = "changed"
    assert store.history("u1")[0].text == "t2"


def test_pending_intent_round_trip(store, clock):
    pending = PendingIntent(intent="create_event", fields={"title": "Sync"},
                            missing_fields=["date", "time"], created_at=clock())
    store.set_pending_intent("u1", pending)
    pending.fields["title"] = "mutated"

    stored = store.get_pending_intent("u1")
    assert stored.fields == {"title": "Sync"}

    store.clear_pending_intent("u1")
    assert store.get_pending_intent("u1") is None


def test_snapshot_of_unknown_user_is_none(store):
    assert store.snapshot("nobody") is None
    assert "nobody" not in store


def test_same_user_messages_are_serialized(store):
    order = []

    async def handle(tag, delay):
        async with store.lock("u1"):
            order.append(f"{tag}-start")
            await asyncio.sleep(delay)
            order.append(f"{tag}-end")

    async def main():
        await asyncio.gather(handle("first", 0.02), handle("second", 0))

    run(main())
    assert order == ["first-start", "first-end", "second-start", "second-end"]
