"""Tests for the per-channel context store."""

import asyncio
from datetime import timedelta

import pytest

from chatrelay.context import (
    ContextStore,
    ImagePart,
    Role,
    TextPart,
    Turn,
    find_secure_urls,
)
from conftest import FakeProbe, FakeSink

CAT = "https://example.com/cat.png"
PAGE = "https://example.com/index.html"


# ── Turn ─────────────────────────────────────────────────────

class TestTurn:

    def test_text_of_multipart(self, clock):
        turn = Turn(clock(), Role.USER, (TextPart("<bob> look"), ImagePart(CAT)), "bob")
        assert turn.is_multipart
        assert turn.text == "<bob> look"

    def test_fresh_image_kept_for_request(self, clock):
        turn = Turn(clock(), Role.USER, (TextPart("<bob> look"), ImagePart(CAT)), "bob")
        clock.advance(minutes=59)
        assert turn.for_request(clock()) is turn

    def test_old_image_dropped_for_request(self, clock):
        turn = Turn(clock(), Role.USER, (TextPart("<bob> look"), ImagePart(CAT)), "bob")
        clock.advance(minutes=61)
        sent = turn.for_request(clock())
        assert sent.content == (TextPart("<bob> look"),)
        assert sent.name == "bob"
        # Stored turn is untouched
        assert len(turn.content) == 2

    def test_dict_round_trip_keeps_parts(self, clock):
        turn = Turn(clock(), Role.USER, (TextPart("<bob> look"), ImagePart(CAT)), "bob")
        data = turn.to_dict()
        assert data["role"] == "user"
        assert data["name"] == "bob"
        assert data["content"][1] == {"type": "image_url", "url": CAT}
        assert Turn.from_dict(data) == turn

    def test_from_dict_naive_date_is_utc(self):
        turn = Turn.from_dict({"date": "2024-03-01T12:00:00", "role": "assistant", "content": "hi"})
        assert turn.created_at.tzinfo is not None
        assert turn.role is Role.AGENT
        assert turn.name is None

    @pytest.mark.parametrize("data", [
        "not a turn",
        {"date": "2024-03-01T12:00:00+00:00", "role": "user", "content": 5},
        {"date": "2024-03-01T12:00:00+00:00", "role": "user", "content": ["loose text"]},
        {"date": 1709294400, "role": "user", "content": "hi"},
        {"date": "2024-03-01T12:00:00+00:00", "role": "robot", "content": "hi"},
    ])
    def test_from_dict_rejects_wrong_shape(self, data):
        with pytest.raises(ValueError):
            Turn.from_dict(data)

    def test_find_secure_urls(self):
        text = f"see {CAT} and http://insecure.example/x.png or https://"
        assert find_secure_urls(text) == [CAT, "https://"]


# ── Inserting ────────────────────────────────────────────────

class TestInsert:

    @pytest.mark.asyncio
    async def test_user_turn_rendered_with_sender(self, clock):
        store = ContextStore(clock=clock)
        turn = await store.insert_user_turn("#chan", "alice", "hello")
        assert turn.content == "<alice> hello"
        assert turn.name == "alice"
        assert turn.role is Role.USER
        assert store.snapshot("#chan") == [turn]

    @pytest.mark.asyncio
    async def test_image_url_becomes_part(self, clock):
        probe = FakeProbe({CAT: "image/png", PAGE: "text/html"})
        store = ContextStore(probe=probe, clock=clock)
        turn = await store.insert_user_turn("#chan", "bob", f"look {CAT} {PAGE}")
        assert turn.content == (TextPart(f"<bob> look {CAT} {PAGE}"), ImagePart(CAT))
        assert probe.calls == [CAT, PAGE]

    @pytest.mark.asyncio
    async def test_failed_probe_means_plain_text(self, clock):
        store = ContextStore(probe=FakeProbe(), clock=clock)
        turn = await store.insert_user_turn("#chan", "bob", f"look {CAT}")
        assert turn.content == f"<bob> look {CAT}"

    @pytest.mark.asyncio
    async def test_agent_turns_share_a_timestamp(self, clock):
        store = ContextStore(clock=clock)
        turns = await store.insert_agent_turns("#chan", ["calling", "done"])
        assert [t.role for t in turns] == [Role.AGENT, Role.AGENT]
        assert turns[0].created_at == turns[1].created_at
        assert [t.content for t in store.snapshot("#chan")] == ["calling", "done"]

    @pytest.mark.asyncio
    async def test_agent_turns_empty_is_noop(self, clock):
        sink = FakeSink()
        store = ContextStore(sink=sink, clock=clock)
        assert await store.insert_agent_turns("#chan", []) == []
        assert store.channels() == []
        assert sink.saves == []

    @pytest.mark.asyncio
    async def test_channels_are_independent(self, clock):
        store = ContextStore(clock=clock)
        await store.insert_user_turn("#a", "alice", "one")
        await store.insert_user_turn("#b", "bob", "two")
        assert [t.text for t in store.snapshot("#a")] == ["<alice> one"]
        assert [t.text for t in store.snapshot("#b")] == ["<bob> two"]
        assert sorted(store.channels()) == ["#a", "#b"]

    @pytest.mark.asyncio
    async def test_old_turns_evicted_on_insert(self, clock):
        store = ContextStore(clock=clock)
        await store.insert_user_turn("#chan", "alice", "ancient")
        clock.advance(hours=47)
        await store.insert_user_turn("#chan", "alice", "old")
        clock.advance(hours=2)
        await store.insert_user_turn("#chan", "alice", "new")
        assert [t.text for t in store.snapshot("#chan")] == ["<alice> old", "<alice> new"]

    @pytest.mark.asyncio
    async def test_turn_exactly_at_limit_is_kept(self, clock):
        store = ContextStore(clock=clock)
        await store.insert_user_turn("#chan", "alice", "edge")
        clock.advance(hours=48)
        await store.insert_user_turn("#chan", "alice", "now")
        assert len(store.snapshot("#chan")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_inserts_keep_everything(self, clock):
        gate = asyncio.Event()
        store = ContextStore(probe=FakeProbe({CAT: "image/jpeg"}, gate=gate), clock=clock)

        slow = asyncio.create_task(store.insert_user_turn("#chan", "bob", f"pic {CAT}"))
        await asyncio.sleep(0)
        # A plain line is not held up by the pending probe
        await store.insert_user_turn("#chan", "alice", "plain")
        assert [t.text for t in store.snapshot("#chan")] == ["<alice> plain"]

        gate.set()
        await slow
        assert len(store.snapshot("#chan")) == 2

    @pytest.mark.asyncio
    async def test_channels_do_not_wait_on_each_other(self, clock):
        gate = asyncio.Event()
        store = ContextStore(probe=FakeProbe({CAT: "image/png"}, gate=gate), clock=clock)

        pending = asyncio.create_task(store.insert_user_turn("#a", "bob", f"pic {CAT}"))
        await asyncio.sleep(0)
        turn = await asyncio.wait_for(store.insert_user_turn("#b", "alice", "hi"), timeout=1.0)

        assert store.snapshot("#b") == [turn]
        assert store.snapshot("#a") == []
        assert not pending.done()

        gate.set()
        await pending
        assert store.snapshot("#a")[0].is_multipart


# ── Reading ──────────────────────────────────────────────────

class TestTurnsForRequest:

    @pytest.mark.asyncio
    async def test_unknown_channel_is_empty(self, clock):
        assert ContextStore(clock=clock).get_turns_for_request("#none", True) == []

    @pytest.mark.asyncio
    async def test_full_or_latest(self, clock):
        store = ContextStore(clock=clock)
        await store.insert_user_turn("#chan", "alice", "one")
        await store.insert_agent_turns("#chan", ["two"])
        await store.insert_user_turn("#chan", "bob", "three")

        full = store.get_turns_for_request("#chan", True)
        assert [t.text for t in full] == ["<alice> one", "two", "<bob> three"]

        latest = store.get_turns_for_request("#chan", False)
        assert [t.text for t in latest] == ["<bob> three"]

    @pytest.mark.asyncio
    async def test_old_images_stripped(self, clock):
        store = ContextStore(probe=FakeProbe({CAT: "image/png"}), clock=clock)
        await store.insert_user_turn("#chan", "bob", f"look {CAT}")
        assert store.get_turns_for_request("#chan", True)[0].is_multipart

        clock.advance(hours=2)
        turn = store.get_turns_for_request("#chan", True)[0]
        assert turn.content == (TextPart(f"<bob> look {CAT}"),)
        assert len(store.snapshot("#chan")[0].content) == 2


# ── Clearing / restoring ─────────────────────────────────────

class TestClearAndRestore:

    @pytest.mark.asyncio
    async def test_clear(self, clock):
        sink = FakeSink()
        store = ContextStore(sink=sink, clock=clock)
        await store.insert_user_turn("#chan", "alice", "hi")
        await store.clear("#chan")
        assert store.snapshot("#chan") == []
        assert sink.saves[-1] == ("#chan", [])

    @pytest.mark.asyncio
    async def test_clear_unknown_channel(self, clock):
        sink = FakeSink()
        store = ContextStore(sink=sink, clock=clock)
        await store.clear("#none")
        assert sink.saves == []
        assert store.channels() == []

    def test_restore_sorts_and_evicts(self, clock):
        store = ContextStore(clock=clock)
        now = clock()
        turns = [
            Turn(now - timedelta(hours=1), Role.AGENT, "second"),
            Turn(now - timedelta(hours=50), Role.USER, "expired", "bob"),
            Turn(now - timedelta(hours=2), Role.USER, "<bob> first", "bob"),
        ]
        store.restore("#chan", turns)
        assert [t.text for t in store.snapshot("#chan")] == ["<bob> first", "second"]


# ── Persistence ──────────────────────────────────────────────

class TestPersistence:

    @pytest.mark.asyncio
    async def test_every_change_saved(self, clock):
        sink = FakeSink()
        store = ContextStore(sink=sink, clock=clock)
        await store.insert_user_turn("#chan", "alice", "hi")
        await store.insert_agent_turns("#chan", ["hello"])
        assert [len(turns) for _, turns in sink.saves] == [1, 2]

    @pytest.mark.asyncio
    async def test_save_failure_does_not_raise(self, clock):
        store = ContextStore(sink=FakeSink(fail=True), clock=clock)
        turn = await store.insert_user_turn("#chan", "alice", "hi")
        assert store.snapshot("#chan") == [turn]

    @pytest.mark.asyncio
    async def test_stale_snapshot_not_written(self, clock):
        sink = FakeSink()
        store = ContextStore(sink=sink, clock=clock)
        await store.insert_user_turn("#chan", "alice", "one")
        # Simulate a newer write having landed first
        store._saved_revision["#chan"] = 99
        await store.insert_user_turn("#chan", "alice", "two")
        assert len(sink.saves) == 1
