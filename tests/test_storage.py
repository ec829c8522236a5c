"""Tests for JSON history files."""

import json

import pytest

from chatrelay.context import ImagePart, Role, TextPart, Turn
from chatrelay.storage import JsonFileSink


@pytest.fixture
def sink(tmp_path):
    return JsonFileSink(tmp_path)


class TestJsonFileSink:

    def test_path_per_channel(self, sink, tmp_path):
        assert sink.path_for("#rust") == tmp_path / "#rust.json"
        assert sink.path_for("a/b").parent == tmp_path

    @pytest.mark.asyncio
    async def test_save_and_load(self, sink, clock):
        turns = [
            Turn(clock(), Role.USER, (TextPart("<bob> look"), ImagePart("https://x.example/a.png")), "bob"),
            Turn(clock(), Role.AGENT, "Nice cat"),
        ]
        await sink.save("#chan", turns)

        assert await sink.load("#chan") == turns
        assert sink.count("#chan") == 2

    @pytest.mark.asyncio
    async def test_file_is_pretty_json_list(self, sink, clock):
        await sink.save("#chan", [Turn(clock(), Role.AGENT, "hi")])
        raw = sink.path_for("#chan").read_text()
        assert raw.startswith("[\n  {")
        assert json.loads(raw)[0]["content"] == "hi"

    @pytest.mark.asyncio
    async def test_save_overwrites(self, sink, clock):
        await sink.save("#chan", [Turn(clock(), Role.AGENT, "hi")])
        await sink.save("#chan", [])
        assert await sink.load("#chan") == []
        assert not sink.path_for("#chan").with_name("#chan.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_missing_file(self, sink):
        assert await sink.load("#nothing") == []
        assert sink.count("#nothing") == 0

    @pytest.mark.asyncio
    async def test_bad_file(self, sink):
        sink.path_for("#chan").write_text('{"not": "a list"}')
        with pytest.raises(ValueError):
            await sink.load("#chan")
        assert sink.count("#chan") == 0

    @pytest.mark.asyncio
    async def test_creates_directory(self, tmp_path, clock):
        sink = JsonFileSink(tmp_path / "history")
        await sink.save("#chan", [Turn(clock(), Role.AGENT, "hi")])
        assert (tmp_path / "history" / "#chan.json").exists()

    @pytest.mark.asyncio
    async def test_saved_channels(self, sink, clock):
        await sink.save("#chan", [Turn(clock(), Role.AGENT, "hi")])
        await sink.save("alice", [])
        (sink.history_dir / "notes.txt").write_text("ignored")
        assert sink.saved_channels() == ["#chan", "alice"]

    def test_saved_channels_without_directory(self, tmp_path):
        assert JsonFileSink(tmp_path / "missing").saved_channels() == []
