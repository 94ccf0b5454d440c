"""Tests for VoxReply core components."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from voxreply.config import VoxConfig, _config_to_dict, _dict_to_config, load_config
from voxreply.delivery.formatter import AGENT_FAILED, format_debug_echo
from voxreply.delivery.media import (
    DEFAULT_VOICE_MIME,
    audio_mime_type,
    estimate_duration,
    is_audio_file,
    resolve_media_type,
)
from voxreply.engine.fallback import HELP_TEXT, fallback_reply, keyword_reply
from voxreply.errors import InvalidInput
from voxreply.gateway.message import (
    AudioPayload,
    ChatSummary,
    DocumentPayload,
    ExtendedTextPayload,
    ImagePayload,
    InboundEvent,
    MessageRecord,
    TextPayload,
    UnknownPayload,
    VideoPayload,
    payload_from_dict,
)
from voxreply.utils.jid import (
    MAX_MESSAGE_LENGTH,
    is_group_jid,
    parse_jid,
    phone_from_jid,
    prepare_message_content,
    sanitize_message_content,
    validate_jid,
)

from conftest import GROUP_JID, USER_JID


# ─── Config Tests ────────────────────────────────────────────────

class TestConfig:
    def test_default_config(self):
        config = VoxConfig()
        assert config.name == "VoxReply"
        assert config.agent.base_url == "http://localhost:8321"
        assert config.agent.temperature == 0.7
        assert config.agent.max_tokens == 200
        assert config.agent.tool_choice == "auto"
        assert config.speech.timeout_seconds == 300
        assert config.synthesis.bitrate == "64k"
        assert config.synthesis.sample_rate == 48000
        assert config.delivery.max_upload_attempts == 3
        assert config.delivery.retry_delay_seconds == 2.0
        assert config.pipeline.debug_echo is True

    def test_derived_paths(self, tmp_path):
        config = VoxConfig(config_dir=tmp_path)
        assert config.work_path == tmp_path / "media"
        assert config.database_path == tmp_path / "messages.db"

    def test_config_roundtrip(self):
        config = VoxConfig()
        config.agent.model = "llama-3-70b"
        config.agent.tool_groups = ["mcp::whatsapp"]
        config.pipeline.debug_echo = False
        restored = _dict_to_config(_config_to_dict(config))
        assert restored.agent.model == "llama-3-70b"
        assert restored.agent.tool_groups == ["mcp::whatsapp"]
        assert restored.pipeline.debug_echo is False
        assert restored.synthesis.channels == config.synthesis.channels

    def test_secrets_not_serialized(self):
        config = VoxConfig()
        config.agent.api_key = "llama-secret"
        config.speech.cloud_api_key = "sk-secret"
        dumped = json.dumps(_config_to_dict(config))
        assert "llama-secret" not in dumped
        assert "sk-secret" not in dumped

    def test_unknown_keys_ignored(self):
        config = _dict_to_config({"agent": {"model": "m", "bogus": 1}})
        assert config.agent.model == "m"
        assert not hasattr(config.agent, "bogus")

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setattr("voxreply.config._default_config_dir", lambda: tmp_path)
        monkeypatch.setenv("LLAMASTACK_BASE_URL", "http://llama:8321")
        monkeypatch.setenv("LLAMASTACK_MODEL", "llama-3-8b")
        monkeypatch.setenv("LLAMASTACK_TEMPERATURE", "0.2")
        monkeypatch.setenv("LLAMASTACK_MAX_TOKENS", "not-a-number")
        monkeypatch.setenv("LLAMASTACK_MCP_TOOL_GROUP", "mcp::whatsapp, builtin::rag")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("VOXREPLY_DEBUG_ECHO", "0")

        config = load_config()
        assert config.agent.base_url == "http://llama:8321"
        assert config.agent.model == "llama-3-8b"
        assert config.agent.temperature == 0.2
        assert config.agent.max_tokens == 200
        assert config.agent.tool_groups == ["mcp::whatsapp", "builtin::rag"]
        assert config.speech.cloud_api_key == "sk-test"
        assert config.pipeline.debug_echo is False

    def test_load_creates_default_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr("voxreply.config._default_config_dir", lambda: tmp_path)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        config = load_config()
        assert (tmp_path / "config.json").exists()
        assert config.work_path.is_dir()

        data = json.loads((tmp_path / "config.json").read_text())
        assert data["agent"]["max_tokens"] == 200


# ─── Message Model Tests ─────────────────────────────────────────

class TestPayloads:
    def test_conversation(self):
        assert payload_from_dict({"conversation": "hi"}) == TextPayload(text="hi")

    def test_extended_text(self):
        payload = payload_from_dict({"extendedTextMessage": {"text": "see link"}})
        assert payload == ExtendedTextPayload(text="see link")

    def test_media_kinds(self):
        assert isinstance(payload_from_dict({"imageMessage": {"caption": "c"}}), ImagePayload)
        assert isinstance(payload_from_dict({"videoMessage": {}}), VideoPayload)
        doc = payload_from_dict({"documentMessage": {"fileName": "a.pdf"}})
        assert isinstance(doc, DocumentPayload)
        assert doc.filename == "a.pdf"

    def test_audio(self):
        payload = payload_from_dict({"audioMessage": {"ptt": True, "seconds": 7}})
        assert payload == AudioPayload(ptt=True, seconds=7)
        assert payload.label == "[Voice Message]"
        assert AudioPayload(ptt=False).label == "[Audio Message]"

    def test_precedence(self):
        raw = {
            "conversation": "text wins",
            "imageMessage": {"caption": "ignored"},
            "audioMessage": {"ptt": True},
        }
        assert payload_from_dict(raw) == TextPayload(text="text wins")
        raw = {"videoMessage": {"caption": "v"}, "audioMessage": {"ptt": True}}
        assert isinstance(payload_from_dict(raw), VideoPayload)

    def test_unknown(self):
        assert isinstance(payload_from_dict({}), UnknownPayload)
        assert isinstance(payload_from_dict({"stickerMessage": {}}), UnknownPayload)

    def test_is_voice_note(self):
        def event(payload, from_me=False):
            return InboundEvent("id", USER_JID, USER_JID, payload, is_from_me=from_me)

        assert event(AudioPayload(ptt=True)).is_voice_note
        assert not event(AudioPayload(ptt=True), from_me=True).is_voice_note
        assert not event(AudioPayload(ptt=False)).is_voice_note
        assert not event(TextPayload(text="hi")).is_voice_note


# ─── Media Type Tests ────────────────────────────────────────────

class TestMediaTypes:
    def test_voice_types(self):
        assert audio_mime_type("reply.ogg") == "audio/ogg"
        assert audio_mime_type("reply.opus") == "audio/ogg"

    def test_other_types(self):
        assert resolve_media_type("song.MP3").mime == "audio/mpeg"
        assert resolve_media_type("photo.jpg").kind == "image"
        assert resolve_media_type("clip.webm").kind == "video"
        assert resolve_media_type("report.pdf").mime == "application/pdf"

    def test_bare_extension(self):
        assert resolve_media_type("wav").mime == "audio/wav"
        assert resolve_media_type(".m4a").mime == "audio/mp4"

    def test_unknown_defaults_to_voice(self):
        assert resolve_media_type("blob.xyz").mime == DEFAULT_VOICE_MIME
        assert resolve_media_type("noextension").mime == DEFAULT_VOICE_MIME

    def test_is_audio_file(self):
        assert is_audio_file("a.flac")
        assert not is_audio_file("a.png")

    def test_estimate_duration(self):
        assert estimate_duration(0) == 1
        assert estimate_duration(15999) == 1
        assert estimate_duration(48000) == 3
        assert estimate_duration(160000) == 10


# ─── JID Tests ───────────────────────────────────────────────────

class TestJid:
    @pytest.mark.parametrize(
        "jid", [USER_JID, GROUP_JID, "15551234567-1600000000@g.us", "1234@broadcast"]
    )
    def test_valid(self, jid):
        assert validate_jid(jid) == jid

    @pytest.mark.parametrize(
        "jid", ["", "alice@s.whatsapp.net", "15551234567", "15551234567@example.com"]
    )
    def test_invalid(self, jid):
        with pytest.raises(InvalidInput):
            validate_jid(jid)

    @pytest.mark.parametrize(
        "jid", [USER_JID, GROUP_JID, "123456789012345@lid", "15551234567:12@s.whatsapp.net"]
    )
    def test_parse_network_jids(self, jid):
        assert parse_jid(jid) == jid

    @pytest.mark.parametrize("jid", ["", "  ", "not-a-jid", "15551234567@", "a@b@c", "1 2@lid"])
    def test_parse_rejects_unparseable(self, jid):
        with pytest.raises(InvalidInput):
            parse_jid(jid)

    def test_group_detection(self):
        assert is_group_jid(GROUP_JID)
        assert not is_group_jid(USER_JID)
        assert phone_from_jid(USER_JID) == "15551234567"

    def test_sanitize(self):
        assert sanitize_message_content("  hi\x00 there\x07 \n") == "hi there"
        assert sanitize_message_content("line1\nline2") == "line1\nline2"

    def test_prepare_rejects_empty(self):
        with pytest.raises(InvalidInput):
            prepare_message_content(" \x01 ")

    def test_prepare_clips_long_text(self):
        clipped = prepare_message_content("a" * (MAX_MESSAGE_LENGTH + 100))
        assert len(clipped) == MAX_MESSAGE_LENGTH
        assert clipped.endswith("...")


# ─── Reply Text Tests ────────────────────────────────────────────

class TestFallbackReplies:
    def test_help(self):
        assert keyword_reply("/help") == HELP_TEXT
        assert keyword_reply("Can you help me?") == HELP_TEXT

    def test_ping(self):
        assert keyword_reply("ping") == "Pong! 🏓"
        assert keyword_reply("/ping") == "Pong! 🏓"
        assert keyword_reply("shipping update") is None

    def test_time(self):
        now = datetime(2026, 5, 4, 9, 15, 0)
        assert keyword_reply("What time is it?", now) == "Current time: 2026-05-04 09:15:00"

    def test_greeting(self):
        assert keyword_reply("Hello there") == "Hello! 👋 How can I help you?"
        assert keyword_reply("hi") == "Hello! 👋 How can I help you?"
        assert keyword_reply("this is fine") is None

    def test_generic_fallback(self):
        assert fallback_reply("tell me about the weather in Paris") == AGENT_FAILED
        assert fallback_reply("") == AGENT_FAILED
        assert fallback_reply("hello") != AGENT_FAILED

    def test_debug_echo(self):
        echo = format_debug_echo("  what's up ", "Not much.")
        assert "what's up" in echo
        assert "Not much." in echo
        assert "(nothing)" in format_debug_echo("", "x")


# ─── Store Tests ─────────────────────────────────────────────────

def _record(message_id: str, minutes: int, content: str = "hi") -> MessageRecord:
    return MessageRecord(
        message_id=message_id,
        chat_jid=USER_JID,
        sender=USER_JID,
        content=content,
        timestamp=datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


class TestMessageStore:
    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        await store.upsert_message(_record("m1", 0, "first"))
        await store.upsert_message(_record("m1", 0, "second"))
        assert await store.count_messages() == 1
        stored = await store.get_message("m1")
        assert stored.content == "second"
        assert stored.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_missing_message(self, store):
        assert await store.get_message("nope") is None

    @pytest.mark.asyncio
    async def test_list_messages_newest_first(self, store):
        for i in range(5):
            await store.upsert_message(_record(f"m{i}", i))
        records = await store.list_messages(USER_JID, limit=2, offset=1)
        assert [r.message_id for r in records] == ["m3", "m2"]
        assert await store.list_messages(GROUP_JID) == []

    @pytest.mark.asyncio
    async def test_chats(self, store):
        old = datetime(2026, 1, 1, tzinfo=timezone.utc)
        new = datetime(2026, 2, 1, tzinfo=timezone.utc)
        await store.upsert_chat(ChatSummary(USER_JID, "Alice", "hey", old))
        await store.upsert_chat(ChatSummary(GROUP_JID, GROUP_JID, "yo", new, is_group=True))
        await store.upsert_chat(ChatSummary(USER_JID, "Alice", "later", old))

        chats = await store.list_chats()
        assert [c.jid for c in chats] == [GROUP_JID, USER_JID]
        alice = await store.get_chat(USER_JID)
        assert alice.last_message == "later"
        assert alice.is_group is False

    @pytest.mark.asyncio
    async def test_older_message_does_not_rewind_chat(self, store):
        newer = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)
        older = datetime(2026, 5, 4, 14, 0, tzinfo=timezone(timedelta(hours=5)))
        await store.upsert_chat(ChatSummary(USER_JID, "Alice", "latest", newer))
        await store.upsert_chat(ChatSummary(USER_JID, "Alice", "stale", older))

        alice = await store.get_chat(USER_JID)
        assert alice.last_message == "latest"
        assert alice.last_message_time == newer

    @pytest.mark.asyncio
    async def test_not_connected(self, tmp_path):
        from voxreply.memory.store import MessageStore

        s = MessageStore(tmp_path / "x.db")
        with pytest.raises(RuntimeError):
            await s.get_message("m1")
