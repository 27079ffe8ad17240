"""Tests for gateway record parsing."""

from __future__ import annotations

from relay_tui.chat_types import (
    ChatPresence,
    ChatSummary,
    Message,
    MessagePreview,
    PresenceEntry,
    PresenceStatus,
    SessionInfo,
    serialized_id,
)


class TestSerializedId:
    """Tests for id normalization."""

    def test_plain_and_nested_ids(self):
        """Both id encodings resolve to the same string."""
        assert serialized_id("1@c.us") == "1@c.us"
        assert serialized_id({"_serialized": "1@c.us", "user": "1"}) == "1@c.us"
        assert serialized_id(None) == ""


class TestSessionInfo:
    """Tests for SessionInfo.from_payload."""

    def test_with_me(self):
        """The linked account id is read from me.id."""
        info = SessionInfo.from_payload(
            {"name": "default", "status": "WORKING", "me": {"id": "555@c.us"}}
        )
        assert info == SessionInfo(name="default", status="WORKING", me_id="555@c.us")

    def test_without_me(self):
        """Sessions that are not logged in have no me_id."""
        info = SessionInfo.from_payload({"name": "new", "status": "SCAN_QR_CODE", "me": None})
        assert info.me_id is None


class TestChatSummary:
    """Tests for ChatSummary.from_payload."""

    def test_overview_payload(self):
        """Overview entries carry name, preview and counters."""
        chat = ChatSummary.from_payload(
            {
                "id": "111@c.us",
                "name": "Alice",
                "lastMessage": {
                    "id": {"_serialized": "m1"},
                    "body": "hi",
                    "timestamp": 1700000000,
                    "fromMe": True,
                    "ack": 3,
                },
                "_chat": {"unreadCount": 2, "pinned": True},
            }
        )
        assert chat.id == "111@c.us"
        assert chat.display_name == "Alice"
        assert chat.unread_count == 2
        assert chat.pinned is True
        assert chat.last_message == MessagePreview(
            id="m1", body="hi", timestamp=1700000000, from_me=True, ack=3
        )

    def test_display_name_falls_back_to_number(self):
        """Unnamed chats show the id without its domain."""
        assert ChatSummary(id="4477@c.us").display_name == "4477"

    def test_group_detection(self):
        """Group ids end in g.us."""
        assert ChatSummary(id="1-2@g.us").is_group
        assert not ChatSummary(id="1@c.us").is_group

    def test_media_preview_text(self):
        """Media-only previews render a placeholder."""
        assert MessagePreview(has_media=True).text == "[Media]"
        assert MessagePreview().text == ""


class TestMessage:
    """Tests for Message.from_payload."""

    def test_incoming_chat_id_from_sender(self):
        """Incoming messages belong to the chat in "from"."""
        message = Message.from_payload(
            {"id": "m1", "from": "111@c.us", "to": "555@c.us", "body": "yo", "fromMe": False}
        )
        assert message.chat_id == "111@c.us"
        assert message.sender_id == "111@c.us"

    def test_outgoing_chat_id_from_recipient(self):
        """Outgoing messages belong to the chat in "to"."""
        message = Message.from_payload(
            {"id": "m2", "from": "555@c.us", "to": "111@c.us", "fromMe": True}
        )
        assert message.chat_id == "111@c.us"

    def test_group_participant_is_sender(self):
        """Group messages name the participant as sender."""
        message = Message.from_payload(
            {"id": "m3", "from": "1-2@g.us", "participant": "333@c.us", "body": "x"}
        )
        assert message.chat_id == "1-2@g.us"
        assert message.sender_id == "333@c.us"

    def test_explicit_chat_id(self):
        """History pages pass the chat id explicitly."""
        message = Message.from_payload({"id": "m4", "from": "x@c.us"}, chat_id="chat@c.us")
        assert message.chat_id == "chat@c.us"

    def test_preview(self):
        """preview() copies the list-relevant fields."""
        message = Message(id="m5", chat_id="c", body="hey", timestamp=10, ack=2)
        assert message.preview() == MessagePreview(id="m5", body="hey", timestamp=10, ack=2)


class TestPresence:
    """Tests for presence records."""

    def test_unknown_status_is_offline(self):
        """Unrecognized presence strings degrade to OFFLINE."""
        assert PresenceStatus.parse("dancing") is PresenceStatus.OFFLINE
        assert PresenceStatus.parse("TYPING") is PresenceStatus.TYPING

    def test_composing(self):
        """Typing and recording count as composing."""
        assert PresenceStatus.TYPING.is_composing
        assert PresenceStatus.RECORDING.is_composing
        assert not PresenceStatus.PAUSED.is_composing

    def test_from_payload(self):
        """Presence payloads list participants."""
        presence = ChatPresence.from_payload(
            {
                "id": "111@c.us",
                "presences": [
                    {"participant": "111@c.us", "lastKnownPresence": "typing", "lastSeen": None}
                ],
            }
        )
        assert presence.chat_id == "111@c.us"
        assert presence.composing_participant == "111@c.us"

    def test_merge_replaces_per_participant(self):
        """Updates replace only the participants they mention."""
        base = ChatPresence(
            chat_id="g@g.us",
            entries=(
                PresenceEntry("a", PresenceStatus.TYPING),
                PresenceEntry("b", PresenceStatus.ONLINE),
            ),
        )
        update = ChatPresence(chat_id="g@g.us", entries=(PresenceEntry("a", PresenceStatus.PAUSED),))

        merged = base.merged(update)
        statuses = {entry.participant: entry.status for entry in merged.entries}
        assert statuses == {"a": PresenceStatus.PAUSED, "b": PresenceStatus.ONLINE}
        assert merged.composing_participant is None
