"""
Tests for MessageStore against an in-memory medium.

Tests cover:
- Creating and listing messages
- Case-insensitive recipient lookup
- Like idempotence per liked-set
- Degrading to empty on missing or corrupt blobs
- Running without a storage medium
"""

import json
import time

import pytest

from app.schemas import MessageDraft
from app.storage import (
    InMemoryMedium,
    MessageStore,
    MESSAGES_KEY,
    LIKED_MESSAGES_KEY,
    LIKED,
    ALREADY_LIKED,
    NOT_FOUND,
)


def make_draft(recipient: str = "Sam", **overrides) -> MessageDraft:
    fields = {
        "recipientName": recipient,
        "message": "hi",
        "songId": "abc",
        "songName": "Song",
        "artistName": "Artist",
        "albumImage": "http://x/y.png",
    }
    fields.update(overrides)
    return MessageDraft.model_validate(fields)


class TestCreate:
    """Test creating messages."""

    def test_create_then_list_all(self, store):
        before = int(time.time() * 1000)
        message = store.create(make_draft())

        messages = store.list_all()
        assert messages == [message]
        assert message.id
        assert message.created_at >= before
        assert message.likes == 0

    def test_create_copies_draft_fields(self, store):
        message = store.create(make_draft(recipient="Alice", message="hello there"))

        assert message.recipient_name == "Alice"
        assert message.message == "hello there"
        assert message.song_id == "abc"
        assert message.song_name == "Song"
        assert message.artist_name == "Artist"
        assert message.album_image == "http://x/y.png"

    def test_ids_are_unique(self, store):
        ids = {store.create(make_draft()).id for _ in range(50)}
        assert len(ids) == 50

    def test_id_is_short_base36(self, store):
        message = store.create(make_draft())
        assert len(message.id) == 7
        assert message.id.isalnum() and message.id == message.id.lower()

    def test_taken_id_is_regenerated(self, medium, monkeypatch):
        store = MessageStore(medium)
        ids = iter(["dup0001", "dup0001", "fresh01"])
        monkeypatch.setattr("app.storage.generate_message_id", lambda: next(ids))

        first = store.create(make_draft())
        second = store.create(make_draft())

        assert first.id == "dup0001"
        assert second.id == "fresh01"

    def test_insertion_order_preserved(self, store):
        created = [store.create(make_draft(recipient=name)) for name in ("a", "b", "c")]
        assert [m.id for m in store.list_all()] == [m.id for m in created]

    def test_empty_fields_accepted(self, store):
        message = store.create(make_draft(recipient="", albumImage="not a url"))
        assert message.recipient_name == ""
        assert message.album_image == "not a url"

    def test_stored_with_camel_case_keys(self, medium, store):
        store.create(make_draft())

        stored = json.loads(medium.get_item(MESSAGES_KEY))
        assert set(stored[0]) == {
            "id", "recipientName", "message", "songId", "songName",
            "artistName", "albumImage", "createdAt", "likes",
        }


class TestListByRecipient:
    """Test recipient lookup."""

    def test_case_insensitive(self, store):
        message = store.create(make_draft(recipient="alice"))
        store.create(make_draft(recipient="bob"))

        assert store.list_by_recipient("Alice") == store.list_by_recipient("ALICE") == [message]

    def test_no_partial_match(self, store):
        store.create(make_draft(recipient="alice"))
        assert store.list_by_recipient("ali") == []

    def test_unknown_recipient(self, store):
        assert store.list_by_recipient("nobody") == []


class TestLike:
    """Test like idempotence."""

    def test_like_increments_once(self, store):
        message = store.create(make_draft())

        assert store.like(message.id) == LIKED
        assert store.has_liked(message.id) is True
        assert store.like(message.id) == ALREADY_LIKED
        assert store.has_liked(message.id) is True

        assert store.get(message.id).likes == 1

    def test_like_nonexistent_is_noop(self, medium, store):
        store.create(make_draft())
        snapshot = medium.get_item(MESSAGES_KEY)

        assert store.like("nonexistent") == NOT_FOUND
        assert medium.get_item(MESSAGES_KEY) == snapshot
        assert store.has_liked("nonexistent") is False

    def test_has_liked_false_before_like(self, store):
        message = store.create(make_draft())
        assert store.has_liked(message.id) is False

    def test_liked_sets_are_per_client(self, medium):
        message = MessageStore(medium).create(make_draft())
        first = MessageStore(medium, client_id="browser-a")
        second = MessageStore(medium, client_id="browser-b")

        first.like(message.id)
        first.like(message.id)
        second.like(message.id)

        assert first.get(message.id).likes == 2
        assert first.has_liked(message.id)
        assert second.has_liked(message.id)
        assert not MessageStore(medium).has_liked(message.id)
        assert medium.get_item(f"{LIKED_MESSAGES_KEY}:browser-a") == json.dumps([message.id])

    def test_like_only_touches_target(self, store):
        target = store.create(make_draft(recipient="a"))
        other = store.create(make_draft(recipient="b"))

        store.like(target.id)

        assert store.get(other.id).likes == 0


class TestDegradedStorage:
    """Test reads from missing or corrupt storage."""

    def test_empty_store(self, store):
        assert store.list_all() == []

    def test_corrupt_messages_blob(self):
        store = MessageStore(InMemoryMedium({MESSAGES_KEY: "{not json"}))
        assert store.list_all() == []

    @pytest.mark.parametrize("blob", ['{"id": "x"}', '"text"', "42", "null"])
    def test_non_list_blob(self, blob):
        store = MessageStore(InMemoryMedium({MESSAGES_KEY: blob}))
        assert store.list_all() == []

    def test_corrupt_liked_set(self, store, medium):
        message = store.create(make_draft())
        medium.set_item(LIKED_MESSAGES_KEY, "[oops")

        assert store.has_liked(message.id) is False
        assert store.like(message.id) == LIKED
        assert store.has_liked(message.id) is True

    def test_create_over_corrupt_blob_starts_fresh(self):
        medium = InMemoryMedium({MESSAGES_KEY: "garbage"})
        store = MessageStore(medium)

        message = store.create(make_draft())

        assert store.list_all() == [message]

    def test_malformed_entry_skipped_but_kept(self, medium):
        good = {
            "id": "good123", "recipientName": "Sam", "message": "hi",
            "songId": "abc", "songName": "Song", "artistName": "Artist",
            "albumImage": "http://x/y.png", "createdAt": 1, "likes": 0,
        }
        medium.set_item(MESSAGES_KEY, json.dumps([{"id": "broken"}, good]))
        store = MessageStore(medium)

        assert [m.id for m in store.list_all()] == ["good123"]

        store.like("good123")
        stored = json.loads(medium.get_item(MESSAGES_KEY))
        assert stored[0] == {"id": "broken"}
        assert stored[1]["likes"] == 1


    def test_like_entry_with_non_numeric_likes(self, medium):
        entry = {
            "id": "x1", "recipientName": "Sam", "message": "hi",
            "songId": "abc", "songName": "Song", "artistName": "Artist",
            "albumImage": "", "createdAt": 1, "likes": "many",
        }
        blob = json.dumps([entry])
        medium.set_item(MESSAGES_KEY, blob)
        store = MessageStore(medium)

        assert store.like("x1") == NOT_FOUND
        assert medium.get_item(MESSAGES_KEY) == blob
        assert store.has_liked("x1") is False

    def test_like_unparseable_entry(self, medium):
        blob = json.dumps([{"id": "broken"}])
        medium.set_item(MESSAGES_KEY, blob)
        store = MessageStore(medium)

        assert store.like("broken") == NOT_FOUND
        assert medium.get_item(MESSAGES_KEY) == blob
        assert medium.get_item(LIKED_MESSAGES_KEY) is None


class TestNoMedium:
    """Test a store with no storage available."""

    def test_reads_are_empty(self):
        store = MessageStore(None)
        assert store.list_all() == []
        assert store.list_by_recipient("sam") == []
        assert store.has_liked("anything") is False

    def test_writes_are_dropped(self):
        store = MessageStore(None)
        message = store.create(make_draft())

        assert message.id
        assert store.list_all() == []
        assert store.like(message.id) == NOT_FOUND


def test_end_to_end(store, sam_draft):
    """Create, like twice, then look up by lowercase recipient."""
    message = store.create(MessageDraft.model_validate(sam_draft))
    assert message.id
    assert message.likes == 0

    store.like(message.id)
    store.like(message.id)

    results = store.list_by_recipient("sam")
    assert len(results) == 1
    assert results[0].id == message.id
    assert results[0].likes == 1
