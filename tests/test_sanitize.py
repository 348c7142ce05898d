"""
Tests for traitctl.sanitize — the allow-listed view seen by trait code.
"""

from traitctl.sanitize import sanitize
from traitctl.types import ContentItem

VIEW_KEYS = {
    "id", "text", "timestamp", "reactions", "replies",
    "embeds", "parent_hash", "parent_author_id",
}


def full_item():
    return ContentItem.from_dict({
        "id": "0xabc",
        "text": "look at this",
        "timestamp": "2024-01-15T19:11:00Z",
        "reactions": {"likes_count": 5, "recasts_count": 1},
        "replies": {"count": 2},
        "embeds": [
            {"url": "https://example.com/a.png"},
            {"quotedItemHash": "0xdef"},
            {"quotedItem": {
                "text": "original",
                "timestamp": "2024-01-14T10:00:00Z",
                "embeds": [
                    {"url": "https://example.com"},
                    {"quotedItem": {"hash": "0x999", "text": "deeper"}},
                ],
            }},
        ],
        "parentHash": "0xparent",
        "parentAuthorId": 7,
        "author": {"fid": 42, "username": "alice"},
    })


class TestProjection:
    def test_exact_keys(self):
        assert set(sanitize(full_item())) == VIEW_KEYS

    def test_author_not_exposed(self):
        v = sanitize(full_item())
        assert "author" not in v
        assert "alice" not in repr(v)
        assert 42 not in v.values()

    def test_counts(self):
        v = sanitize(full_item())
        assert v["reactions"] == {"likes_count": 5, "recasts_count": 1}
        assert v["replies"] == {"count": 2}

    def test_parent_fields(self):
        v = sanitize(full_item())
        assert v["parent_hash"] == "0xparent"
        assert v["parent_author_id"] == 7

    def test_missing_optionals_are_none(self):
        v = sanitize(ContentItem())
        assert set(v) == VIEW_KEYS
        assert v["reactions"] is None
        assert v["replies"] is None
        assert v["embeds"] is None
        assert v["text"] is None


class TestEmbeds:
    def test_variants(self):
        embeds = sanitize(full_item())["embeds"]
        assert embeds[0] == {"url": "https://example.com/a.png"}
        assert embeds[1] == {"quoted_item_hash": "0xdef"}
        quoted = embeds[2]["quoted_item"]
        assert quoted["text"] == "original"
        assert quoted["timestamp"] == "2024-01-14T10:00:00Z"

    def test_nested_quote_one_level_deep(self):
        quoted = sanitize(full_item())["embeds"][2]["quoted_item"]
        assert quoted["embeds"] == [
            {"url": "https://example.com"},
            {"quoted_item_hash": "0x999"},
        ]

    def test_empty_embed_list_is_none(self):
        assert sanitize(ContentItem(text="x", embeds=()))["embeds"] is None


class TestIsolation:
    def test_fresh_view_per_call(self):
        item = full_item()
        a = sanitize(item)
        b = sanitize(item)
        assert a == b
        assert a is not b
        assert a["reactions"] is not b["reactions"]

    def test_mutating_view_does_not_touch_item(self):
        item = full_item()
        v = sanitize(item)
        v["text"] = "changed"
        v["reactions"]["likes_count"] = 10_000
        v["embeds"].clear()
        assert item.text == "look at this"
        assert item.likes == 5
        assert len(item.embeds) == 3
