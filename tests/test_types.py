"""
Tests for traitctl.types — item parsing, embed union, stable keys, trait definitions.
"""

from traitctl.types import (
    ContentItem,
    EmbeddedItem,
    LinkEmbed,
    QuotedItemEmbed,
    QuotedItemRef,
    TraitDefinition,
    stable_key,
)


class TestContentItemFromDict:
    def test_camel_case_record(self):
        item = ContentItem.from_dict({
            "id": "0x1",
            "text": "hello",
            "timestamp": "2024-01-15T19:11:00Z",
            "reactions": {"likes_count": 3, "recasts_count": 1},
            "replies": {"count": 4},
            "parentHash": "0xp",
            "parentAuthorId": 9,
            "author": {"fid": 42, "username": "alice"},
        })
        assert item.id == "0x1"
        assert item.likes == 3
        assert item.reply_count == 4
        assert item.parent_hash == "0xp"
        assert item.parent_author_id == 9
        assert item.author_id == 42
        assert item.author_username == "alice"

    def test_snake_case_and_hash_fallback(self):
        item = ContentItem.from_dict({
            "hash": "0xh",
            "parent_hash": "0xp",
            "parent_author": {"fid": 5},
        })
        assert item.id == "0xh"
        assert item.parent_hash == "0xp"
        assert item.parent_author_id == 5

    def test_empty_record(self):
        item = ContentItem.from_dict({})
        assert item.id is None
        assert item.text is None
        assert item.embeds == ()
        assert item.likes == 0
        assert item.reply_count == 0

    def test_garbage_counts_become_none(self):
        item = ContentItem.from_dict({
            "reactions": {"likes_count": "lots", "recasts_count": True},
            "replies": {"count": None},
        })
        assert item.reactions.likes_count is None
        assert item.reactions.recasts_count is None
        assert item.likes == 0
        assert item.reply_count == 0

    def test_numeric_strings_are_counts(self):
        item = ContentItem.from_dict({"reactions": {"likes_count": "12"}})
        assert item.likes == 12


class TestEmbeds:
    def test_three_variants(self):
        item = ContentItem.from_dict({"embeds": [
            {"url": "https://a.com"},
            {"cast_id_hash": "0xref"},
            {"cast": {"text": "quoted", "timestamp": "2024-01-01T00:00:00Z"}},
        ]})
        link, ref, quote = item.embeds
        assert link == LinkEmbed(url="https://a.com")
        assert ref == QuotedItemRef(quoted_item_hash="0xref")
        assert isinstance(quote, QuotedItemEmbed)
        assert quote.quoted_item.text == "quoted"

    def test_unknown_shapes_dropped(self):
        item = ContentItem.from_dict({"embeds": [{"foo": 1}, "string", None, {"url": "x"}]})
        assert item.embeds == (LinkEmbed(url="x"),)

    def test_non_list_embeds(self):
        assert ContentItem.from_dict({"embeds": {"url": "x"}}).embeds == ()

    def test_nested_quote_becomes_ref(self):
        item = ContentItem.from_dict({"embeds": [{"quotedItem": {
            "text": "outer",
            "embeds": [
                {"quotedItem": {"hash": "0xinner", "text": "inner"}},
                {"quotedItem": {"text": "no hash"}},
            ],
        }}]})
        quoted = item.embeds[0].quoted_item
        assert quoted.embeds == (QuotedItemRef(quoted_item_hash="0xinner"),)

    def test_quoted_items_property(self):
        item = ContentItem.from_dict({"embeds": [
            {"url": "https://a.com"},
            {"quotedItem": {"text": "one"}},
            {"quotedItemHash": "0x2"},
            {"quotedItem": {"text": "two"}},
        ]})
        assert [q.text for q in item.quoted_items] == ["one", "two"]


class TestToDict:
    def test_round_trip(self):
        raw = {
            "id": "0x1",
            "text": "hi",
            "timestamp": "2024-01-15T19:11:00Z",
            "reactions": {"likes_count": 1, "recasts_count": 0},
            "replies": {"count": 0},
            "embeds": [
                {"url": "https://a.com"},
                {"quotedItemHash": "0x2"},
                {"quotedItem": {"text": "q", "timestamp": None, "embeds": []}},
            ],
            "parentHash": None,
            "parentAuthorId": None,
            "author": {"fid": 1, "username": "bob"},
        }
        item = ContentItem.from_dict(raw)
        assert ContentItem.from_dict(item.to_dict()) == item

    def test_author_omitted_when_unknown(self):
        assert "author" not in ContentItem(text="x").to_dict()


class TestStableKey:
    def test_id_preferred(self):
        assert stable_key(ContentItem(id="0x1", text="a", timestamp="t")) == "0x1"

    def test_timestamp_text_fallback(self):
        assert stable_key(ContentItem(text="a", timestamp="t")) == "t|a"

    def test_missing_parts(self):
        assert stable_key(ContentItem()) == "|"

    def test_collision_without_id(self):
        a = ContentItem(text="same", timestamp="t")
        b = ContentItem(text="same", timestamp="t", reactions=None, embeds=(
            QuotedItemEmbed(quoted_item=EmbeddedItem(text="x")),
        ))
        assert stable_key(a) == stable_key(b)


class TestTraitDefinition:
    def test_defaults(self):
        t = TraitDefinition(code="lambda item: True")
        assert t.enabled is True
        assert t.description == ""
        assert t.created_at

    def test_from_dict_filters_unknown_fields(self):
        t = TraitDefinition.from_dict({"code": "x", "extra": 1})
        assert t.code == "x"
        assert t.enabled is True

    def test_only_false_disables(self):
        assert TraitDefinition.from_dict({"enabled": False}).enabled is False
        assert TraitDefinition.from_dict({"enabled": None}).enabled is True
        assert TraitDefinition.from_dict({"enabled": 0}).enabled is True

    def test_string_flags_parsed(self):
        assert TraitDefinition.from_dict({"enabled": "false"}).enabled is False
        assert TraitDefinition.from_dict({"enabled": " OFF "}).enabled is False
        assert TraitDefinition.from_dict({"enabled": "0"}).enabled is False
        assert TraitDefinition.from_dict({"enabled": "true"}).enabled is True
        assert TraitDefinition.from_dict({"enabled": "yes"}).enabled is True

    def test_round_trip(self):
        t = TraitDefinition(code="c", description="d", created_at="2024-01-01", enabled=False)
        assert TraitDefinition.from_dict(t.to_dict()) == t

