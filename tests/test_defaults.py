"""
Tests for traitctl.defaults — the seeded trait pack compiles and behaves.
"""

import pytest

from traitctl.defaults import default_traits
from traitctl.sandbox import check_code, execute_predicate
from traitctl.types import ContentItem

PACK = default_traits()


def hits(name, **d):
    return execute_predicate(PACK[name].code, ContentItem.from_dict(d))


class TestPack:
    def test_size(self):
        assert len(PACK) == 22

    @pytest.mark.parametrize("name", list(PACK))
    def test_compiles(self, name):
        assert check_code(PACK[name].code) is None

    def test_all_enabled_with_shared_timestamp(self):
        assert all(t.enabled for t in PACK.values())
        assert len({t.created_at for t in PACK.values()}) == 1

    def test_fresh_registry_each_call(self):
        a = default_traits()
        a["Welcome"].enabled = False
        assert default_traits()["Welcome"].enabled is True


class TestBehaviour:
    def test_welcome(self):
        assert hits("Welcome", text="Welcome @bob to the channel!")
        assert not hits("Welcome", text="welcome everyone")

    def test_humorous(self):
        assert hits("Humorous", text="LOL that is great")
        assert not hits("Humorous", text="lollipop")

    def test_emoji(self):
        assert hits("Emoji", text="nice \U0001f525")
        assert not hits("Emoji", text="nice")

    def test_one_word_and_longform(self):
        assert hits("One Word", text="gm")
        assert not hits("One Word", text="gm all")
        assert hits("Longform", text=" ".join(["word"] * 100))

    def test_eleven_eleven(self):
        assert hits("11:11 club", timestamp="2024-01-15T19:11:00Z")
        assert not hits("11:11 club", timestamp="2024-01-15T19:12:00Z")

    def test_duplicate_digits(self):
        assert hits("1:11, 2:22, 3:33, 4:44, 5:55", timestamp="2024-01-15T10:22:00Z")
        assert not hits("1:11, 2:22, 3:33, 4:44, 5:55", timestamp="2024-01-15T10:23:00Z")

    def test_breakfast_club(self):
        assert hits("Breakfast club", timestamp="2024-01-15T15:00:00Z")      # 07:00
        assert hits("Breakfast club", timestamp="2024-01-15T18:30:00Z")      # 10:30
        assert not hits("Breakfast club", timestamp="2024-01-15T18:31:00Z")  # 10:31
        assert not hits("Breakfast club", timestamp=None)

    def test_midnight_and_buzzer(self):
        assert hits("Midnight", timestamp="2024-01-15T08:45:00Z")
        assert hits("Buzzer Beater", timestamp="2024-01-15T08:59:00Z")

    def test_web_surfer(self):
        assert hits("Web surfer", text="see https://example.com")
        assert hits("Web surfer", text="pic", embeds=[{"url": "https://a.com/x.png"}])
        assert not hits("Web surfer", text="no links")

    def test_engagement(self):
        assert hits("Liked", reactions={"likes_count": 100})
        assert not hits("Liked", reactions={"likes_count": 99})
        assert not hits("Liked")
        assert hits("Viral", reactions={"likes_count": 1000})
        assert hits("Reply'd guy", replies={"count": 10})
        assert hits("Thought provoking", replies={"count": 100})

    def test_quote(self):
        assert hits("Quote", embeds=[{"quotedItem": {"text": "x"}}])
        assert not hits("Quote", embeds=[{"url": "https://a.com"}])

    def test_music(self):
        assert hits("Music", text="listen https://open.spotify.com/track/1")
        assert hits("Music", embeds=[{"url": "https://music.apple.com/us/album/1"}])
        assert not hits("Music", text="spotify is nice")

    def test_missing_text_is_safe(self):
        for name in PACK:
            assert hits(name) in (True, False)
