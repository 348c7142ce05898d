"""
Tests for traitctl.sandbox — predicate compilation, memoization, fault isolation.
"""

import pytest

from traitctl.sandbox import (
    cache_size,
    check_code,
    clear_predicate_cache,
    compile_predicate,
    execute_predicate,
)
from traitctl.sanitize import sanitize
from traitctl.types import ContentItem


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_predicate_cache()
    yield
    clear_predicate_cache()


def make_item(**d):
    base = {"id": "0x1", "text": "gm world", "timestamp": "2024-01-15T19:11:00Z"}
    base.update(d)
    return ContentItem.from_dict(base)


class TestCompilePredicate:
    def test_matching_predicate(self):
        pred = compile_predicate("lambda item: 'gm' in item.text")
        assert pred(sanitize(make_item())) is True
        assert pred(sanitize(make_item(text="hello"))) is False

    def test_result_is_coerced_to_bool(self):
        pred = compile_predicate("lambda item: item.text")
        assert pred(sanitize(make_item())) is True
        assert pred(sanitize(make_item(text=""))) is False

    def test_memoized_by_source(self):
        a = compile_predicate("lambda item: True")
        b = compile_predicate("lambda item: True")
        assert a is b
        assert cache_size() == 1

    def test_distinct_sources_cached_separately(self):
        compile_predicate("lambda item: True")
        compile_predicate("lambda item: False")
        assert cache_size() == 2

    def test_clear_cache(self):
        compile_predicate("lambda item: True")
        clear_predicate_cache()
        assert cache_size() == 0


class TestFaults:
    def test_compile_fault_matches_nothing(self):
        pred = compile_predicate("lambda item: (")
        assert pred(sanitize(make_item())) is False

    def test_compile_fault_is_cached(self):
        a = compile_predicate("import os")
        b = compile_predicate("import os")
        assert a is b

    def test_forbidden_code_matches_nothing(self):
        pred = compile_predicate("__import__('os').system('true')")
        assert pred(sanitize(make_item())) is False

    def test_eval_fault_is_false_for_that_item(self):
        pred = compile_predicate("lambda item: item.embeds[1].url == 'x'")
        two = make_item(embeds=[{"url": "a"}, {"url": "x"}])
        one = make_item(embeds=[{"url": "x"}])  # IndexError
        assert pred(sanitize(two)) is True
        assert pred(sanitize(one)) is False

    def test_fault_on_every_input(self):
        pred = compile_predicate("lambda item: item.text + 1")
        for text in ("a", "b", "c"):
            assert pred(sanitize(make_item(text=text))) is False

    def test_non_text_code_matches_nothing(self):
        for code in (["a"], None, 3, {"x": 1}):
            assert compile_predicate(code)(sanitize(make_item())) is False
        assert cache_size() == 0

    def test_runaway_evaluation_is_false(self):
        pred = compile_predicate(
            "lambda item: len([[c for c in 'a' * 20000] for d in 'a' * 20000]) > 0"
        )
        assert pred(sanitize(make_item())) is False


class TestCheckCode:
    def test_ok(self):
        assert check_code("lambda item: has_url(item.text)") is None

    def test_error_message(self):
        msg = check_code("lambda item: open('x')")
        assert msg is not None
        assert "open" in msg

    def test_non_text_code(self):
        assert check_code(["lambda item: True"]) == "Trait code must be a string"


class TestExecutePredicate:
    def test_sanitizes_before_evaluation(self):
        item = ContentItem.from_dict({
            "id": "0x1", "text": "hi",
            "author": {"fid": 42, "username": "alice"},
        })
        assert execute_predicate("lambda item: item.author is None", item) is True
        assert execute_predicate("lambda item: item.author.username == 'alice'", item) is False

    def test_broken_code_never_raises(self):
        assert execute_predicate("lambda item:", make_item()) is False
