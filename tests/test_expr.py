"""
Tests for traitctl.expr — parsing, whitelist validation, interpretation.

Invariants tested:
- E1: Only whitelisted syntax, names and functions compile
- E2: Access is null-safe (missing fields, None containers, len(None))
- E3: Runtime faults surface as EvaluationError, never as raw exceptions
- E4: Size limits hold at compile time and at evaluation time
"""

import pytest

from traitctl.expr import (
    FUNCTION_NAMES,
    MAX_SOURCE_CHARS,
    EvaluationError,
    ExpressionError,
    compile_expression,
)


def view(**overrides):
    """A sanitized item view with every field present."""
    v = {
        "id": "0xabc",
        "text": "gm frens",
        "timestamp": "2024-01-15T19:11:00Z",
        "reactions": {"likes_count": 12, "recasts_count": 3},
        "replies": {"count": 2},
        "embeds": None,
        "parent_hash": None,
        "parent_author_id": None,
    }
    v.update(overrides)
    return v


def ev(source, **overrides):
    return compile_expression(source).evaluate(view(**overrides))


# ---------------------------------------------------------------------------
# Accepted forms
# ---------------------------------------------------------------------------


class TestForms:
    def test_lambda_form(self):
        expr = compile_expression("lambda item: item.text == 'gm frens'")
        assert expr.param == "item"
        assert expr.evaluate(view()) is True

    def test_bare_form_binds_item(self):
        assert ev("item.replies.count >= 2") is True

    def test_custom_parameter_name(self):
        expr = compile_expression("lambda c: c.reactions.likes_count > 10")
        assert expr.param == "c"
        assert expr.evaluate(view()) is True

    def test_surrounding_whitespace_ignored(self):
        assert ev("   lambda item: True  \n") is True

    def test_subscript_access(self):
        assert ev("item['reactions']['likes_count'] == 12") is True

    def test_conditional_expression(self):
        assert ev("'many' if item.reactions.likes_count > 10 else 'few'") == "many"

    def test_boolean_operators_short_circuit(self):
        # Second operand would fault on a list index, never reached
        assert ev("item.text is not None and item.embeds[3]", text=None, embeds=[]) is False
        assert ev("item.text is None or item.embeds[3]", text=None, embeds=[]) is True

    def test_chained_comparison(self):
        assert ev("0 < item.replies.count < 5") is True

    def test_arithmetic(self):
        assert ev("(item.reactions.likes_count + 3) // 5 * 2 - 1") == 5

    def test_collection_literals(self):
        assert ev("item.replies.count in [1, 2, 3]") is True
        assert ev("item.replies.count in (7, 8)") is False
        assert ev("'gm' in {'gm', 'gn'}") is True


# ---------------------------------------------------------------------------
# Null safety
# ---------------------------------------------------------------------------


class TestNullSafety:
    def test_field_of_none(self):
        assert ev("item.reactions.likes_count", reactions=None) is None

    def test_missing_key_is_none(self):
        assert ev("item.author") is None
        assert ev("item.author.username") is None

    def test_len_none_is_zero(self):
        assert ev("len(item.embeds)", embeds=None) == 0

    def test_in_none_is_false(self):
        assert ev("'gm' in item.text", text=None) is False
        assert ev("'gm' not in item.text", text=None) is True

    def test_iterating_none_yields_nothing(self):
        assert ev("any(is_link(e) for e in item.embeds)", embeds=None) is False
        assert ev("[e for e in item.embeds]", embeds=None) == []

    def test_method_on_none_is_none(self):
        assert ev("item.text.lower()", text=None) is None

    def test_subscript_of_none(self):
        assert ev("item.embeds[0]", embeds=None) is None

    def test_coalesce(self):
        assert ev("coalesce(item.reactions.likes_count, 0)", reactions=None) == 0
        assert ev("coalesce(item.reactions.likes_count, 0)") == 12


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_matches_with_flags(self):
        assert ev(r"matches(r'\bGM\b', item.text, 'i')") is True
        assert ev(r"matches(r'\bGM\b', item.text)") is False

    def test_count_matches(self):
        assert ev(r"count_matches(r'@\w+', item.text)", text="hi @a and @b") == 2

    def test_words(self):
        assert ev("len(words(item.text))", text="one two  three") == 3

    def test_emojis(self):
        assert ev("emojis(item.text)", text="fire \U0001f525 and \U0001f600") == [
            "\U0001f525", "\U0001f600",
        ]
        assert ev("has_emoji(item.text)", text="plain") is False

    def test_has_url(self):
        assert ev("has_url(item.text)", text="see https://example.com") is True
        assert ev("has_url(item.text)", text="no link") is False

    def test_local_clock_uses_los_angeles(self):
        # 19:11 UTC in January is 11:11 PST
        assert ev("local_hour(item.timestamp)") == 11
        assert ev("local_minute(item.timestamp)") == 11
        assert ev("local_weekday(item.timestamp)") == 0

    def test_local_clock_invalid_timestamp(self):
        assert ev("local_hour(item.timestamp)", timestamp="yesterday") == -1
        assert ev("local_minute(item.timestamp)", timestamp=None) == -1

    def test_embed_discriminators(self):
        embeds = [
            {"url": "https://i.imgur.com/x.png"},
            {"quoted_item_hash": "0x1"},
            {"quoted_item": {"text": "hello", "timestamp": None, "embeds": []}},
        ]
        assert ev("[is_link(e) for e in item.embeds]", embeds=embeds) == [True, False, False]
        assert ev("[is_quote_ref(e) for e in item.embeds]", embeds=embeds) == [False, True, False]
        assert ev("[is_quote(e) for e in item.embeds]", embeds=embeds) == [False, False, True]
        assert ev(
            "any(is_link(e) and is_image_url(e.url) for e in item.embeds)", embeds=embeds,
        ) is True

    def test_comprehension_with_condition(self):
        embeds = [{"url": "https://a.com"}, {"quoted_item_hash": "0x1"}]
        assert ev("[e.url for e in item.embeds if is_link(e)]", embeds=embeds) == [
            "https://a.com",
        ]

    def test_text_methods(self):
        assert ev("item.text.upper().startswith('GM')") is True
        assert ev("item.text.split()[1]") == "frens"

    def test_function_names_exported(self):
        assert "matches" in FUNCTION_NAMES
        assert "local_hour" in FUNCTION_NAMES
        assert list(FUNCTION_NAMES) == sorted(FUNCTION_NAMES)


# ---------------------------------------------------------------------------
# Compile-time rejection
# ---------------------------------------------------------------------------


class TestRejected:
    @pytest.mark.parametrize("source", [
        "__import__('os').system('true')",
        "open('/etc/passwd')",
        "eval('1')",
        "item.__class__",
        "item.text.__len__()",
        "_secret",
        "lambda item: item.text.replace('a', 'b')",
        "lambda item: 2 ** 10",
        "lambda item: sorted(item.embeds, key=len)",
        "lambda item: [x for x in item.embeds for y in item.embeds]",
        "lambda item: (lambda y: y)(1)",
        "lambda item: {k: 1 for k in item.embeds}",
        "lambda item: f'{item.text}'",
        "lambda item: len",
        "lambda item: unknown_name",
        "lambda item, other: True",
        "lambda *items: True",
        "lambda item: (x := 1)",
        "lambda item: b'bytes'",
        "lambda item: item.embeds[0]()",
    ])
    def test_rejected_sources(self, source):
        with pytest.raises(ExpressionError):
            compile_expression(source)

    def test_syntax_error(self):
        with pytest.raises(ExpressionError, match="Syntax error"):
            compile_expression("lambda item: (")

    def test_statement_is_not_an_expression(self):
        with pytest.raises(ExpressionError):
            compile_expression("import os")

    def test_empty_source(self):
        with pytest.raises(ExpressionError, match="empty"):
            compile_expression("   ")

    def test_non_text_source(self):
        with pytest.raises(ExpressionError):
            compile_expression(None)

    def test_too_long(self):
        with pytest.raises(ExpressionError, match="longer than"):
            compile_expression("1 or " * (MAX_SOURCE_CHARS // 5 + 1) + "1")

    def test_too_many_nodes(self):
        source = " + ".join(["1"] * 400)
        assert len(source) < MAX_SOURCE_CHARS
        with pytest.raises(ExpressionError, match="too large"):
            compile_expression(source)


# ---------------------------------------------------------------------------
# Evaluation faults
# ---------------------------------------------------------------------------


class TestEvaluationFaults:
    def test_type_error(self):
        with pytest.raises(EvaluationError, match="TypeError"):
            ev("item.text + 1")

    def test_bad_regex(self):
        with pytest.raises(EvaluationError):
            ev("matches('(', item.text)")

    def test_unknown_regex_flag(self):
        with pytest.raises(EvaluationError, match="flag"):
            ev("matches('gm', item.text, 'q')")

    def test_index_out_of_range(self):
        with pytest.raises(EvaluationError):
            ev("item.embeds[5]", embeds=[{"url": "https://a.com"}])

    def test_division_by_zero(self):
        with pytest.raises(EvaluationError):
            ev("item.replies.count / 0")

    def test_string_formatting_blocked(self):
        with pytest.raises(EvaluationError, match="formatting"):
            ev("'%s' % item.text")

    def test_sequence_limit(self):
        with pytest.raises(EvaluationError, match="Sequence longer"):
            ev("'a' * 200000")

    def test_step_budget(self):
        expr = compile_expression(
            "lambda item: len([[c for c in 'a' * 20000] for d in 'a' * 20000]) > 0"
        )
        with pytest.raises(EvaluationError, match="steps"):
            expr.evaluate(view())

    def test_step_budget_is_per_evaluation(self):
        expr = compile_expression("len([c for c in 'a' * 50000 if c == 'a']) == 50000")
        assert expr.evaluate(view()) is True
        assert expr.evaluate(view()) is True

    def test_method_on_non_text(self):
        with pytest.raises(EvaluationError, match="only available on text"):
            ev("item.embeds.count(1)", embeds=[1, 2])

    def test_field_of_number(self):
        with pytest.raises(EvaluationError):
            ev("item.replies.count.value")
