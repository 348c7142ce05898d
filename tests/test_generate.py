"""
Tests for traitctl.generate — prompt building, code extraction, LLM subprocess.

The LLM is faked with a tiny script run by the current interpreter.
"""

import shlex
import sys

import pytest

from traitctl.generate import (
    GeneratedTrait,
    build_trait_prompt,
    extract_code,
    generate_trait,
    invoke_llm,
)


def fake_llm(tmp_path, answer, exit_code=0):
    """Write a script that drains stdin, prints ``answer`` and exits."""
    script = tmp_path / "fake_llm.py"
    script.write_text(
        "import sys\n"
        "sys.stdin.read()\n"
        f"sys.stdout.write({answer!r})\n"
        f"sys.exit({exit_code})\n",
        encoding="utf-8",
    )
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


class TestPrompt:
    def test_contains_name_and_description(self):
        prompt = build_trait_prompt("Coffee", "Mentions coffee")
        assert "Trait name: Coffee" in prompt
        assert "Trait description: Mentions coffee" in prompt

    def test_lists_helpers(self):
        prompt = build_trait_prompt("x", "y")
        for name in ("matches", "local_hour", "coalesce", "is_quote"):
            assert name in prompt

    def test_mentions_timezone(self):
        assert "America/Los_Angeles" in build_trait_prompt("x", "y")


class TestExtractCode:
    def test_plain(self):
        assert extract_code("lambda item: True\n") == "lambda item: True"

    def test_fenced(self):
        answer = "Here you go:\n```python\nlambda item: has_url(item.text)\n```\nEnjoy"
        assert extract_code(answer) == "lambda item: has_url(item.text)"

    def test_leading_prose(self):
        assert extract_code("Sure! lambda item: False") == "lambda item: False"

    def test_bare_expression_kept(self):
        assert extract_code("has_url(item.text)") == "has_url(item.text)"


class TestInvokeLLM:
    def test_stdout_returned(self, tmp_path):
        cmd = fake_llm(tmp_path, "lambda item: True")
        assert invoke_llm(cmd, "prompt", timeout=30) == "lambda item: True"

    def test_nonzero_exit(self, tmp_path):
        cmd = fake_llm(tmp_path, "", exit_code=3)
        with pytest.raises(RuntimeError, match="exit 3"):
            invoke_llm(cmd, "prompt", timeout=30)

    def test_missing_command(self):
        with pytest.raises(RuntimeError, match="not found"):
            invoke_llm("definitely-not-a-real-llm-binary", "prompt")

    def test_empty_command(self):
        with pytest.raises(RuntimeError, match="empty"):
            invoke_llm("   ", "prompt")


class TestGenerateTrait:
    def test_compiling_code(self, tmp_path):
        cmd = fake_llm(tmp_path, "```\nlambda item: 'coffee' in item.text.lower()\n```")
        result = generate_trait("Coffee", "Mentions coffee", cmd, timeout=30)
        assert isinstance(result, GeneratedTrait)
        assert result.code == "lambda item: 'coffee' in item.text.lower()"
        assert result.error is None

    def test_non_compiling_code_reported(self, tmp_path):
        cmd = fake_llm(tmp_path, "lambda item: __import__('os')")
        result = generate_trait("Evil", "Does evil", cmd, timeout=30)
        assert result.error is not None
        assert result.to_dict()["error"] == result.error

    def test_requires_name_and_description(self):
        with pytest.raises(ValueError):
            generate_trait("", "desc", "echo")
        with pytest.raises(ValueError):
            generate_trait("name", "  ", "echo")
