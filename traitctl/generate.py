"""
Trait generation from a natural-language description via an LLM command.

The LLM is any CLI that reads a prompt on stdin and prints text on stdout
(e.g. ``claude -p``, ``ollama run mistral``).  Its answer is untrusted:
the extracted code goes through the same compile check as hand-written
trait code, and a compile error is reported, never raised.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from traitctl.expr import FUNCTION_NAMES
from traitctl.sandbox import check_code

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n([\s\S]*?)```")

SYSTEM_PROMPT = """\
You write safe, concise boolean trait expressions for a small Python-like
expression language.
- Output ONLY the expression, as a single `lambda item: ...` line.
- No backticks, code fences, comments, imports or explanations."""

_ITEM_SHAPE = """\
The `item` value is a plain nested mapping (author identity is not available):
item = {
  "id": str | None,
  "text": str | None,
  "timestamp": str | None,          # ISO-8601
  "reactions": {"likes_count": int | None, "recasts_count": int | None} | None,
  "replies": {"count": int | None} | None,
  "embeds": [                       # or None
      {"url": str}
    | {"quoted_item_hash": str}
    | {"quoted_item": {"text": str | None, "timestamp": str | None,
                       "embeds": [{"url": str} | {"quoted_item_hash": str}]}}
  ] | None,
  "parent_hash": str | None,
  "parent_author_id": int | None,
}"""

_LANGUAGE_RULES = """\
Language rules:
- Python expression syntax: and/or/not, comparisons, + - * / // %, x if c else y,
  list literals, `[... for e in xs if ...]` with a single `for`.
- Field access with dots or brackets: item.text, item.reactions.likes_count.
  Access is null-safe: a field of None is None, iterating None yields nothing,
  `"x" in None` is False, len(None) is 0.
- Use coalesce(value, default) to treat a missing count as 0.
- No keyword arguments, no `**`, no names starting with `_`, no imports.
- Time-based logic uses America/Los_Angeles (DST-aware) through
  local_hour(ts) (0-23), local_minute(ts), local_weekday(ts) (Monday=0);
  each returns -1 when the timestamp is missing or invalid.
- Embeds: is_link(e), is_quote(e) (inline quoted post), is_quote_ref(e) (by hash).
  Only inspect top-level item.embeds for images unless the description asks otherwise.
- Reply post: item.parent_hash is not None and item.parent_author_id is not None."""

_EXAMPLES = """\
Examples:
- contains_url: lambda item: has_url(item.text)
- has_image: lambda item: any(is_link(e) and is_image_url(e.url) for e in item.embeds)
- is_quote: lambda item: any(is_quote(e) for e in item.embeds)
- high_engagement: lambda item: coalesce(item.reactions.likes_count, 0) + coalesce(item.reactions.recasts_count, 0) >= 100
- morning_post: lambda item: 0 <= local_hour(item.timestamp) < 12
- says_gm: lambda item: matches(r"\\bgm\\b", item.text, "i")"""


@dataclass
class GeneratedTrait:
    """Result of one generation. ``error`` is the compile message, if any."""

    name: str
    description: str
    code: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_trait_prompt(name: str, description: str) -> str:
    """Full prompt asking for one trait expression."""
    parts = [
        SYSTEM_PROMPT,
        "",
        "Task: write an expression that is true when a post matches the trait.",
        "",
        f"Trait name: {name}",
        f"Trait description: {description}",
        "",
        _ITEM_SHAPE,
        "",
        _LANGUAGE_RULES,
        "",
        "Available functions: " + ", ".join(FUNCTION_NAMES),
        "Text methods: lower, upper, strip, startswith, endswith, split, count, find, ...",
        "",
        _EXAMPLES,
    ]
    return "\n".join(parts)


def extract_code(response: str) -> str:
    """Pull the trait expression out of an LLM answer.

    Takes the first fenced block if any, then drops leading prose up to
    the first ``lambda``.
    """
    fenced = _FENCE_RE.search(response)
    code = (fenced.group(1) if fenced else response).strip()
    if not code.startswith("lambda"):
        idx = code.find("lambda")
        if idx >= 0:
            code = code[idx:].strip()
    return code


def invoke_llm(cmd: str, prompt: str, *, timeout: int = 120) -> str:
    """Invoke an LLM command as a subprocess, piping the prompt to stdin.

    Returns:
        LLM output (stdout).

    Raises:
        RuntimeError: If the LLM command is missing, fails or times out.
    """
    args = shlex.split(cmd)
    if not args:
        raise RuntimeError("LLM command is empty")
    try:
        result = subprocess.run(
            args,
            input=prompt,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise RuntimeError(f"LLM command timed out after {timeout}s: {cmd}")
    except FileNotFoundError:
        raise RuntimeError(f"LLM command not found: {args[0]!r}")

    if result.returncode != 0:
        stderr_preview = (result.stderr or "").strip()[:200]
        raise RuntimeError(
            f"LLM command failed (exit {result.returncode}): {stderr_preview}"
        )

    return result.stdout


def generate_trait(
    name: str,
    description: str,
    llm_cmd: str,
    *,
    timeout: int = 120,
) -> GeneratedTrait:
    """Ask the LLM for trait code and compile-check it.

    Raises:
        ValueError: If name or description is empty.
        RuntimeError: If the LLM command fails.
    """
    if not name.strip() or not description.strip():
        raise ValueError("name and description are required")
    raw = invoke_llm(llm_cmd, build_trait_prompt(name, description), timeout=timeout)
    code = extract_code(raw)
    error = check_code(code)
    if error:
        logger.info("Generated code for %r does not compile: %s", name, error)
    return GeneratedTrait(name=name, description=description, code=code, error=error)
