"""
Stack environment helpers.

Stack variables come in as a free-form text block, one assignment per line,
written either as ``KEY: VALUE`` or ``KEY=VALUE``. Known quirk: when a line
contains both characters the ``:`` always wins, so ``URL=http://host:80`` is
split at the first colon (key ``URL=http``, value ``//host:80``). Existing
pipelines depend on this, so it is kept as is.
"""

from __future__ import annotations

from typing import Any

from .portainer_fields import PortainerFields as PF


QUOTE_CHARS = ("'", '"')


def strip_quotes(value: str) -> str:
    """Remove one matching pair of outer quotes, if any."""
    if len(value) >= 2 and value[0] in QUOTE_CHARS and value[0] == value[-1]:
        return value[1:-1]
    return value


def parse_line(line: str) -> tuple[str, str] | None:
    if ":" in line:
        separator = ":"
    elif "=" in line:
        separator = "="
    else:
        return None

    key, _, value = line.partition(separator)

    return key.strip(), strip_quotes(value.strip())


def parse_stack_vars(text: str | None) -> dict[str, str]:
    """
    Parse a block of ``KEY: VALUE`` / ``KEY=VALUE`` lines into a dict.

    Lines without a separator are ignored. A key repeated further down the
    block replaces the earlier value but keeps its original position.
    """
    parsed: dict[str, str] = {}

    if not text:
        return parsed

    for line in text.split("\n"):
        pair = parse_line(line)
        if pair is None:
            continue

        key, value = pair
        parsed[key] = value

    return parsed


def merge_env(text: str | None, overrides: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """
    Build the stack ``Env`` payload.

    Values from ``overrides`` always replace parsed values with the same name.
    Names only present in ``overrides`` are appended after the parsed ones.
    """
    merged = parse_stack_vars(text)
    merged.update(overrides or {})

    return [{PF.STACK_ENV_NAME: name, PF.STACK_ENV_VALUE: value} for name, value in merged.items()]
