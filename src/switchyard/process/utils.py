"""Utility helpers for the process gateway."""

from __future__ import annotations

import os
import re
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

_TOKEN_PATTERN = re.compile(r"(\d+) tokens")

# Approximate assistant pricing: $15 per million tokens.
COST_PER_TOKEN = 0.000015


def sanitize_environment(
    additional: Mapping[str, str] | None = None,
    *,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ if base is None else base)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def parse_token_usage(output: str) -> int | None:
    """Extract the token count the CLI reports at the end of a response."""

    match = _TOKEN_PATTERN.search(output)
    return int(match.group(1)) if match else None


def estimate_cost(tokens: int) -> float:
    return tokens * COST_PER_TOKEN
