"""Helpers made available to code-generation templates."""

from __future__ import annotations

from typing import Any


def args(*args: Any) -> dict[str, Any]:
    """Build a mapping from alternating names and values.

    Lets a template pass several named values to another template.
    """
    if len(args) % 2 != 0:
        raise ValueError("args must have an even number of arguments")
    result: dict[str, Any] = {}
    for index in range(0, len(args), 2):
        name = args[index]
        if not isinstance(name, str):
            raise TypeError(
                f"argument {index}: want string, got {type(name).__name__}"
            )
        if name in result:
            raise ValueError(f"argument name {name!r} occurs more than once")
        result[name] = args[index + 1]
    return result