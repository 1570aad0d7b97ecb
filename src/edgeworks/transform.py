"""Hooks that let callers adjust the arguments of resources a component creates."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

TransformHook = Callable[[dict[str, Any]], Optional[dict[str, Any]]]


def apply_transform(hook: TransformHook | None, draft: Mapping[str, Any]) -> dict[str, Any]:
    """Run ``hook`` over a copy of ``draft``.

    The hook may mutate the dict in place and return ``None``, or return a new
    dict.
    """
    kwargs = dict(draft)
    if hook is None:
        return kwargs
    result = hook(kwargs)
    return kwargs if result is None else dict(result)
