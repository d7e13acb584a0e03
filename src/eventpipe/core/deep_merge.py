"""Deep numeric merge of aggregate trees.

An aggregate tree is a nested mapping whose leaves are numbers. Running
statistics are maintained by merging per-record contributions into the
tree instead of recomputing it from the full dataset, so every combined
leaf is rounded to 12 significant digits to keep float drift bounded.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Union

AggregateTree = dict[str, Union[float, "AggregateTree"]]

_SIGNIFICANT_DIGITS = 12


def round_significant(value: float, digits: int = _SIGNIFICANT_DIGITS) -> float:
    """Round *value* to *digits* significant digits."""
    return float(f"{value:.{digits}g}")


def _deep_merge(
    left: Mapping[str, object],
    right: Mapping[str, object],
    operation: Callable[[float, float], float],
) -> AggregateTree:
    merged: AggregateTree = dict(left)  # type: ignore[arg-type]

    for key, value in right.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            current = merged.get(key, 0)
            # Subtree on the left wins over a leaf on the right
            if isinstance(current, (int, float)) and not isinstance(current, bool):
                merged[key] = round_significant(operation(current, value))
        elif isinstance(value, Mapping):
            current = merged.get(key, {})
            if isinstance(current, Mapping):
                merged[key] = _deep_merge(current, value, operation)

    return merged


def deep_merge_sum(
    left: Mapping[str, object], right: Mapping[str, object]
) -> AggregateTree:
    """Add every leaf of *right* into *left*, returning a new tree.

    >>> deep_merge_sum({"a": 1, "b": {"c": 2}}, {"a": 3, "b": {"c": 4, "d": 5}})
    {'a': 4.0, 'b': {'c': 6.0, 'd': 5.0}}
    """
    return _deep_merge(left, right, lambda a, b: a + b)


def deep_merge_substract(
    left: Mapping[str, object], right: Mapping[str, object]
) -> AggregateTree:
    """Subtract every leaf of *right* from *left*, returning a new tree.

    Left-inverse of :func:`deep_merge_sum` on its second operand, up to
    rounding.
    """
    return _deep_merge(left, right, lambda a, b: a - b)
