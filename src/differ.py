"""Set difference between observed and desired membership."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping


@dataclass(frozen=True)
class Diff:
    """Changes needed to turn the current membership into the desired one.

    Both tuples are sorted lexicographically so batches come out in the same
    order on every run.
    """

    to_add: tuple[str, ...] = ()
    to_remove: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def diff(current: Iterable[str], desired: Iterable[str]) -> Diff:
    current_set = set(current)
    desired_set = set(desired)
    to_add = [item for item in desired_set if item not in current_set]
    to_remove = [item for item in current_set if item not in desired_set]
    return Diff(to_add=tuple(sorted(to_add)), to_remove=tuple(sorted(to_remove)))


def diff_state(
    current: Mapping[str, Iterable[str]],
    desired: Mapping[str, Iterable[str]],
    categories: Iterable[str] | None = None,
) -> dict[str, Diff]:
    """Diff every category; a category missing on either side counts as empty."""
    if categories is None:
        categories = sorted(set(current) | set(desired))
    return {category: diff(current.get(category, ()), desired.get(category, ())) for category in categories}
