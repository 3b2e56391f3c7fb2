"""Membership events delivered to the reconciliation controller."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Added:
    """The StatefulSet was observed for the first time (or re-listed)."""
    count: Optional[int]


@dataclass(frozen=True)
class Updated:
    old_count: Optional[int]
    new_count: Optional[int]

    @property
    def count_changed(self) -> bool:
        return self.old_count != self.new_count


@dataclass(frozen=True)
class Removed:
    """The StatefulSet was deleted. Nothing can be reconfigured."""
    pass


MembershipEvent = Union[Added, Updated, Removed]
