"""Year lock x main flag mutability rules.

Hey future me - this is the ONE place that decides whether a mutation is allowed once a
year is locked. It is pure: the caller looks up the lock state and passes it in, so the
rules are testable without a database.

Two scopes exist:
- YEAR: the whole year is frozen (main-status toggles). A locked year rejects the
  mutation no matter which list it targets.
- MAIN_LIST: only the year's main list is frozen (item edits, renames, moves). Non-main
  lists in a locked year stay editable.
"""

from dataclasses import dataclass
from enum import Enum


class MutationScope(str, Enum):
    """Which lists a year lock freezes for a given mutation."""

    YEAR = "year"
    MAIN_LIST = "main_list"


@dataclass(frozen=True)
class LockDecision:
    """Outcome of can_mutate()."""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> "LockDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "LockDecision":
        return cls(allowed=False, reason=reason)


def can_mutate(
    effective_year: int | None,
    is_main: bool,
    year_locked: bool,
    action: str,
    scope: MutationScope = MutationScope.MAIN_LIST,
) -> LockDecision:
    """Decide whether `action` may touch a list.

    Args:
        effective_year: The list's effective year (None = yearless collection)
        is_main: Whether the list is its year's main list
        year_locked: Lock state of effective_year, as reported by the guard
        action: Human readable action, used in the denial reason
        scope: YEAR freezes every list of a locked year, MAIN_LIST only the main one

    Returns:
        LockDecision with allowed=False and a reason when denied
    """
    # Yearless lists can never be locked
    if effective_year is None or not year_locked:
        return LockDecision.allow()

    if scope is MutationScope.YEAR:
        return LockDecision.deny(f"Cannot {action}: Year {effective_year} is locked")

    if is_main:
        return LockDecision.deny(
            f"Cannot {action}: Main list for year {effective_year} is locked"
        )
    return LockDecision.allow()
