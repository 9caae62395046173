from collections.abc import Sequence
from difflib import get_close_matches

from haseeb.core.errors import AmbiguousError
from haseeb.core.models import Habit

__all__ = ["find_in_pool", "find_in_pool_exact"]

FUZZY_MATCH_CUTOFF = 0.8


def _names(habit: Habit) -> list[str]:
    return [n.lower() for n in (habit.name, habit.name_ar) if n]


def _match_id(ref: str, pool: Sequence[Habit]) -> Habit | None:
    ref_lower = ref.lower()
    exact = next((h for h in pool if h.id.lower() == ref_lower), None)
    if exact:
        return exact
    matches = [h for h in pool if h.id.lower().startswith(ref_lower)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise AmbiguousError(ref, count=len(matches), sample=[h.id for h in matches[:3]])
    return None


def _match_substring(ref: str, pool: Sequence[Habit]) -> Habit | None:
    ref_lower = ref.lower()
    exact = next((h for h in pool if ref_lower in _names(h)), None)
    if exact:
        return exact
    matches = [h for h in pool if any(ref_lower in n for n in _names(h))]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise AmbiguousError(ref, count=len(matches), sample=[h.name for h in matches[:3]])
    return None


def _match_fuzzy(ref: str, pool: Sequence[Habit]) -> Habit | None:
    names = {n: h for h in pool for n in _names(h)}
    matches = get_close_matches(ref.lower(), list(names), n=1, cutoff=FUZZY_MATCH_CUTOFF)
    return names[matches[0]] if matches else None


def find_in_pool(ref: str, pool: Sequence[Habit]) -> Habit | None:
    if not pool:
        return None
    return _match_id(ref, pool) or _match_substring(ref, pool) or _match_fuzzy(ref, pool)


def find_in_pool_exact(ref: str, pool: Sequence[Habit]) -> Habit | None:
    if not pool:
        return None
    return _match_id(ref, pool) or _match_substring(ref, pool)
