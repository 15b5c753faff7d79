"""
Match Resolver - decides how a resolved candidate relates to a list's current items

Only unchecked items take part. A canonical name match is mandatory; unit and
trimmed notes must then be equal. Equal trimmed stores give a perfect match;
when exactly one side has a store, the match is ambiguous and a person decides.
Everything else is a distinct entry.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from models import CandidateItem, Item


class MatchKind(str, Enum):
    NO_MATCH = "no_match"
    PERFECT = "perfect"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class MatchResult:
    kind: MatchKind
    existing: Optional[Item] = None


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def compare(candidate: CandidateItem, existing: Item) -> MatchKind:
    """Classify a single candidate/existing pair, ignoring the checked flag"""
    if candidate.canonical_name != existing.canonical_name:
        return MatchKind.NO_MATCH
    if _clean(candidate.unit) != _clean(existing.unit):
        return MatchKind.NO_MATCH
    if _clean(candidate.notes) != _clean(existing.notes):
        return MatchKind.NO_MATCH

    candidate_store = _clean(candidate.store)
    existing_store = _clean(existing.store)
    if candidate_store == existing_store:
        return MatchKind.PERFECT
    if not candidate_store or not existing_store:
        return MatchKind.AMBIGUOUS
    # Two different named stores
    return MatchKind.NO_MATCH


def classify(candidate: CandidateItem, items: Iterable[Item]) -> MatchResult:
    """
    Find the item a candidate should merge into.

    The first perfect match in list order wins; failing that, the first
    ambiguous match; otherwise no match.
    """
    first_ambiguous = None
    for item in items:
        if item.checked:
            continue
        kind = compare(candidate, item)
        if kind is MatchKind.PERFECT:
            return MatchResult(MatchKind.PERFECT, item)
        if kind is MatchKind.AMBIGUOUS and first_ambiguous is None:
            first_ambiguous = item

    if first_ambiguous is not None:
        return MatchResult(MatchKind.AMBIGUOUS, first_ambiguous)
    return MatchResult(MatchKind.NO_MATCH)


def merge_notes(existing: Optional[str], incoming: Optional[str]) -> str:
    parts = []
    for note in (_clean(existing), _clean(incoming)):
        if note and note not in parts:
            parts.append(note)
    return ", ".join(parts)


def merge_items(existing: Item, candidate: CandidateItem) -> Item:
    """
    Fold a candidate into an existing item.

    The existing item keeps its id, display identity (name, icon, category,
    canonical name), unit and dietary flag. Quantities add up, urgency is
    OR-ed and a non-empty store fills in a missing one.
    """
    store = _clean(existing.store) or _clean(candidate.store)
    return existing.model_copy(update={
        "qty": existing.qty + candidate.qty,
        "urgent": existing.urgent or candidate.urgent,
        "notes": merge_notes(existing.notes, candidate.notes),
        "store": store,
    })
