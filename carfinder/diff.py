# carfinder/diff.py
"""New-listing detection and model filtering. No I/O here; the seen-set is
read and written through `crud`."""
from typing import Iterable, List, Optional, Set

from .schemas import Listing


def compute_diff(current: Iterable[Listing], seen_ids: Set[str]) -> List[Listing]:
    """Listings whose id is not in `seen_ids`, in their original order."""
    return [listing for listing in current if listing.list_id not in seen_ids]


def _terms(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip().lower() for v in (values or []) if v and v.strip()]


def apply_model_filters(
    listings: Iterable[Listing],
    whitelist: Optional[Iterable[str]],
    blacklist: Optional[Iterable[str]],
) -> List[Listing]:
    filtered = list(listings)

    allow = _terms(whitelist)
    if allow:
        filtered = [
            l for l in filtered
            if l.model and any(term in l.model.lower() for term in allow)
        ]

    deny = _terms(blacklist)
    if deny:
        # listings without a model can't match the blacklist
        filtered = [
            l for l in filtered
            if not l.model or not any(term in l.model.lower() for term in deny)
        ]

    return filtered
