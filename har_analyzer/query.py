"""
Stateless filtering over the session index.

A single linear scan per call; captures are small enough that a secondary
index would not pay for itself.
"""

import fnmatch
from collections import defaultdict
from typing import Dict, List, Optional

from .errors import InvalidArgumentError
from .models import EntryFilter, IndexedEntry


# ============================================================================
# PREDICATES
# ============================================================================

def matches_domain(hostname: str, pattern: str) -> bool:
    """
    Check if hostname matches a domain pattern.

    Plain patterns match the hostname exactly (case-insensitive). Patterns
    with glob characters match by fnmatch, so subdomains need '*.a.com'.

    Examples:
        matches_domain('a.com', 'a.com') → True
        matches_domain('api.a.com', 'a.com') → False
        matches_domain('api.a.com', '*.a.com') → True
        matches_domain('mya.com', 'a.com') → False
    """
    hostname = hostname.lower()
    pattern = pattern.strip().lower()
    if any(ch in pattern for ch in '*?['):
        return fnmatch.fnmatchcase(hostname, pattern)
    return hostname == pattern


def _matches_status_term(status: int, term: str) -> bool:
    term = term.strip().lower()
    if len(term) == 3 and term.endswith('xx') and term[0].isdigit():
        low = int(term[0]) * 100
        return low <= status <= low + 99
    try:
        return status == int(term)
    except ValueError:
        raise InvalidArgumentError(f"Invalid status filter: \"{term}\". Use e.g. 200, 4xx, 200,301, !3xx")


def matches_status(status: int, expression: str) -> bool:
    """
    Check a status code against a filter expression.

    Supports exact codes ("404"), hundred-wide buckets ("4xx" covers
    400-499), comma-separated alternatives ("200,304"), and a leading
    "!" to negate a term ("!3xx").

    Raises:
        InvalidArgumentError: If a term is neither a number nor a bucket
    """
    terms = [t.strip() for t in expression.split(',') if t.strip()]
    if not terms:
        return True

    positive = [t for t in terms if not t.startswith('!')]
    negative = [t[1:] for t in terms if t.startswith('!')]

    if any(_matches_status_term(status, t) for t in negative):
        return False
    if positive:
        return any(_matches_status_term(status, t) for t in positive)
    return True


def matches_method(method: str, expression: str) -> bool:
    """Case-insensitive exact method match; expression may be comma-separated."""
    wanted = {m.strip().upper() for m in expression.split(',') if m.strip()}
    return not wanted or method.upper() in wanted


# ============================================================================
# FILTERING
# ============================================================================

def filter_entries(entries: List[IndexedEntry], criteria: Optional[EntryFilter] = None) -> List[IndexedEntry]:
    """
    Apply filter criteria conjunctively.

    Order: domain, status, method, url substring, then limit.

    Args:
        entries: Indexed entries
        criteria: EntryFilter (None returns everything)

    Returns:
        Matching entries, in index order
    """
    if criteria is None:
        return list(entries)

    result = []
    for entry in entries:
        if criteria.domain and not matches_domain(entry.domain, criteria.domain):
            continue
        if criteria.status and not matches_status(entry.status, criteria.status):
            continue
        if criteria.method and not matches_method(entry.method, criteria.method):
            continue
        if criteria.url and criteria.url not in entry.url:
            continue
        result.append(entry)

    if criteria.limit is not None:
        result = result[:criteria.limit]
    return result


def group_by_domain(entries: List[IndexedEntry]) -> Dict[str, List[IndexedEntry]]:
    """Group entries by domain, preserving first-seen order."""
    groups = defaultdict(list)
    for entry in entries:
        groups[entry.domain].append(entry)
    return dict(groups)


def parse_entry_index(value) -> int:
    """
    Parse an entry reference like "e14" or "14".

    Raises:
        InvalidArgumentError: If the value isn't a non-negative index
    """
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid entry reference: \"{value}\". Use format like \"e14\" or \"14\".")
    if isinstance(value, int):
        index = value
    else:
        text = str(value).strip()
        cleaned = text[1:] if text.lower().startswith('e') else text
        try:
            index = int(cleaned)
        except ValueError:
            raise InvalidArgumentError(f"Invalid entry reference: \"{value}\". Use format like \"e14\" or \"14\".")
    if index < 0:
        raise InvalidArgumentError(f"Invalid entry reference: \"{value}\". Use format like \"e14\" or \"14\".")
    return index
