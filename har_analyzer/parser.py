"""
HAR loading, validation, and index building.
"""

import hashlib
import json
import math
from collections import defaultdict
from pathlib import Path
from typing import List, Union
from urllib.parse import urlparse

from .errors import FormatError
from .models import IndexedEntry, SessionStats


# ============================================================================
# HAR LOADING AND VALIDATION
# ============================================================================

def compute_hash(raw: bytes) -> str:
    """SHA-256 hex digest of the capture file bytes."""
    return hashlib.sha256(raw).hexdigest()


def read_har_bytes(har_path: Union[str, Path]) -> bytes:
    """
    Read raw capture bytes.

    Raises:
        FormatError: If the file doesn't exist or can't be read
    """
    har_path = Path(har_path)
    if not har_path.is_file():
        raise FormatError(har_path, "file not found")
    try:
        return har_path.read_bytes()
    except OSError as e:
        raise FormatError(har_path, f"cannot read file ({e.strerror})")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _check_optional(har_path, position: int, field: str, value, expected: str) -> None:
    """Optional HAR fields may be absent/null but must have the right type when present."""
    if value is None:
        return
    if expected == 'a number':
        valid = _is_number(value)
    elif expected == 'an object':
        valid = isinstance(value, dict)
    elif expected == 'a string':
        valid = isinstance(value, str)
    else:
        valid = isinstance(value, list) and all(isinstance(item, dict) for item in value)
    if not valid:
        raise FormatError(har_path, f"entry {position}: {field} is not {expected}")


def _validate_entry(har_path, entry, position: int) -> None:
    if not isinstance(entry, dict):
        raise FormatError(har_path, f"entry {position} is not an object")

    request = entry.get('request')
    response = entry.get('response')
    if not isinstance(request, dict):
        raise FormatError(har_path, f"entry {position} is missing request")
    if not isinstance(response, dict):
        raise FormatError(har_path, f"entry {position} is missing response")
    if not isinstance(request.get('url'), str):
        raise FormatError(har_path, f"entry {position} has no request.url")
    if not isinstance(request.get('method'), str):
        raise FormatError(har_path, f"entry {position} has no request.method")

    status = response.get('status')
    if not _is_number(status) or status != int(status):
        raise FormatError(har_path, f"entry {position} has no numeric response.status")

    content = response.get('content')
    post_data = request.get('postData')
    checks = [
        ('time', entry.get('time'), 'a number'),
        ('startedDateTime', entry.get('startedDateTime'), 'a string'),
        ('timings', entry.get('timings'), 'an object'),
        ('request.bodySize', request.get('bodySize'), 'a number'),
        ('request.headers', request.get('headers'), 'a list of objects'),
        ('request.cookies', request.get('cookies'), 'a list of objects'),
        ('request.queryString', request.get('queryString'), 'a list of objects'),
        ('request.postData', post_data, 'an object'),
        ('response.statusText', response.get('statusText'), 'a string'),
        ('response.redirectURL', response.get('redirectURL'), 'a string'),
        ('response.headers', response.get('headers'), 'a list of objects'),
        ('response.cookies', response.get('cookies'), 'a list of objects'),
        ('response.content', content, 'an object'),
    ]
    if isinstance(post_data, dict):
        checks.append(('request.postData.text', post_data.get('text'), 'a string'))
    if isinstance(content, dict):
        checks.extend([
            ('response.content.size', content.get('size'), 'a number'),
            ('response.content.mimeType', content.get('mimeType'), 'a string'),
            ('response.content.text', content.get('text'), 'a string'),
            ('response.content.encoding', content.get('encoding'), 'a string'),
        ])

    for field, value, expected in checks:
        _check_optional(har_path, position, field, value, expected)


def parse_har_bytes(raw: bytes, har_path: Union[str, Path]) -> dict:
    """
    Parse and validate HAR content that has already been read.

    Args:
        raw: File contents
        har_path: Path used in error messages

    Returns:
        HAR data dict

    Raises:
        FormatError: If the content is not JSON or lacks log.entries
    """
    try:
        data = json.loads(raw.decode('utf-8-sig'))
    except UnicodeDecodeError:
        raise FormatError(har_path, "file is not UTF-8 text")
    except json.JSONDecodeError as e:
        raise FormatError(har_path, f"not valid JSON ({e.msg} at line {e.lineno})")

    if not isinstance(data, dict) or not isinstance(data.get('log'), dict):
        raise FormatError(har_path, "missing log object")

    entries = data['log'].get('entries')
    if not isinstance(entries, list):
        raise FormatError(har_path, "missing log.entries")

    for position, entry in enumerate(entries):
        _validate_entry(har_path, entry, position)

    return data


def load_har_file(har_path: Union[str, Path]) -> dict:
    """
    Load HAR file from disk with validation.

    Args:
        har_path: Path to HAR file

    Returns:
        HAR data dict

    Raises:
        FormatError: If the file is missing, unreadable, or not a HAR
    """
    return parse_har_bytes(read_har_bytes(har_path), har_path)


# ============================================================================
# INDEX BUILDING
# ============================================================================

def extract_domain_and_path(url: str) -> tuple:
    """
    Split a URL into hostname and path (with query string).

    Unparsable or host-less URLs map to ('unknown', url).
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return 'unknown', url

    if not hostname:
        return 'unknown', url

    path = parsed.path or '/'
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return hostname, path


def is_error_status(status: int) -> bool:
    """Status 0 is a network-level failure; >= 400 is an HTTP error."""
    return status == 0 or status >= 400


def build_indexed_entry(entry: dict, index: int) -> IndexedEntry:
    """Derive the lightweight index record for one raw HAR entry."""
    request = entry['request']
    response = entry['response']
    content = response.get('content') or {}

    domain, path = extract_domain_and_path(request['url'])
    status = int(response['status'])
    time_ms = entry.get('time') or 0

    return IndexedEntry(
        index=index,
        method=request['method'].upper(),
        url=request['url'],
        domain=domain,
        path=path,
        status=status,
        status_text=response.get('statusText') or '',
        mime_type=content.get('mimeType') or '',
        request_size=max(0, int(request.get('bodySize') or 0)),
        response_size=max(0, int(content.get('size') or 0)),
        time_ms=max(0.0, float(time_ms)),
        started_date_time=entry.get('startedDateTime') or '',
        is_error=is_error_status(status),
        is_redirect=300 <= status < 400,
        redirect_url=response.get('redirectURL') or '',
    )


def build_index(har_data: dict) -> List[IndexedEntry]:
    """
    Build one IndexedEntry per raw entry, in file order.

    Args:
        har_data: Validated HAR data dict

    Returns:
        List of IndexedEntry with index values 0..N-1
    """
    return [
        build_indexed_entry(entry, index)
        for index, entry in enumerate(har_data['log']['entries'])
    ]


# ============================================================================
# STATISTICS
# ============================================================================

def status_bucket(status: int) -> str:
    """Coarse hundred-wide bucket for a status code, e.g. 404 -> '4xx'."""
    return f"{status // 100}xx"


def compute_stats(entries: List[IndexedEntry]) -> SessionStats:
    """
    Aggregate counts and totals over the index.

    Args:
        entries: Indexed entries

    Returns:
        SessionStats
    """
    status_distribution = defaultdict(int)
    domains = defaultdict(int)
    mime_types = defaultdict(int)
    total_size = 0
    total_time = 0.0
    error_count = 0

    for entry in entries:
        status_distribution[status_bucket(entry.status)] += 1
        domains[entry.domain] += 1
        mime_types[entry.mime_type or 'unknown'] += 1
        total_size += entry.response_size
        total_time += entry.time_ms
        if entry.is_error:
            error_count += 1

    return SessionStats(
        entry_count=len(entries),
        status_distribution=dict(status_distribution),
        domains=dict(domains),
        mime_type_distribution=dict(mime_types),
        total_size_bytes=total_size,
        total_time_ms=total_time,
        error_count=error_count,
        start_time=entries[0].started_date_time if entries else '',
        end_time=entries[-1].started_date_time if entries else '',
    )
