"""
Filtered / sanitized HAR subsets.

build_export() returns a new HAR document and never touches the source; the
caller decides where (and whether) to write it.
"""

import copy
import logging
from typing import List
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

from .models import IndexedEntry

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SENSITIVE_HEADERS = {
    'authorization', 'proxy-authorization', 'cookie', 'set-cookie',
    'x-api-key', 'x-auth-token', 'x-csrf-token', 'x-xsrf-token',
}
SENSITIVE_KEYWORDS = ['token', 'secret', 'password', 'passwd', 'api_key', 'apikey', 'auth', 'session', 'key']


def is_sensitive_name(name: str) -> bool:
    lower = name.lower()
    return lower in SENSITIVE_HEADERS or any(keyword in lower for keyword in SENSITIVE_KEYWORDS)


def _redact_pairs(pairs) -> list:
    redacted = []
    for pair in pairs or []:
        pair = dict(pair)
        if is_sensitive_name(str(pair.get('name', ''))):
            pair['value'] = REDACTED
        redacted.append(pair)
    return redacted


def _redact_url(url: str) -> str:
    try:
        parsed = urlparse(url)
        params = parse_qsl(parsed.query, keep_blank_values=True)
    except ValueError:
        return url
    if not any(is_sensitive_name(name) for name, _ in params):
        return url
    query = urlencode([(name, REDACTED if is_sensitive_name(name) else value) for name, value in params])
    return urlunparse(parsed._replace(query=query))


def sanitize_entry(entry: dict) -> dict:
    """Redact sensitive header, cookie, and query values in a copied entry."""
    request = entry.get('request') or {}
    response = entry.get('response') or {}

    request['url'] = _redact_url(request.get('url', ''))
    for key in ('headers', 'cookies', 'queryString'):
        if key in request:
            request[key] = _redact_pairs(request[key])
    post_data = request.get('postData')
    if post_data and post_data.get('params'):
        post_data['params'] = _redact_pairs(post_data['params'])
    for key in ('headers', 'cookies'):
        if key in response:
            response[key] = _redact_pairs(response[key])
    return entry


def strip_entry_bodies(entry: dict) -> dict:
    """Drop request/response body text from a copied entry."""
    request = entry.get('request') or {}
    post_data = request.get('postData')
    if post_data:
        post_data.pop('text', None)
        post_data.pop('params', None)
    content = (entry.get('response') or {}).get('content')
    if content:
        content.pop('text', None)
        content.pop('encoding', None)
    return entry


def build_export(har_data: dict, entries: List[IndexedEntry],
                 sanitize: bool = False, strip_bodies: bool = False) -> dict:
    """
    Build a HAR document holding only the given entries.

    Args:
        har_data: Raw capture (left unmodified)
        entries: Indexed entries selecting which raw entries to keep
        sanitize: Redact sensitive values
        strip_bodies: Remove body text

    Returns:
        New HAR data dict
    """
    raw_entries = har_data['log']['entries']
    selected = []
    for entry in entries:
        raw = copy.deepcopy(raw_entries[entry.index])
        if sanitize:
            raw = sanitize_entry(raw)
        if strip_bodies:
            raw = strip_entry_bodies(raw)
        selected.append(raw)

    log = {key: copy.deepcopy(value) for key, value in har_data['log'].items() if key != 'entries'}
    log['entries'] = selected
    logger.debug(f"Built export with {len(selected)} of {len(raw_entries)} entries")
    return {'log': log}


def describe_export(count: int, total: int, sanitize: bool, strip_bodies: bool) -> str:
    """One-paragraph plan for an export."""
    options = []
    if sanitize:
        options.append("sanitized")
    if strip_bodies:
        options.append("bodies stripped")
    suffix = f" ({', '.join(options)})" if options else ""
    return f"Would export {count} of {total} entries{suffix}."
