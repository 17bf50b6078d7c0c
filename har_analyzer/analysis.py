"""
Error, security, cookie-flow, and entry-diff analysis over the index and raw
entries.

The security scan is best-effort: it looks at Authorization headers, header
and query parameter names, and Set-Cookie flags. Secrets inside request or
response bodies are not inspected.
"""

import base64
import binascii
import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlparse

from .formatter import truncate_path
from .models import CookieFlow, ErrorFinding, HeaderDiff, IndexedEntry, SecurityFinding, Severity

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 80

BEARER_JWT_PATTERN = re.compile(r'^(?i:bearer)\s+(eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*)')
SECRET_PARAM_PATTERN = re.compile(r'api_?key|apikey|secret|token|passw(or)?d|auth|^key$', re.IGNORECASE)
API_KEY_HEADER_KEYWORDS = ['api-key', 'api_key', 'apikey', 'x-api-key', 'secret', 'token']


# ============================================================================
# ERRORS
# ============================================================================

def body_snippet(raw_entry: dict, length: int = SNIPPET_LENGTH) -> str:
    """First characters of a textual response body, on one line."""
    content = (raw_entry.get('response') or {}).get('content') or {}
    if (content.get('encoding') or '').lower() == 'base64':
        return ''
    text = content.get('text') or ''
    return text[:length].replace('\r', ' ').replace('\n', ' ').strip()


def find_errors(entries: List[IndexedEntry], har_data: dict) -> List[ErrorFinding]:
    """
    Entries flagged as errors (status 0 or >= 400), with a body snippet.

    Args:
        entries: Indexed entries to consider
        har_data: Raw capture the entries were built from

    Returns:
        List of ErrorFinding in index order
    """
    raw_entries = har_data['log']['entries']
    return [
        ErrorFinding(entry=entry, snippet=body_snippet(raw_entries[entry.index]))
        for entry in entries
        if entry.is_error
    ]


# ============================================================================
# SECURITY
# ============================================================================

def _decode_jwt_part(part: str) -> Optional[dict]:
    padded = part + '=' * (-len(part) % 4)
    try:
        decoded = json.loads(base64.urlsafe_b64decode(padded))
    except (binascii.Error, ValueError):
        return None
    return decoded if isinstance(decoded, dict) else None


def describe_jwt(token: str, now: Optional[datetime] = None) -> str:
    """
    Short description of a JWT: algorithm and expiry when decodable.

    Examples:
        'JWT in Authorization header [alg=HS256, exp=2024-01-01T00:00:00+00:00 (EXPIRED)]'
    """
    parts = token.split('.')
    header = _decode_jwt_part(parts[0])
    payload = _decode_jwt_part(parts[1]) if len(parts) > 1 else None

    extras = []
    if header and header.get('alg'):
        extras.append(f"alg={header['alg']}")
    if payload and isinstance(payload.get('exp'), (int, float)):
        try:
            expires = datetime.fromtimestamp(payload['exp'], tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            expires = None
        if expires is not None:
            now = now or datetime.now(timezone.utc)
            marker = " (EXPIRED)" if expires < now else ""
            extras.append(f"exp={expires.isoformat()}{marker}")

    detail = "JWT in Authorization header"
    if extras:
        detail += f" [{', '.join(extras)}]"
    return detail


def _display_path(entry: IndexedEntry) -> str:
    return truncate_path(f"{entry.path} ({entry.domain})", 60)


def _query_params(raw_entry: dict, url: str) -> list:
    params = [
        (q.get('name', ''), q.get('value', ''))
        for q in (raw_entry.get('request') or {}).get('queryString') or []
    ]
    if params:
        return params
    try:
        return parse_qsl(urlparse(url).query, keep_blank_values=True)
    except ValueError:
        return []


def scan_entry(entry: IndexedEntry, raw_entry: dict) -> List[SecurityFinding]:
    """Run every security heuristic against one entry."""
    findings = []
    request = raw_entry.get('request') or {}
    response = raw_entry.get('response') or {}

    def add(severity: Severity, category: str, detail: str):
        findings.append(SecurityFinding(
            severity=severity,
            category=category,
            entry_index=entry.index,
            method=entry.method,
            path=_display_path(entry),
            detail=detail,
        ))

    for header in request.get('headers') or []:
        name = str(header.get('name', ''))
        value = str(header.get('value', ''))
        lower = name.lower()

        if lower == 'authorization':
            match = BEARER_JWT_PATTERN.match(value)
            if match:
                add(Severity.MEDIUM, "JWT Exposure", describe_jwt(match.group(1)))
            continue

        if value and any(keyword in lower for keyword in API_KEY_HEADER_KEYWORDS):
            add(Severity.HIGH, "API Key in Header",
                f"Header \"{name}\" contains potential secret ({len(value)} chars)")

    seen_params = set()
    for name, value in _query_params(raw_entry, entry.url):
        if name in seen_params or not SECRET_PARAM_PATTERN.search(name):
            continue
        seen_params.add(name)
        add(Severity.HIGH, "Secret in Query String",
            f"Parameter \"{name}\" in query string ({len(value)} chars)")

    for header in response.get('headers') or []:
        if str(header.get('name', '')).lower() != 'set-cookie':
            continue
        value = str(header.get('value', ''))
        lower = value.lower()
        name = cookie_name(value) or 'unknown'
        issues = []
        if 'httponly' not in lower:
            issues.append("missing HttpOnly")
        if 'secure' not in lower:
            issues.append("missing Secure")
        if issues:
            add(Severity.LOW, "Insecure Cookie", f"Cookie \"{name}\": {', '.join(issues)}")

    return findings


def find_security_issues(entries: List[IndexedEntry], har_data: dict) -> List[SecurityFinding]:
    """
    Heuristic security scan.

    Args:
        entries: Indexed entries to scan
        har_data: Raw capture the entries were built from

    Returns:
        Findings in index order
    """
    raw_entries = har_data['log']['entries']
    findings = []
    for entry in entries:
        findings.extend(scan_entry(entry, raw_entries[entry.index]))
    logger.debug(f"Security scan: {len(findings)} finding(s) over {len(entries)} entries")
    return findings


# ============================================================================
# COOKIES
# ============================================================================

def cookie_name(set_cookie: str) -> str:
    """Name part of a Set-Cookie (or Cookie pair) value."""
    return set_cookie.split('=', 1)[0].strip()


def cookie_flags(set_cookie: str) -> List[str]:
    """
    Attribute flags present on a Set-Cookie value.

    Examples:
        cookie_flags('sid=1; HttpOnly; Secure; SameSite=Lax') → ['HttpOnly', 'Secure', 'SameSite=Lax']
    """
    lower = set_cookie.lower()
    flags = []
    if 'httponly' in lower:
        flags.append('HttpOnly')
    if 'secure' in lower:
        flags.append('Secure')
    for same_site in ('Strict', 'Lax', 'None'):
        if f"samesite={same_site.lower()}" in lower:
            flags.append(f"SameSite={same_site}")
            break
    return flags


def _sent_cookie_names(request: dict) -> List[str]:
    names = [str(cookie.get('name', '')) for cookie in request.get('cookies') or []]
    for header in request.get('headers') or []:
        if str(header.get('name', '')).lower() != 'cookie':
            continue
        for pair in str(header.get('value', '')).split(';'):
            names.append(cookie_name(pair))
    return [name for name in names if name]


def analyze_cookies(har_data: dict) -> List[CookieFlow]:
    """
    Track where each cookie was set and which requests carried it.

    The first Set-Cookie for a name wins. Cookies sent but never set in the
    capture are reported as pre-existing.

    Args:
        har_data: Validated HAR data dict

    Returns:
        CookieFlow list sorted by cookie name
    """
    raw_entries = har_data['log']['entries']
    cookies: Dict[str, CookieFlow] = {}

    for index, raw_entry in enumerate(raw_entries):
        for header in (raw_entry.get('response') or {}).get('headers') or []:
            if str(header.get('name', '')).lower() != 'set-cookie':
                continue
            value = str(header.get('value', ''))
            name = cookie_name(value)
            if name and name not in cookies:
                cookies[name] = CookieFlow(
                    name=name,
                    set_by_entry=index,
                    set_by_url=raw_entry['request']['url'],
                    flags=cookie_flags(value),
                )

    for index, raw_entry in enumerate(raw_entries):
        for name in _sent_cookie_names(raw_entry.get('request') or {}):
            flow = cookies.setdefault(name, CookieFlow(name=name))
            if index not in flow.sent_in_entries:
                flow.sent_in_entries.append(index)

    logger.debug(f"Cookie flow: {len(cookies)} cookie(s) over {len(raw_entries)} entries")
    return sorted(cookies.values(), key=lambda flow: flow.name)


# ============================================================================
# DIFF
# ============================================================================

def _header_map(headers: list) -> Dict[str, str]:
    # Last value wins for repeated names
    return {str(h.get('name', '')).lower(): str(h.get('value', '')) for h in headers or []}


def diff_headers(first: dict, second: dict) -> List[HeaderDiff]:
    """
    Request and response headers whose values differ between two raw entries.

    Names compare case-insensitively. A header missing on one side has None
    for that side. Request differences come before response differences.
    """
    diffs = []
    for scope, part in (('Rq', 'request'), ('Rs', 'response')):
        map1 = _header_map((first.get(part) or {}).get('headers'))
        map2 = _header_map((second.get(part) or {}).get('headers'))
        names = list(map1) + [name for name in map2 if name not in map1]
        for name in names:
            if map1.get(name) != map2.get(name):
                diffs.append(HeaderDiff(scope=scope, name=name, first=map1.get(name), second=map2.get(name)))
    return diffs
