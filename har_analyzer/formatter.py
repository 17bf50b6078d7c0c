"""
Pure presentation helpers: dashboard, entry lines, reports, sizes, and durations.

Nothing here does I/O; every function returns a string.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import (
    CookieFlow,
    ErrorFinding,
    HarSession,
    HeaderDiff,
    IndexedEntry,
    SecurityFinding,
    SessionStats,
    Severity,
)


# ============================================================================
# SCALARS
# ============================================================================

def format_bytes(size: float) -> str:
    """
    Human-scaled byte count.

    Examples:
        format_bytes(512) → '512 B'
        format_bytes(1536) → '1.5 KB'
    """
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    if size < 1024:
        return f"{int(size)} B"
    unit = 0
    while size >= 1024 and unit < len(units) - 1:
        size /= 1024
        unit += 1
    return f"{size:.1f} {units[unit]}"


def format_duration(ms: float) -> str:
    """
    Human-scaled duration from milliseconds.

    Examples:
        format_duration(250) → '250ms'
        format_duration(1500) → '1.5s'
        format_duration(125000) → '2m 5s'
        format_duration(3780000) → '1h 3m'
    """
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    if ms < 3_600_000:
        return f"{int(ms // 60_000)}m {int((ms % 60_000) // 1000)}s"
    return f"{int(ms // 3_600_000)}h {int((ms % 3_600_000) // 60_000)}m"


def truncate_path(path: str, max_length: int = 50) -> str:
    """
    Shorten a path by replacing its middle with '...'.

    Keeps the start (host-relative prefix) and the end (usually the
    most specific segment) visible.
    """
    if len(path) <= max_length:
        return path
    if max_length <= 3:
        return path[:max_length]
    keep = max_length - 3
    head = (keep + 1) // 2
    tail = keep - head
    return f"{path[:head]}...{path[len(path) - tail:]}" if tail else f"{path[:head]}..."


# ============================================================================
# ENTRY LINES
# ============================================================================

def format_entry_line(entry: IndexedEntry, path_width: int = 60) -> str:
    """One-line rendering: [e<idx>] METHOD path status"""
    return f"[e{entry.index}] {entry.method} {truncate_path(entry.path, path_width)} {entry.status}"


def format_search_line(entry: IndexedEntry, context: str, scope: str = "") -> str:
    """Search hit: [e<idx>] METHOD path status -> context"""
    suffix = f" ({scope} match)" if scope and scope != "url" else ""
    return f"[e{entry.index}] {entry.method} {truncate_path(entry.path, 40)} {entry.status} -> {context}{suffix}"


def _top(counts: Dict[str, int], n: int) -> List[Tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:n]


def format_dashboard(stats: SessionStats, source_file: str) -> str:
    """
    Dashboard summary of a loaded capture.

    Args:
        stats: Aggregate statistics
        source_file: Capture path shown in the header

    Returns:
        Multi-line summary
    """
    lines = [
        f"HAR: {source_file}",
        f"Entries: {stats.entry_count} | Size: {format_bytes(stats.total_size_bytes)} "
        f"| Time: {format_duration(stats.total_time_ms)} | Errors: {stats.error_count}",
    ]
    if stats.start_time:
        lines.append(f"Span: {stats.start_time} -> {stats.end_time}")

    if stats.status_distribution:
        buckets = ", ".join(f"{bucket}: {count}" for bucket, count in sorted(stats.status_distribution.items()))
        lines.append(f"Status: {buckets}")

    if stats.domains:
        lines.append("")
        lines.append(f"Top domains ({len(stats.domains)} total):")
        for domain, count in _top(stats.domains, 10):
            lines.append(f"  {count:>5}  {domain}")

    if stats.mime_type_distribution:
        lines.append("")
        lines.append("Content types:")
        for mime, count in _top(stats.mime_type_distribution, 5):
            lines.append(f"  {count:>5}  {mime}")

    lines.append("")
    lines.append("Next: list [--status 4xx] [--domain X], show <entry>, search <query>, analyze errors")
    return "\n".join(lines)


# ============================================================================
# DETAIL
# ============================================================================

def format_detail(raw_entry: dict, entry: IndexedEntry, header_preview: int = 5) -> str:
    """
    Summary detail for one entry: status, timing breakdown, header
    previews, query parameters, and body sizes.
    """
    request = raw_entry.get('request') or {}
    response = raw_entry.get('response') or {}
    content = response.get('content') or {}

    lines = [
        f"{entry.method} {entry.url}",
        f"Status: {entry.status} {entry.status_text}".rstrip(),
        f"Time: {format_duration(entry.time_ms)} | Size: {format_bytes(entry.response_size)}",
    ]
    if entry.redirect_url:
        lines.append(f"Redirect: {entry.redirect_url}")

    timings = raw_entry.get('timings') or {}
    phases = [
        (label, timings.get(label))
        for label in ('blocked', 'dns', 'connect', 'ssl', 'send', 'wait', 'receive')
    ]
    phases = [(label, value) for label, value in phases if isinstance(value, (int, float)) and value >= 0]
    if phases:
        lines.append("")
        lines.append("Timing:")
        for label, value in phases:
            lines.append(f"  {label:<10} {format_duration(value)}")

    for title, headers in (("Request Headers", request.get('headers') or []),
                           ("Response Headers", response.get('headers') or [])):
        lines.append("")
        lines.append(f"{title}: {len(headers)} total")
        for header in headers[:header_preview]:
            lines.append(f"  {header.get('name', '')}: {truncate_path(str(header.get('value', '')), 100)}")
        if len(headers) > header_preview:
            lines.append(f"  ... +{len(headers) - header_preview} more")

    query = request.get('queryString') or []
    if query:
        lines.append("")
        lines.append(f"Query Parameters: {len(query)}")
        for param in query:
            lines.append(f"  {param.get('name', '')}={param.get('value', '')}")

    lines.append("")
    post_data = request.get('postData')
    if post_data:
        body_size = request.get('bodySize')
        if not isinstance(body_size, (int, float)) or body_size < 0:
            body_size = len(post_data.get('text') or '')
        lines.append(f"Request Body: {format_bytes(body_size)} ({post_data.get('mimeType') or 'unknown'})")
    else:
        lines.append("Request Body: none")
    lines.append(f"Response Body: {format_bytes(entry.response_size)} ({content.get('mimeType') or 'unknown'})")

    return "\n".join(lines)


# ============================================================================
# ANALYSIS REPORTS
# ============================================================================

def format_errors(findings: Sequence[ErrorFinding]) -> str:
    """Error report; 'No errors found.' when empty."""
    if not findings:
        return "No errors found."

    lines = []
    for finding in findings:
        entry = finding.entry
        status = entry.status if entry.status else "0 (network failure)"
        lines.append(
            f"e{entry.index}  {status}  {entry.method}  "
            f"{truncate_path(entry.path, 40)}  {format_duration(entry.time_ms)}"
        )
        if finding.snippet:
            lines.append(f"  {finding.snippet}")
    lines.append("")
    lines.append(f"{len(findings)} error(s)")
    return "\n".join(lines)


SEVERITY_SYMBOLS = {
    Severity.HIGH: "[!!!]",
    Severity.MEDIUM: "[!!]",
    Severity.LOW: "[!]",
}


def format_security(findings: Sequence[SecurityFinding]) -> str:
    """Security report grouped by severity; 'No security findings.' when empty."""
    if not findings:
        return "No security findings."

    by_severity = defaultdict(list)
    for finding in findings:
        by_severity[finding.severity].append(finding)

    lines = [f"Security Scan: {len(findings)} finding(s)", ""]
    for severity in (Severity.HIGH, Severity.MEDIUM, Severity.LOW):
        group = by_severity.get(severity)
        if not group:
            continue
        lines.append(f"{SEVERITY_SYMBOLS[severity]} {severity.value} ({len(group)})")
        for finding in group:
            lines.append(f"  [e{finding.entry_index}] {finding.method} {finding.path}")
            lines.append(f"       {finding.category}: {finding.detail}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_domains(groups: Dict[str, List[IndexedEntry]]) -> str:
    """Per-domain table sorted by request count."""
    if not groups:
        return "No entries."

    rows = []
    for domain, entries in groups.items():
        total_size = sum(e.response_size for e in entries)
        avg_time = sum(e.time_ms for e in entries) / len(entries)
        errors = sum(1 for e in entries if e.is_error)
        rows.append((domain, len(entries), total_size, avg_time, errors))
    rows.sort(key=lambda row: (-row[1], row[0]))

    width = max(len("Domain"), max(len(row[0]) for row in rows))
    lines = [f"{'Domain':<{width}}  {'Count':>5}  {'Size':>9}  {'Avg Time':>8}  {'Errors':>6}"]
    for domain, count, size, avg_time, errors in rows:
        lines.append(
            f"{domain:<{width}}  {count:>5}  {format_bytes(size):>9}  "
            f"{format_duration(avg_time):>8}  {errors:>6}"
        )
    lines.append("")
    lines.append(f"{len(rows)} domains")
    return "\n".join(lines)


def format_sessions(sessions: Sequence[Tuple[HarSession, float]], now: float,
                    current_id: Optional[str] = None) -> str:
    """Persisted sessions, newest first."""
    if not sessions:
        return "No sessions."

    lines = []
    for session, last_used in sessions:
        marker = "*" if session.session_id == current_id else " "
        age = format_duration(max(0.0, now - last_used) * 1000)
        lines.append(
            f"{marker} {session.session_id}  {session.stats.entry_count:>5} entries  "
            f"{age:>8} ago  {session.source_file}"
        )
    return "\n".join(lines)


# ============================================================================
# DIFF AND COOKIES
# ============================================================================

DIFF_COLUMN_WIDTH = 30


def _clip(value: str, width: int = DIFF_COLUMN_WIDTH) -> str:
    return f"{value[:width - 3]}..." if len(value) > width else value


def format_diff(first: IndexedEntry, second: IndexedEntry,
                header_diffs: Sequence[HeaderDiff], bodies: Tuple[str, str]) -> str:
    """
    Side-by-side comparison of two entries.

    Rows whose values differ are marked with '*'. Only headers that differ
    are listed; a header missing on one side shows as '(absent)'.

    Args:
        first: Left entry
        second: Right entry
        header_diffs: Differing headers, request first
        bodies: One-line response body summary for each entry
    """
    width = DIFF_COLUMN_WIDTH
    label1, label2 = f"e{first.index}", f"e{second.index}"
    lines = [
        f"Diff: {label1} vs {label2}",
        "",
        f"  {'Property':<16} {label1:<{width}} {label2}",
        f"  {'-' * 16} {'-' * width} {'-' * width}",
    ]

    rows = [
        ("Method", first.method, second.method),
        ("URL", first.path, second.path),
        ("Status", f"{first.status} {first.status_text}".rstrip(), f"{second.status} {second.status_text}".rstrip()),
        ("Time", format_duration(first.time_ms), format_duration(second.time_ms)),
        ("Req Size", format_bytes(first.request_size), format_bytes(second.request_size)),
        ("Res Size", format_bytes(first.response_size), format_bytes(second.response_size)),
        ("MIME Type", first.mime_type, second.mime_type),
    ]
    for label, value1, value2 in rows:
        marker = "* " if value1 != value2 else "  "
        lines.append(f"{marker}{label:<16} {_clip(value1):<{width}} {_clip(value2)}".rstrip())

    if header_diffs:
        lines.append("")
        lines.append("Headers (different only):")
        for diff in header_diffs:
            value1 = _clip(diff.first if diff.first is not None else "(absent)")
            value2 = _clip(diff.second if diff.second is not None else "(absent)")
            lines.append(f"  {diff.scope} {diff.name:<20} {value1:<{width}} {value2}")

    lines.append("")
    lines.append("Body:")
    lines.append(f"  {label1}: {bodies[0]}")
    lines.append(f"  {label2}: {bodies[1]}")
    return "\n".join(lines)


def collapse_entry_ranges(indices: Sequence[int]) -> str:
    """
    Compact list of entry indices.

    Examples:
        collapse_entry_ranges([]) → 'none'
        collapse_entry_ranges([9, 3, 4, 5]) → '[e3..e5], e9'
    """
    if not indices:
        return "none"

    ordered = sorted(set(indices))
    ranges = []
    start = end = ordered[0]
    for index in ordered[1:]:
        if index == end + 1:
            end = index
            continue
        ranges.append(f"e{start}" if start == end else f"[e{start}..e{end}]")
        start = end = index
    ranges.append(f"e{start}" if start == end else f"[e{start}..e{end}]")
    return ", ".join(ranges)


def format_cookie_flow(cookies: Sequence[CookieFlow]) -> str:
    """Cookie flow report; 'No cookies found in HAR file.' when empty."""
    if not cookies:
        return "No cookies found in HAR file."

    plural = "" if len(cookies) == 1 else "s"
    lines = [f"{len(cookies)} cookie{plural} found:", ""]
    for cookie in cookies:
        lines.append(f"  {cookie.name}")
        if cookie.set_by_entry is not None:
            lines.append(f"    Set by: e{cookie.set_by_entry} {truncate_path(url_path(cookie.set_by_url), 40)}")
        else:
            lines.append(f"    Set by: {cookie.set_by_url}")
        if cookie.flags:
            lines.append(f"    Flags:  {', '.join(cookie.flags)}")
        sent = len(cookie.sent_in_entries)
        lines.append(f"    Sent in {sent} request{'' if sent == 1 else 's'}: "
                     f"{collapse_entry_ranges(cookie.sent_in_entries)}")
        lines.append("")
    return "\n".join(lines).rstrip()


def url_path(url: str) -> str:
    """Path component of a URL, or the URL itself when it has none."""
    try:
        return urlparse(url).path or url
    except ValueError:
        return url
