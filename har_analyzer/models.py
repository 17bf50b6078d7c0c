"""
Pydantic models for HAR sessions, references, filters, and tool arguments.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, List
from enum import Enum


class CamelModel(BaseModel):
    """Base model persisted with camelCase keys (sourceFile, entryIndex, ...)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# ENUMS
# ============================================================================

class ContentSection(str, Enum):
    """Addressable content section of a captured entry"""
    REQUEST_HEADERS = "request.headers"
    RESPONSE_HEADERS = "response.headers"
    REQUEST_BODY = "request.body"
    RESPONSE_BODY = "response.body"
    REQUEST_COOKIES = "request.cookies"
    RESPONSE_COOKIES = "response.cookies"


# Short forms accepted on input ("e14.rs.body")
SECTION_ALIASES = {
    "rq": "request",
    "rs": "response",
}


class SearchScope(str, Enum):
    """Where search looks for the query"""
    URL = "url"
    HEADER = "header"
    BODY = "body"
    ALL = "all"


class AnalysisType(str, Enum):
    """Supported analyses"""
    ERRORS = "errors"
    SECURITY = "security"


class DetailSection(str, Enum):
    """Sections shown by raw detail"""
    HEADERS = "headers"
    BODY = "body"
    COOKIES = "cookies"


class Severity(str, Enum):
    """Security finding severity"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# ============================================================================
# INDEX AND SESSION
# ============================================================================

class IndexedEntry(CamelModel):
    """Lightweight metadata record for one captured entry"""

    index: int = Field(description="0-based position in the capture, file order")
    method: str = Field(description="HTTP method")
    url: str = Field(description="Full request URL")
    domain: str = Field(description="Hostname parsed from the URL")
    path: str = Field(description="URL path plus query string")
    status: int = Field(description="Response status (0 for network failure)")
    status_text: str = Field(default="", description="Response status text")
    mime_type: str = Field(default="", description="Response content MIME type")
    request_size: int = Field(default=0, description="Request body size in bytes")
    response_size: int = Field(default=0, description="Response content size in bytes")
    time_ms: float = Field(default=0.0, description="Total entry time in ms")
    started_date_time: str = Field(default="", description="Request start timestamp")
    is_error: bool = Field(default=False, description="Status 0 or >= 400")
    is_redirect: bool = Field(default=False, description="Status 3xx")
    redirect_url: str = Field(default="", description="Redirect target, if any")


class SessionStats(CamelModel):
    """Aggregate statistics over a capture"""

    entry_count: int = Field(default=0, description="Number of entries")
    status_distribution: Dict[str, int] = Field(default_factory=dict, description="Status bucket -> count")
    domains: Dict[str, int] = Field(default_factory=dict, description="Domain -> request count")
    mime_type_distribution: Dict[str, int] = Field(default_factory=dict, description="MIME type -> count")
    total_size_bytes: int = Field(default=0, description="Sum of response sizes")
    total_time_ms: float = Field(default=0.0, description="Sum of entry times")
    error_count: int = Field(default=0, description="Entries flagged as errors")
    start_time: str = Field(default="", description="First entry start timestamp")
    end_time: str = Field(default="", description="Last entry start timestamp")


class HarSession(CamelModel):
    """Persisted session descriptor (index only, never raw bodies)"""

    version: int = Field(default=1, description="Descriptor format version")
    source_file: str = Field(description="Absolute path of the capture file")
    source_hash: str = Field(description="SHA-256 of the capture file bytes")
    created_at: float = Field(description="Creation time (epoch seconds)")
    last_accessed_at: float = Field(description="Last access time (epoch seconds)")
    stats: SessionStats = Field(description="Aggregate statistics")
    entries: List[IndexedEntry] = Field(default_factory=list, description="Per-entry index")

    @property
    def session_id(self) -> str:
        return self.source_hash[:16]


class RefEntry(CamelModel):
    """Registered reference; content is recomputed on expansion"""

    ref_id: str = Field(description="Opaque reference token, e.g. e14.response.body")
    entry_index: int = Field(description="Index of the referenced entry")
    path: ContentSection = Field(description="Referenced content section")
    size: int = Field(default=0, description="Character count when first registered")


class RefRegistry(CamelModel):
    """On-disk registry of issued refs for one session"""

    source_hash: str = Field(description="Session the refs belong to")
    refs: Dict[str, RefEntry] = Field(default_factory=dict)


# ============================================================================
# ANALYSIS FINDINGS
# ============================================================================

class ErrorFinding(BaseModel):
    """Failed entry with a short response body snippet"""
    entry: IndexedEntry
    snippet: str = ""


class SecurityFinding(BaseModel):
    """Heuristic security observation for one entry"""
    severity: Severity
    category: str
    entry_index: int
    method: str
    path: str
    detail: str


class HeaderDiff(BaseModel):
    """Header whose value differs between two entries"""
    scope: str = Field(description="Rq for request headers, Rs for response headers")
    name: str = Field(description="Lower-cased header name")
    first: Optional[str] = Field(default=None, description="Value in the first entry, None if absent")
    second: Optional[str] = Field(default=None, description="Value in the second entry, None if absent")


class CookieFlow(BaseModel):
    """Where a cookie was set and which requests carried it"""
    name: str
    set_by_entry: Optional[int] = None
    set_by_url: str = "(pre-existing)"
    flags: List[str] = Field(default_factory=list)
    sent_in_entries: List[int] = Field(default_factory=list)


# ============================================================================
# TOOL ARGUMENTS AND RESULTS
# ============================================================================

class EntryFilter(BaseModel):
    """Transient filter criteria, applied conjunctively"""
    domain: Optional[str] = Field(default=None, description="Domain: exact hostname, or glob (e.g. *.example.com)")
    status: Optional[str] = Field(default=None, description="Status: 200, 4xx, comma list, or !3xx")
    method: Optional[str] = Field(default=None, description="HTTP method(s), comma-separated")
    url: Optional[str] = Field(default=None, description="Case-sensitive URL substring")
    limit: Optional[int] = Field(default=None, ge=0, description="Maximum entries to return")


class LoadArgs(BaseModel):
    file: str = Field(description="Path to the HAR file")


class NoArgs(BaseModel):
    pass


def strip_entry_prefix(value):
    # Accept the "e14" form shown by list
    if isinstance(value, str) and value.strip().lower().startswith("e"):
        return value.strip()[1:]
    return value


class DetailArgs(BaseModel):
    entry: int = Field(description="Entry index, e.g. 14 or \"e14\"")
    raw: bool = Field(default=False, description="Show full headers/bodies instead of the summary")
    section: Optional[DetailSection] = Field(default=None, description="Raw mode section: headers, body, cookies")
    full: bool = Field(default=False, description="Bypass the ref system and show everything")

    entry_prefix = field_validator("entry", mode="before")(strip_entry_prefix)


class DiffArgs(BaseModel):
    entry1: int = Field(description="First entry index, e.g. 3 or \"e3\"")
    entry2: int = Field(description="Second entry index, e.g. 7 or \"e7\"")

    entry_prefix = field_validator("entry1", "entry2", mode="before")(strip_entry_prefix)


class ExpandArgs(BaseModel):
    ref: str = Field(description="Reference id, e.g. e14.response.body")


class SearchArgs(BaseModel):
    query: str = Field(min_length=1, description="Text to search for (case-insensitive)")
    scope: SearchScope = Field(default=SearchScope.ALL, description="Search scope: url, header, body, all")
    domain: Optional[str] = Field(default=None, description="Restrict to a domain or glob")
    limit: int = Field(default=20, ge=1, description="Maximum matches")


class AnalyzeArgs(BaseModel):
    # Plain str so unknown values reach the adapter and get echoed back
    type: str = Field(description="Analysis type: errors, security")


class ExportArgs(BaseModel):
    domain: Optional[str] = Field(default=None, description="Filter by domain")
    status: Optional[str] = Field(default=None, description="Filter by status")
    sanitize: bool = Field(default=False, description="Redact sensitive headers, cookies, and query values")
    strip_bodies: bool = Field(default=False, alias="stripBodies", description="Remove body content")

    model_config = ConfigDict(populate_by_name=True)


class ToolResult(BaseModel):
    """Single textual result of a tool call"""
    text: str
    is_error: bool = False
