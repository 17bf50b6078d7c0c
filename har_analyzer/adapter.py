"""
Protocol adapter: the single entry point for CLI and agent tool calls.

Each operation takes a validated argument model and returns text. call_tool()
wraps them so that no exception ever crosses the protocol boundary; the CLI
uses run(), which lets HarAnalyzerError propagate for stderr/exit-code
handling.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from .analysis import analyze_cookies, diff_headers, find_errors, find_security_issues
from .config import HarAnalyzerConfig
from .errors import HarAnalyzerError, InvalidArgumentError, NotFoundError
from .export import describe_export
from .formatter import (
    format_bytes,
    format_cookie_flow,
    format_dashboard,
    format_detail,
    format_diff,
    format_domains,
    format_entry_line,
    format_errors,
    format_search_line,
    format_security,
)
from .models import (
    AnalysisType,
    AnalyzeArgs,
    ContentSection,
    DetailArgs,
    DetailSection,
    DiffArgs,
    EntryFilter,
    ExpandArgs,
    ExportArgs,
    HarSession,
    IndexedEntry,
    LoadArgs,
    NoArgs,
    SearchArgs,
    SearchScope,
    ToolResult,
)
from .query import filter_entries, group_by_domain
from .refs import (
    RefStore,
    binary_placeholder,
    extract_section,
    is_binary_content,
    make_ref_id,
    parse_ref,
)
from .session import SessionManager

logger = logging.getLogger(__name__)

TOOL_PREFIX = "har_"

# MIME types whose bodies are shown by default
INTERESTING_MIME_TYPES = [
    "application/json",
    "text/json",
    "text/html",
    "text/xml",
    "application/xml",
    "text/plain",
    "application/x-www-form-urlencoded",
    "multipart/form-data",
]


def is_interesting_mime_type(mime_type: str) -> bool:
    normalized = (mime_type or "").split(";")[0].strip().lower()
    return normalized in INTERESTING_MIME_TYPES or normalized.endswith("+json")


def extract_context(text: str, query: str, context_length: int = 60) -> Optional[str]:
    """
    Snippet of text around the first case-insensitive match of query.

    Returns:
        Snippet with '...' on cut sides and newlines escaped, or None
    """
    position = text.lower().find(query.lower())
    if position == -1:
        return None

    start = max(0, position - context_length // 2)
    end = min(len(text), position + len(query) + context_length // 2)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    snippet = text[start:end].replace("\r", "").replace("\n", "\\n")
    return f"{prefix}{snippet}{suffix}"


def describe_validation_error(tool: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg')}")
    return f"Invalid arguments for {tool}: {'; '.join(problems)}"


class HarAnalyzerAdapter:
    """
    Exposes load/overview/list/detail/expand/search/analyze/export/domains
    plus diff/cookies over one explicitly constructed SessionManager.
    """

    def __init__(self, session_manager: SessionManager,
                 config: Optional[HarAnalyzerConfig] = None,
                 session_id: Optional[str] = None):
        """
        Args:
            session_manager: Where sessions are created and resumed
            config: Preview settings (defaults to HarAnalyzerConfig())
            session_id: Pin an existing session instead of the most recent one
        """
        self.sessions = session_manager
        self.config = config or HarAnalyzerConfig()
        self.session_id = session_id
        self.session: Optional[HarSession] = None
        self._ref_store: Optional[RefStore] = None

        self._operations: Dict[str, Tuple[Type[BaseModel], Callable[[Any], str], str]] = {
            "load": (LoadArgs, self.load, "Load a HAR file and show the dashboard overview"),
            "overview": (NoArgs, self.overview, "Show dashboard overview of the currently loaded HAR"),
            "list": (EntryFilter, self.list_entries, "List entries with optional filters"),
            "detail": (DetailArgs, self.detail, "Show detail for a specific entry"),
            "expand": (ExpandArgs, self.expand, "Expand a ref id to see full content"),
            "search": (SearchArgs, self.search, "Search across URLs, headers, and bodies"),
            "analyze": (AnalyzeArgs, self.analyze, "Run analysis: errors, security"),
            "export": (ExportArgs, self.export, "Plan a filtered/sanitized HAR subset export"),
            "domains": (NoArgs, self.domains, "List domains with request counts, sizes, and timing"),
            "diff": (DiffArgs, self.diff, "Compare two entries side by side"),
            "cookies": (NoArgs, self.cookies, "Track cookie flow across requests"),
        }

    # ========================================================================
    # DISPATCH
    # ========================================================================

    @property
    def operation_names(self) -> List[str]:
        return list(self._operations)

    def tool_definitions(self) -> List[dict]:
        """Tool descriptors with JSON schemas generated from the argument models."""
        tools = []
        for name, (model, _, description) in self._operations.items():
            schema = model.model_json_schema()
            schema.pop("title", None)
            schema.setdefault("properties", {})
            tools.append({
                "name": f"{TOOL_PREFIX}{name}",
                "description": description,
                "inputSchema": schema,
            })
        return tools

    def run(self, name: str, arguments: Optional[dict] = None) -> str:
        """
        Validate arguments and run one operation.

        Raises:
            HarAnalyzerError: For every reported failure class
        """
        operation = name[len(TOOL_PREFIX):] if name.startswith(TOOL_PREFIX) else name
        if operation not in self._operations:
            raise InvalidArgumentError(
                f"Unknown tool: {name}. Available: {', '.join(self.operation_names)}"
            )

        model, handler, _ = self._operations[operation]
        try:
            args = model.model_validate(arguments or {})
        except ValidationError as e:
            raise InvalidArgumentError(describe_validation_error(operation, e))

        logger.debug(f"Running {operation} with {args!r}")
        return handler(args)

    def call_tool(self, name: str, arguments: Optional[dict] = None) -> ToolResult:
        """
        Run one operation and convert every failure into a ToolResult.

        Returns:
            ToolResult; is_error is False for normal "not found" answers
        """
        try:
            return ToolResult(text=self.run(name, arguments))
        except NotFoundError as e:
            return ToolResult(text=str(e))
        except HarAnalyzerError as e:
            logger.info(f"{name} failed: {e}")
            return ToolResult(text=str(e), is_error=True)
        except Exception as e:
            logger.exception(f"Unexpected failure in {name}")
            return ToolResult(text=f"Error: {e}", is_error=True)

    # ========================================================================
    # SESSION PLUMBING
    # ========================================================================

    def ensure_session(self) -> HarSession:
        """
        Resume the pinned (or most recent) session, re-checking its source.

        Raises:
            NoSessionError: If nothing is loaded or the session is stale
        """
        session = self.sessions.require_session(self.session_id)
        if self.session is None or self.session.source_hash != session.source_hash:
            self._ref_store = None
        self.session = session
        return session

    def ref_store(self, session: HarSession) -> RefStore:
        if self._ref_store is None or self._ref_store.source_hash != session.source_hash:
            self._ref_store = RefStore(
                session.source_hash,
                registry_path=self.sessions.refs_path(session),
                preview_threshold=self.config.preview_threshold,
                preview_length=self.config.preview_length,
            )
        return self._ref_store

    def _find_entry(self, session: HarSession, index: int) -> IndexedEntry:
        if index < 0 or index >= len(session.entries):
            raise NotFoundError(f"Entry e{index} not found.")
        return session.entries[index]

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def load(self, args: LoadArgs) -> str:
        session = self.sessions.create_session(args.file)
        self.session = session
        self.session_id = session.session_id
        self._ref_store = None

        try:
            self.sessions.clean_expired_sessions()
        except Exception as e:
            logger.debug(f"Session cleanup failed: {e}")

        return format_dashboard(session.stats, session.source_file)

    def overview(self, args: Optional[NoArgs] = None) -> str:
        session = self.ensure_session()
        return format_dashboard(session.stats, session.source_file)

    def list_entries(self, args: EntryFilter) -> str:
        session = self.ensure_session()
        entries = filter_entries(session.entries, args)
        if not entries:
            return "No entries match."
        return "\n".join(format_entry_line(entry) for entry in entries)

    def detail(self, args: DetailArgs) -> str:
        session = self.ensure_session()
        entry = self._find_entry(session, args.entry)
        raw_entry = self.sessions.load_capture(session)['log']['entries'][entry.index]

        if not args.raw:
            return format_detail(raw_entry, entry)
        return self._raw_detail(session, entry, raw_entry, args.section, args.full)

    def _raw_detail(self, session: HarSession, entry: IndexedEntry, raw_entry: dict,
                    section: Optional[DetailSection], full: bool) -> str:
        refs = self.ref_store(session)
        index = entry.index
        lines = []

        def present(content_section: ContentSection) -> str:
            content = extract_section(raw_entry, content_section)
            return refs.present(content or "", make_ref_id(index, content_section), full=full)

        if section in (None, DetailSection.HEADERS):
            lines.append("=== Request Headers ===")
            lines.append(present(ContentSection.REQUEST_HEADERS) or "(none)")
            lines.append("")
            lines.append("=== Response Headers ===")
            lines.append(present(ContentSection.RESPONSE_HEADERS) or "(none)")
            lines.append("")

        if section is DetailSection.COOKIES:
            lines.append("=== Request Cookies ===")
            lines.append(present(ContentSection.REQUEST_COOKIES) or "(none)")
            lines.append("")
            lines.append("=== Response Cookies ===")
            lines.append(present(ContentSection.RESPONSE_COOKIES) or "(none)")
            lines.append("")

        if section in (None, DetailSection.BODY):
            lines.append("=== Request Body ===")
            post_data = (raw_entry.get('request') or {}).get('postData') or {}
            if post_data.get('text'):
                lines.append(present(ContentSection.REQUEST_BODY))
            else:
                lines.append("(none)")
            lines.append("")

            lines.append("=== Response Body ===")
            lines.append(self._response_body(refs, raw_entry, index, full))
            lines.append("")

        return "\n".join(lines).rstrip()

    def _response_body(self, refs: RefStore, raw_entry: dict, index: int, full: bool = False) -> str:
        """Binary placeholder, ref-managed text, skip notice, or '(empty)'."""
        content = (raw_entry.get('response') or {}).get('content') or {}
        if is_binary_content(content):
            return binary_placeholder(content)
        if not content.get('text'):
            return "(empty)"

        ref_id = make_ref_id(index, ContentSection.RESPONSE_BODY)
        if full or is_interesting_mime_type(content.get('mimeType', '')):
            return refs.present(extract_section(raw_entry, ContentSection.RESPONSE_BODY) or "", ref_id, full=full)
        return (
            f"[skipped: {content.get('mimeType') or 'unknown'}, "
            f"{format_bytes(len(content['text']))}, expand with ref: {ref_id}]"
        )

    def expand(self, args: ExpandArgs) -> str:
        session = self.ensure_session()
        parsed = parse_ref(args.ref)
        if parsed is None:
            raise InvalidArgumentError(
                f"Invalid ref format: \"{args.ref}\". Expected format like \"e14.response.body\"."
            )

        self._find_entry(session, parsed[0])
        content = self.ref_store(session).expand(args.ref, self.sessions.load_capture(session))
        if content is None:
            raise NotFoundError(f"No content found for ref \"{args.ref}\".")
        return content

    def search(self, args: SearchArgs) -> str:
        session = self.ensure_session()
        entries = filter_entries(session.entries, EntryFilter(domain=args.domain))
        scope = args.scope
        har_data = self.sessions.load_capture(session) if scope is not SearchScope.URL else None

        results = []
        for entry in entries:
            if len(results) >= args.limit:
                break
            match = self._search_entry(entry, har_data, args.query, scope)
            if match:
                context, where = match
                results.append(format_search_line(entry, context, where))

        if not results:
            return f"No matches for \"{args.query}\"."
        return "\n".join(results)

    def _search_entry(self, entry: IndexedEntry, har_data: Optional[dict],
                      query: str, scope: SearchScope) -> Optional[Tuple[str, str]]:
        if scope in (SearchScope.URL, SearchScope.ALL):
            context = extract_context(entry.url, query)
            if context:
                return context, "url"

        if har_data is None:
            return None
        raw_entry = har_data['log']['entries'][entry.index]

        if scope in (SearchScope.HEADER, SearchScope.ALL):
            headers = ((raw_entry.get('request') or {}).get('headers') or []) + \
                      ((raw_entry.get('response') or {}).get('headers') or [])
            for header in headers:
                context = extract_context(f"{header.get('name', '')}: {header.get('value', '')}", query)
                if context:
                    return context, "header"

        if scope in (SearchScope.BODY, SearchScope.ALL):
            sections = [ContentSection.REQUEST_BODY]
            content = (raw_entry.get('response') or {}).get('content') or {}
            if not is_binary_content(content):
                sections.insert(0, ContentSection.RESPONSE_BODY)
            for section in sections:
                context = extract_context(extract_section(raw_entry, section) or "", query)
                if context:
                    return context, "body"

        return None

    def analyze(self, args: AnalyzeArgs) -> str:
        try:
            analysis = AnalysisType(args.type.strip().lower())
        except ValueError:
            supported = ", ".join(t.value for t in AnalysisType)
            raise InvalidArgumentError(f"Unknown analysis type: {args.type}. Supported: {supported}")

        session = self.ensure_session()
        har_data = self.sessions.load_capture(session)

        if analysis is AnalysisType.ERRORS:
            return format_errors(find_errors(session.entries, har_data))
        return format_security(find_security_issues(session.entries, har_data))

    def export(self, args: ExportArgs) -> str:
        session = self.ensure_session()
        entries = filter_entries(session.entries, EntryFilter(domain=args.domain, status=args.status))
        plan = describe_export(len(entries), len(session.entries), args.sanitize, args.strip_bodies)

        flags = []
        if args.domain:
            flags.append(f"--domain {args.domain}")
        if args.status:
            flags.append(f"--status {args.status}")
        if args.sanitize:
            flags.append("--sanitize")
        if args.strip_bodies:
            flags.append("--strip-bodies")
        command = " ".join(["analyze_har.py export", *flags, "-o <file>"])
        return f"{plan}\nWrite it with: {command}"

    def domains(self, args: Optional[NoArgs] = None) -> str:
        session = self.ensure_session()
        return format_domains(group_by_domain(session.entries))

    def diff(self, args: DiffArgs) -> str:
        session = self.ensure_session()
        first = self._find_entry(session, args.entry1)
        second = self._find_entry(session, args.entry2)
        raw_entries = self.sessions.load_capture(session)['log']['entries']
        raw1, raw2 = raw_entries[first.index], raw_entries[second.index]

        refs = self.ref_store(session)
        bodies = (
            self._response_body(refs, raw1, first.index),
            self._response_body(refs, raw2, second.index),
        )
        return format_diff(first, second, diff_headers(raw1, raw2), bodies)

    def cookies(self, args: Optional[NoArgs] = None) -> str:
        session = self.ensure_session()
        return format_cookie_flow(analyze_cookies(self.sessions.load_capture(session)))
