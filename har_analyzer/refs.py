"""
Reference store: keeps responses small while large content stays retrievable.

Large headers/bodies are replaced by a preview plus a ref id such as
``e14.response.body``. The store only remembers which (entry, section) a ref
points at; the content itself is always recomputed from the raw capture.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from pydantic import ValidationError

from .formatter import format_bytes
from .models import SECTION_ALIASES, ContentSection, RefEntry, RefRegistry
from .session import atomic_write_text

logger = logging.getLogger(__name__)

REF_PATTERN = re.compile(r'^e(\d+)\.([a-z]+)\.([a-z]+)$')


# ============================================================================
# REF ID HELPERS
# ============================================================================

def make_ref_id(entry_index: int, section: ContentSection) -> str:
    return f"e{entry_index}.{section.value}"


def parse_ref(ref_id: str) -> Optional[Tuple[int, ContentSection]]:
    """
    Split a ref id into entry index and content section.

    Accepts the canonical form (e14.response.body) and the short form
    (e14.rs.body).

    Returns:
        (entry_index, section), or None if the id is malformed
    """
    match = REF_PATTERN.match(ref_id.strip()) if isinstance(ref_id, str) else None
    if not match:
        return None

    index, side, part = match.groups()
    side = SECTION_ALIASES.get(side, side)
    try:
        section = ContentSection(f"{side}.{part}")
    except ValueError:
        return None
    return int(index), section


def format_headers(headers) -> str:
    """Serialize HAR headers as 'Name: value' lines."""
    return "\n".join(f"{h.get('name', '')}: {h.get('value', '')}" for h in headers or [])


def format_cookies(cookies) -> str:
    """Serialize HAR cookies as 'name=value' lines."""
    return "\n".join(f"{c.get('name', '')}={c.get('value', '')}" for c in cookies or [])


def binary_placeholder(content: dict) -> str:
    """Fixed description shown instead of base64 response content."""
    mime_type = content.get('mimeType') or 'unknown'
    return f"[binary: {mime_type}, {format_bytes(max(0, content.get('size') or 0))}]"


def is_binary_content(content: dict) -> bool:
    return (content.get('encoding') or '').lower() == 'base64'


def extract_section(entry: dict, section: ContentSection) -> Optional[str]:
    """
    Recompute one content section of a raw HAR entry.

    Returns:
        Section text, or None if the entry has no such content
    """
    request = entry.get('request') or {}
    response = entry.get('response') or {}

    if section is ContentSection.REQUEST_HEADERS:
        return format_headers(request.get('headers'))
    elif section is ContentSection.RESPONSE_HEADERS:
        return format_headers(response.get('headers'))
    elif section is ContentSection.REQUEST_BODY:
        return (request.get('postData') or {}).get('text')
    elif section is ContentSection.RESPONSE_BODY:
        content = response.get('content') or {}
        if is_binary_content(content):
            return binary_placeholder(content)
        return content.get('text')
    elif section is ContentSection.REQUEST_COOKIES:
        return format_cookies(request.get('cookies'))
    elif section is ContentSection.RESPONSE_COOKIES:
        return format_cookies(response.get('cookies'))

    raise ValueError(f"Unhandled content section: {section!r}")


# ============================================================================
# REF STORE
# ============================================================================

class RefStore:
    """Registry of issued refs for one session"""

    def __init__(
        self,
        source_hash: str,
        registry_path: Optional[Union[str, Path]] = None,
        preview_threshold: int = 1000,
        preview_length: int = 200,
    ):
        """
        Args:
            source_hash: Hash of the session the refs belong to
            registry_path: JSON file to persist refs in (None keeps them in memory)
            preview_threshold: Content shorter than this is shown verbatim
            preview_length: Characters kept in a truncated preview
        """
        self.source_hash = source_hash
        self.registry_path = Path(registry_path) if registry_path else None
        self.preview_threshold = preview_threshold
        self.preview_length = preview_length
        self._refs: Dict[str, RefEntry] = self._load_registry()

    @property
    def refs(self) -> Dict[str, RefEntry]:
        return dict(self._refs)

    def get(self, ref_id: str) -> Optional[RefEntry]:
        return self._refs.get(ref_id)

    def present(self, content: str, ref_id: str, full: bool = False) -> str:
        """
        Return content verbatim, or a preview plus the ref id to expand it.

        Args:
            content: Section text
            ref_id: Ref id addressing this content
            full: Skip truncation

        Returns:
            Text bounded by the preview settings unless full is set

        Raises:
            ValueError: If ref_id is malformed
        """
        if full or len(content) < self.preview_threshold:
            return content

        self.register(ref_id, len(content))
        preview = content[:self.preview_length]
        return f"{preview}...\n[{len(content):,} chars total, expand with ref: {ref_id}]"

    def register(self, ref_id: str, size: int = 0) -> RefEntry:
        """Record ref_id; registering the same id again returns the same entry."""
        existing = self._refs.get(ref_id)
        if existing is not None:
            return existing

        parsed = parse_ref(ref_id)
        if parsed is None:
            raise ValueError(f"Invalid ref format: \"{ref_id}\"")
        entry_index, section = parsed

        ref = RefEntry(ref_id=ref_id, entry_index=entry_index, path=section, size=size)
        self._refs[ref_id] = ref
        self._save_registry()
        return ref

    def expand(self, ref_id: str, har_data: dict) -> Optional[str]:
        """
        Recompute the full content addressed by ref_id.

        Args:
            ref_id: e<index>.<section>.<subsection>
            har_data: Raw capture of the current session

        Returns:
            Content, or None for malformed ids, out-of-range indices,
            and sections the entry doesn't have
        """
        parsed = parse_ref(ref_id)
        if parsed is None:
            return None
        entry_index, section = parsed

        entries = har_data['log']['entries']
        if entry_index >= len(entries):
            return None

        return extract_section(entries[entry_index], section)

    # ─── Persistence ──────────────────────────────────────────────────────

    def _load_registry(self) -> Dict[str, RefEntry]:
        if self.registry_path is None or not self.registry_path.is_file():
            return {}
        try:
            registry = RefRegistry.model_validate(
                json.loads(self.registry_path.read_text(encoding='utf-8'))
            )
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable ref registry {self.registry_path.name}: {e}")
            return {}

        if registry.source_hash != self.source_hash:
            logger.debug("Ref registry belongs to another capture version, starting empty")
            return {}
        return dict(registry.refs)

    def _save_registry(self) -> None:
        if self.registry_path is None:
            return
        registry = RefRegistry(source_hash=self.source_hash, refs=self._refs)
        try:
            self.registry_path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self.registry_path, registry.model_dump_json(by_alias=True))
        except OSError as e:
            # Refs resolve from their id alone; the registry is bookkeeping
            logger.warning(f"Could not persist ref registry: {e}")
