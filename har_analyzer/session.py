"""
Session persistence for loaded HAR captures.

A session descriptor holds the source path, its content hash, aggregate stats
and the per-entry index; raw bodies and headers are never persisted. Each
descriptor lives at <sessions_dir>/<hash16>.json, written atomically so a CLI
and a tool server can share the directory.
"""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import ValidationError

from .errors import NoSessionError, StaleSessionError
from .models import HarSession
from .parser import (
    build_index,
    compute_hash,
    compute_stats,
    parse_har_bytes,
    read_har_bytes,
)

logger = logging.getLogger(__name__)

REFS_SUFFIX = ".refs.json"
CURRENT_POINTER = "current"


def atomic_write_text(target_path: Path, text: str) -> None:
    """
    Write text to target_path via a temp file in the same directory.

    Readers either see the previous file or the complete new one.
    """
    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=f".{target_path.stem}_",
        dir=target_path.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_path, target_path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class SessionManager:
    """
    Owns the "currently loaded capture" and its on-disk descriptor.

    Responsibilities:
    - Hash, parse, and index a capture file into a session descriptor
    - Resume the most recent (or a named) session without re-parsing
    - Refuse stale sessions whose source file changed on disk
    - Best-effort cleanup of expired descriptors
    """

    def __init__(self, sessions_dir: Union[str, Path], ttl_hours: float = 24.0):
        self.sessions_dir = Path(sessions_dir)
        self.ttl_seconds = ttl_hours * 3600

    # ─── Paths ────────────────────────────────────────────────────────────

    def descriptor_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def refs_path(self, session: HarSession) -> Path:
        """Where the RefStore for this session keeps its registry."""
        return self.sessions_dir / f"{session.session_id}{REFS_SUFFIX}"

    def _descriptor_files(self) -> List[Path]:
        if not self.sessions_dir.is_dir():
            return []
        return [
            p for p in self.sessions_dir.glob("*.json")
            if not p.name.endswith(REFS_SUFFIX)
        ]

    # ─── Lifecycle ────────────────────────────────────────────────────────

    def create_session(self, file_path: Union[str, Path]) -> HarSession:
        """
        Parse and index a capture file and persist its descriptor.

        Args:
            file_path: Path to the HAR file

        Returns:
            The new HarSession

        Raises:
            FormatError: If the file is missing or not a valid HAR
        """
        source = Path(file_path).expanduser().resolve()
        raw = read_har_bytes(source)
        source_hash = compute_hash(raw)
        har_data = parse_har_bytes(raw, source)

        entries = build_index(har_data)
        now = time.time()
        session = HarSession(
            source_file=str(source),
            source_hash=source_hash,
            created_at=now,
            last_accessed_at=now,
            stats=compute_stats(entries),
            entries=entries,
        )

        self._save(session)
        logger.info(f"Created session {session.session_id} for {source} ({len(entries)} entries)")
        return session

    def load_session(self, session_id: Optional[str] = None) -> Optional[HarSession]:
        """
        Resume a persisted session without re-parsing the capture.

        Args:
            session_id: Session id or hash prefix; None picks the most
                        recently used session

        Returns:
            HarSession, or None if no matching descriptor exists

        Raises:
            StaleSessionError: If the source file is gone or its hash changed
        """
        path = self._find_descriptor(session_id)
        if path is None:
            return None

        session = self._read_descriptor(path)
        if session is None:
            return None

        self._verify_source(session)
        self._touch(path)
        session.last_accessed_at = time.time()
        return session

    def require_session(self, session_id: Optional[str] = None) -> HarSession:
        """Like load_session, but raises NoSessionError when nothing is loaded."""
        session = self.load_session(session_id)
        if session is None:
            if session_id:
                raise NoSessionError(f"No session matching '{session_id}'. Use load <file> first.")
            raise NoSessionError()
        return session

    def load_capture(self, session: HarSession) -> dict:
        """
        Re-read and parse the raw capture behind a session.

        The hash is checked on the same bytes that get parsed.

        Raises:
            StaleSessionError: If the file is gone or changed since load
        """
        try:
            raw = Path(session.source_file).read_bytes()
        except OSError:
            raise StaleSessionError(session.source_file, "source file is missing")

        if compute_hash(raw) != session.source_hash:
            raise StaleSessionError(session.source_file)

        return parse_har_bytes(raw, session.source_file)

    def list_sessions(self) -> List[Tuple[HarSession, float]]:
        """
        All readable descriptors with their last-use time, newest first.
        """
        sessions = []
        for path in self._descriptor_files():
            session = self._read_descriptor(path)
            if session is None:
                continue
            try:
                mtime = path.stat().st_mtime
            except OSError:
                continue
            sessions.append((session, mtime))
        sessions.sort(key=lambda item: item[1], reverse=True)
        return sessions

    def clean_expired_sessions(self) -> int:
        """
        Remove descriptors (and ref registries) unused for longer than the TTL.

        Best effort: failures are logged and ignored.

        Returns:
            Number of files removed
        """
        removed = 0
        cutoff = time.time() - self.ttl_seconds
        try:
            candidates = list(self.sessions_dir.glob("*.json")) if self.sessions_dir.is_dir() else []
        except OSError as e:
            logger.debug(f"Session cleanup skipped: {e}")
            return 0

        for path in candidates:
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.debug(f"Could not remove expired session file {path}: {e}")

        if removed:
            logger.info(f"Removed {removed} expired session file(s)")
        return removed

    # ─── Internals ────────────────────────────────────────────────────────

    def _save(self, session: HarSession) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(
            self.descriptor_path(session.session_id),
            session.model_dump_json(by_alias=True),
        )
        atomic_write_text(self.sessions_dir / CURRENT_POINTER, session.session_id)

    def _read_current_pointer(self) -> Optional[Path]:
        try:
            session_id = (self.sessions_dir / CURRENT_POINTER).read_text(encoding="utf-8").strip()
        except OSError:
            return None
        path = self.descriptor_path(session_id)
        return path if session_id and path.is_file() else None

    def _find_descriptor(self, session_id: Optional[str]) -> Optional[Path]:
        files = self._descriptor_files()
        if session_id:
            matches = [p for p in files if p.stem.startswith(session_id)]
            if len(matches) > 1:
                raise NoSessionError(f"Session id '{session_id}' is ambiguous ({len(matches)} matches).")
            return matches[0] if matches else None

        current = self._read_current_pointer()
        if current is not None:
            return current

        newest = None
        newest_mtime = -1.0
        for path in files:
            try:
                mtime = path.stat().st_mtime
            except OSError:
                continue
            if mtime > newest_mtime:
                newest, newest_mtime = path, mtime
        return newest

    def _read_descriptor(self, path: Path) -> Optional[HarSession]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return HarSession.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable session descriptor {path.name}: {e}")
            return None

    def _verify_source(self, session: HarSession) -> None:
        source = Path(session.source_file)
        try:
            raw = source.read_bytes()
        except OSError:
            raise StaleSessionError(session.source_file, "source file is missing")

        if compute_hash(raw) != session.source_hash:
            logger.warning(f"Session {session.session_id} is stale: {source} changed on disk")
            raise StaleSessionError(session.source_file)

    def _touch(self, path: Path) -> None:
        # mtime doubles as "last accessed" for recency and TTL
        try:
            os.utime(path)
        except OSError as e:
            logger.debug(f"Could not update access time of {path.name}: {e}")
