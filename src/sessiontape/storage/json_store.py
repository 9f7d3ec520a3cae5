"""JSON file storage layer for session payload persistence.

Stores SessionPayload objects as JSON files under .sessiontape/sessions/
with a latest symlink. Uses atomic writes to prevent corruption.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from uuid import uuid4

from sessiontape.models.payload import InvalidPayloadError, SessionPayload, parse_payload


def _atomic_write(path: Path, content: str) -> None:
    tmp_file = path.with_name(f"{path.name}.tmp")
    tmp_file.write_text(content, encoding="utf-8")
    os.replace(tmp_file, path)


def write_payload_file(path: Path, payload: SessionPayload) -> Path:
    """Export a payload as a camelCase JSON blob (atomic write)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(payload.to_wire(), indent=2, ensure_ascii=False)
    _atomic_write(path, content)
    return path


def read_payload_file(path: Path) -> SessionPayload:
    """Read and validate an exported payload blob.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidPayloadError: If the file is not valid JSON or not a payload.
    """
    content = path.read_text(encoding="utf-8")
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        raise InvalidPayloadError(f"invalid payload format: {exc}") from exc
    return parse_payload(raw)


class PayloadStore:
    """Persist and query SessionPayload objects as JSON files in .sessiontape/.

    File layout:
        .sessiontape/
            sessions/
                {session-id}.json    # Individual payloads
                latest               # Symlink to the newest payload

    Writes are atomic (write to .tmp, then rename) to prevent partial files.
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        effective_dir = storage_dir or ".sessiontape"
        self.root_dir = project_root / effective_dir
        self.sessions_dir = self.root_dir / "sessions"

    def ensure_dirs(self) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def save(self, payload: SessionPayload, session_id: str | None = None) -> str:
        """Save a payload and point 'latest' at it.

        Args:
            payload: The payload to persist.
            session_id: Explicit ID; a new UUID4 hex string when omitted.

        Returns:
            The session ID.
        """
        self.ensure_dirs()
        session_id = session_id or uuid4().hex
        write_payload_file(self.sessions_dir / f"{session_id}.json", payload)
        self.update_latest_symlink(session_id)
        return session_id

    def load(self, session_id: str) -> SessionPayload:
        """Load a payload by ID.

        Raises:
            FileNotFoundError: If no session with that ID exists.
        """
        return read_payload_file(self.sessions_dir / f"{session_id}.json")

    def list_sessions(self) -> list[str]:
        """List stored session IDs, oldest first by modification time."""
        if not self.sessions_dir.exists():
            return []
        files = [f for f in self.sessions_dir.glob("*.json") if not f.is_symlink()]
        return [f.stem for f in sorted(files, key=lambda f: (f.stat().st_mtime, f.stem))]

    def delete(self, session_id: str) -> bool:
        """Delete a stored session. Returns True if it existed."""
        session_file = self.sessions_dir / f"{session_id}.json"
        existed = session_file.exists()
        if existed:
            session_file.unlink()
        if self.latest_id() == session_id:
            self._clear_latest()
        return existed

    def update_latest_symlink(self, session_id: str) -> None:
        """Create or update a 'latest' symlink pointing to the given session.

        Uses atomic pattern: create symlink at tmp path, then os.replace.
        Falls back to writing a .latest text file if symlinks fail (Windows).
        """
        self.ensure_dirs()
        target = f"{session_id}.json"
        link_path = self.sessions_dir / "latest"

        try:
            tmp_link = self.sessions_dir / f".latest_tmp_{session_id}"
            if tmp_link.exists() or tmp_link.is_symlink():
                tmp_link.unlink()
            os.symlink(target, tmp_link)
            os.replace(tmp_link, link_path)
        except OSError:
            fallback_path = self.sessions_dir / ".latest"
            fallback_path.write_text(session_id, encoding="utf-8")

    def latest_id(self) -> str | None:
        link_path = self.sessions_dir / "latest"
        fallback_path = self.sessions_dir / ".latest"
        if link_path.is_symlink():
            return os.readlink(link_path).removesuffix(".json")
        if fallback_path.exists():
            return fallback_path.read_text(encoding="utf-8").strip() or None
        return None

    def load_latest(self) -> SessionPayload | None:
        """Load the most recent payload, or None if there is none."""
        session_id = self.latest_id()
        if session_id is None:
            return None
        try:
            return self.load(session_id)
        except FileNotFoundError:
            return None

    def _clear_latest(self) -> None:
        for name in ("latest", ".latest"):
            path = self.sessions_dir / name
            if path.is_symlink() or path.exists():
                path.unlink()
