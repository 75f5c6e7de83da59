"""
Artifact Store: Persistence for Captured Notices

This module provides the storage contract the capture flow hands validated
notices to, plus a filesystem implementation.

Storage backends:
- DiskArtifactStore: Local filesystem (development, single-server)
- Blob storage backends implement the same ArtifactStore protocol

Contract:
- upload(bytes, key, content_type) -> url
- Keys are deterministic per record, so a retried capture lands on the
  same key; uploading identical bytes again is a no-op returning the same URL
- Each stored object gets a sidecar with tags, size, hash and provenance
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol
import json
import logging
import re

from provenance import Provenance, sha256_bytes

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"
_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]+")


def safe_segment(value: Optional[str], fallback: str = "unknown") -> str:
    """Make one key segment filesystem- and URL-safe."""
    cleaned = _UNSAFE_SEGMENT.sub("_", (value or "").strip()).strip("._")
    return cleaned[:120] or fallback


def build_notice_key(target_name: str, correlation_key: Optional[str]) -> str:
    """
    Deterministic storage key for a record's EIN letter.

    Examples:
        build_notice_key("Acme Holdings LLC", "12-3456789")
        -> "ein-letters/Acme_Holdings_LLC/12-3456789-EINLetter.pdf"
    """
    record = safe_segment(correlation_key, fallback="no-key")
    return f"ein-letters/{safe_segment(target_name)}/{record}-EINLetter.pdf"


def notice_tags(
    account_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    case_id: Optional[str] = None,
    hidden_from_client: bool = False
) -> Dict[str, str]:
    """Blob tags carried alongside an uploaded notice."""
    tags = {"HiddenFromClient": "true" if hidden_from_client else "false"}
    if account_id:
        tags["AccountId"] = account_id
    if entity_id:
        tags["EntityId"] = entity_id
    if case_id:
        tags["CaseId"] = case_id
    return tags


class ArtifactStore(Protocol):
    """
    Abstract store interface.

    Implement this protocol to back notice storage with:
    - Local disk
    - Azure Blob Storage
    - S3
    """

    def upload(
        self,
        bytes_data: bytes,
        key: str,
        content_type: str,
        *,
        tags: Optional[Dict[str, str]] = None,
        provenance: Optional[Provenance] = None
    ) -> str:
        """Store bytes under key and return their URL. Idempotent per key+bytes."""
        ...

    def get(self, key: str) -> Optional[bytes]:
        """Retrieve stored bytes by key."""
        ...

    def put_json(self, key: str, data: Dict[str, Any]) -> str:
        """Store a JSON document (session reports) and return its URL."""
        ...


class DiskArtifactStore:
    """
    Filesystem-based artifact store.

    Directory structure:
    root_dir/
        ein-letters/
            {target}/
                {record}-EINLetter.pdf
                {record}-EINLetter.pdf.meta.json
                {record}-capture.json
    """

    def __init__(self, root_dir: str):
        """
        Initialize disk artifact store.

        Args:
            root_dir: Root directory for artifact storage
        """
        self.root = Path(root_dir).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"[STORE] Initialized DiskArtifactStore at {self.root}")

    def _path_for(self, key: str) -> Path:
        """Resolve a key to a path under root; reject keys that escape it."""
        segments = [s for s in key.replace("\\", "/").split("/") if s]
        if not segments or any(s in (".", "..") for s in segments):
            raise ValueError(f"Invalid storage key: {key!r}")
        path = self.root.joinpath(*[safe_segment(s) for s in segments]).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Storage key escapes store root: {key!r}")
        return path

    def url_for(self, key: str) -> str:
        return self._path_for(key).as_uri()

    def upload(
        self,
        bytes_data: bytes,
        key: str,
        content_type: str,
        *,
        tags: Optional[Dict[str, str]] = None,
        provenance: Optional[Provenance] = None
    ) -> str:
        """
        Store bytes on disk.

        Args:
            bytes_data: Raw bytes of the artifact
            key: Deterministic storage key
            content_type: MIME type recorded in the sidecar
            tags: Blob tags (see notice_tags)
            provenance: Provenance object for traceability

        Returns:
            file:// URL of the stored artifact
        """
        path = self._path_for(key)
        digest = sha256_bytes(bytes_data)
        meta_path = path.with_name(path.name + META_SUFFIX)

        existing = self.get_metadata(key)
        if path.exists() and existing and existing.get("sha256") == digest:
            logger.info(f"[STORE] Unchanged, skipping write: {key}")
            return path.as_uri()

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".partial")
        tmp.write_bytes(bytes_data)
        tmp.replace(path)

        meta = {
            "key": key,
            "content_type": content_type,
            "size_bytes": len(bytes_data),
            "sha256": digest,
            "tags": dict(tags or {}),
            "stored_at": datetime.now(timezone.utc).isoformat(),
            "provenance": provenance.to_dict() if provenance else None,
        }
        meta_path.write_text(json.dumps(meta, indent=2))

        logger.info(f"[STORE] Stored artifact: {key} ({len(bytes_data)} bytes, {content_type})")
        return path.as_uri()

    def put_json(self, key: str, data: Dict[str, Any]) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, default=str))
        logger.info(f"[STORE] Stored JSON: {key}")
        return path.as_uri()

    def get(self, key: str) -> Optional[bytes]:
        """
        Retrieve artifact bytes by key.

        Returns:
            Raw bytes, or None if not found
        """
        path = self._path_for(key)
        if not path.is_file():
            logger.warning(f"[STORE] Artifact not found: {key}")
            return None
        return path.read_bytes()

    def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        """Sidecar metadata for a key, or None."""
        path = self._path_for(key)
        meta_path = path.with_name(path.name + META_SUFFIX)
        if not meta_path.exists():
            return None
        try:
            return json.loads(meta_path.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"[STORE] Error reading metadata for {key}: {e}")
            return None

    def delete(self, key: str) -> bool:
        """
        Delete an artifact and its sidecar.

        Returns:
            True if deleted, False if not found
        """
        path = self._path_for(key)
        deleted = False
        for p in (path, path.with_name(path.name + META_SUFFIX)):
            if p.exists():
                p.unlink()
                deleted = True
        if deleted:
            logger.info(f"[STORE] Deleted artifact: {key}")
        return deleted

    def stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        files = [f for f in self.root.rglob("*") if f.is_file() and not f.name.endswith(META_SUFFIX)]
        total_size = sum(f.stat().st_size for f in files)
        return {
            "artifact_count": len([f for f in files if f.suffix.lower() == ".pdf"]),
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "storage_path": str(self.root),
        }


# Global store instance
_store: Optional[DiskArtifactStore] = None


def get_artifact_store(root_dir: str = "data/artifacts") -> DiskArtifactStore:
    """Get or create the global artifact store instance."""
    global _store
    if _store is None:
        _store = DiskArtifactStore(root_dir)
    return _store
