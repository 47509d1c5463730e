# policyadmin/services/documents.py
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from policyadmin.services import config
from policyadmin.services.errors import ValidationError

logger = logging.getLogger(__name__)

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


@dataclass
class DocumentUpload:
    """An uploaded file, already read into memory."""
    filename: Optional[str]
    content_type: Optional[str]
    content: bytes


@dataclass
class StoredDocument:
    position: int
    original_name: Optional[str]
    stored_path: str
    content_type: Optional[str]
    size_bytes: int


def validate_documents(uploads: Sequence[DocumentUpload]) -> None:
    """At least one, at most UPLOAD_MAX_FILES, each non-empty and within UPLOAD_MAX_BYTES."""
    if not uploads:
        raise ValidationError("Please upload at least one supporting document")
    if len(uploads) > config.UPLOAD_MAX_FILES:
        raise ValidationError(f"At most {config.UPLOAD_MAX_FILES} documents may be uploaded")
    for up in uploads:
        size = len(up.content)
        if size == 0:
            raise ValidationError(f"Document {up.filename or '(unnamed)'} is empty")
        if size > config.UPLOAD_MAX_BYTES:
            raise ValidationError(
                f"Document {up.filename or '(unnamed)'} too large "
                f"(max {config.UPLOAD_MAX_BYTES // (1024 * 1024)}MB)"
            )


def _stored_name(filename: Optional[str]) -> str:
    # Client filenames never reach the filesystem; only a plain extension survives.
    suffix = Path(filename or "").suffix.lower()
    if not _SAFE_SUFFIX.fullmatch(suffix):
        suffix = ""
    return f"{uuid.uuid4().hex}{suffix}"


class DocumentStore:
    """Claim/deactivation documents on local disk under a base directory."""

    def __init__(self, base_dir: Optional[str] = None) -> None:
        self.base_dir = Path(base_dir or config.UPLOAD_DIR)

    def save(self, policy_id: int, uploads: Sequence[DocumentUpload]) -> List[StoredDocument]:
        target = self.base_dir / f"policy-{int(policy_id)}"
        target.mkdir(parents=True, exist_ok=True)
        stored: List[StoredDocument] = []
        try:
            for position, up in enumerate(uploads, start=1):
                path = target / _stored_name(up.filename)
                path.write_bytes(up.content)
                stored.append(StoredDocument(
                    position=position,
                    original_name=Path(up.filename).name if up.filename else None,
                    stored_path=str(path),
                    content_type=up.content_type,
                    size_bytes=len(up.content),
                ))
        except OSError:
            self.discard(stored)
            raise
        return stored

    def discard(self, stored: Sequence[StoredDocument]) -> None:
        """Remove files whose database rows never committed."""
        for doc in stored:
            try:
                Path(doc.stored_path).unlink(missing_ok=True)
            except OSError:
                logger.warning("could not remove orphaned document %s", doc.stored_path, exc_info=True)


def get_document_store() -> DocumentStore:
    return DocumentStore()
