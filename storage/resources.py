"""
Binary Resources attached to Form Submissions.

============================================================
PURPOSE
============================================================
Uploaded files are never stored inline in a submission. The
bytes go to a resource store, and the submission keeps a
ResourceReference pointing at them.

============================================================
COMPONENTS
============================================================
- UploadedResource: A file as received from the form runtime
- ResourceReference: Persisted pointer to stored bytes
- LocalResourceStore: Content-addressed store on local disk

============================================================
"""

import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================
# VALUE TYPES
# =============================================================

@dataclass(frozen=True)
class UploadedResource:
    """A file upload handed over by the form runtime."""

    filename: str
    content: bytes
    media_type: Optional[str] = None


@dataclass(frozen=True)
class ResourceReference:
    """
    Pointer to a stored binary resource.

    This is the "resource" variant of a property value. Display
    and export code must render it via display_value() instead
    of trying to put bytes into a cell.
    """

    sha1: str
    filename: str
    media_type: str = "application/octet-stream"
    size: int = 0
    uri: Optional[str] = None

    def display_value(self) -> str:
        """Human readable form: public URI if known, else filename."""
        return self.uri or self.filename

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sha1": self.sha1,
            "filename": self.filename,
            "media_type": self.media_type,
            "size": self.size,
            "uri": self.uri,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceReference":
        return cls(
            sha1=data["sha1"],
            filename=data.get("filename", ""),
            media_type=data.get("media_type") or "application/octet-stream",
            size=int(data.get("size") or 0),
            uri=data.get("uri"),
        )


# =============================================================
# RESOURCE STORE
# =============================================================

class LocalResourceStore:
    """
    Content-addressed resource store on the local filesystem.

    Files are stored as <root>/<sha1[:2]>/<sha1>. Identical
    uploads share one file. When base_url is set, references
    carry a public URI of the form <base_url>/<sha1>/<filename>.
    """

    def __init__(self, root: Path, base_url: Optional[str] = None) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/") if base_url else None

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, sha1: str) -> Path:
        return self._root / sha1[:2] / sha1

    def store(self, upload: UploadedResource) -> Tuple[ResourceReference, bool]:
        """
        Persist the upload's bytes.

        Returns:
            The reference, and whether a new file was written (False
            when identical content was already stored)
        """
        sha1 = hashlib.sha1(upload.content).hexdigest()
        path = self._path_for(sha1)
        created = not path.exists()
        if created:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(upload.content)
            logger.info(f"Stored resource {sha1} ({len(upload.content)} bytes)")

        media_type = upload.media_type
        if not media_type:
            media_type = mimetypes.guess_type(upload.filename)[0] or "application/octet-stream"

        uri = f"{self._base_url}/{sha1}/{upload.filename}" if self._base_url else None
        reference = ResourceReference(
            sha1=sha1,
            filename=upload.filename,
            media_type=media_type,
            size=len(upload.content),
            uri=uri,
        )
        return reference, created

    def exists(self, reference: ResourceReference) -> bool:
        return self._path_for(reference.sha1).exists()

    def delete(self, reference: ResourceReference) -> bool:
        """
        Delete the stored bytes of a reference.

        Returns:
            True if a file was removed, False if it was already gone
        """
        path = self._path_for(reference.sha1)
        if not path.exists():
            logger.debug(f"Resource {reference.sha1} already removed")
            return False
        path.unlink()
        logger.info(f"Removed resource {reference.sha1} ({reference.filename})")
        return True
