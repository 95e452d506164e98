"""Data structures representing mirrored resources and files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

FileContent = Union[str, bytes]


@dataclass(frozen=True, slots=True)
class ResourceRef:
    """Sub-resource discovered on a page, with its archive path."""

    url: str
    type: str  # css, js, image, icon, font, media, resource, download, meta, manifest, <preload-as>
    local_path: str


@dataclass(frozen=True, slots=True)
class CollectedFile:
    """One archive entry."""

    path: str
    content: FileContent
    mime_type: str
    size: int


@dataclass(slots=True)
class MirrorResult:
    """Outcome of a mirror run and the manifest handed to the archiver."""

    seed_url: str
    status: str  # completed, cancelled, failed
    files: List[CollectedFile] = field(default_factory=list)
    pages: List[str] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    def manifest(self) -> List[Dict[str, Any]]:
        """Ordered ``path``/``mime_type``/``size`` entries (content omitted)."""
        return [
            {"path": f.path, "mime_type": f.mime_type, "size": f.size}
            for f in self.files
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable summary."""
        return {
            "seed_url": self.seed_url,
            "status": self.status,
            "file_count": self.file_count,
            "total_size": self.total_size,
            "pages": list(self.pages),
            "files": self.manifest(),
            "stats": dict(self.stats),
            "error_kind": self.error_kind,
            "error_message": self.error_message,
        }
