from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import mimetypes

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _split_mime(mime: str) -> tuple[str, str]:
    if "/" in mime:
        maintype, subtype = mime.split("/", 1)
        return maintype.strip().lower(), subtype.strip().lower()
    return mime.strip().lower() or "application", "octet-stream"


@dataclass(slots=True)
class Attachment:
    filename: str
    content: bytes
    maintype: str
    subtype: str

    @property
    def content_type(self) -> str:
        return f"{self.maintype}/{self.subtype}"

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> "Attachment":
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Attachment not found: {file_path}")

        name = filename or file_path.name
        mime = content_type or mimetypes.guess_type(name)[0] or DEFAULT_CONTENT_TYPE
        maintype, subtype = _split_mime(mime)

        return cls(filename=name, content=file_path.read_bytes(), maintype=maintype, subtype=subtype)

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        *,
        filename: str,
        content_type: str | None = None,
    ) -> "Attachment":
        if not filename:
            raise ValueError("Attachment filename is required when providing raw bytes.")

        mime = content_type or mimetypes.guess_type(filename)[0] or DEFAULT_CONTENT_TYPE
        maintype, subtype = _split_mime(mime)

        return cls(filename=filename, content=bytes(content), maintype=maintype, subtype=subtype)
