from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Union


@dataclass(frozen=True)
class FilePart:
    """A file value for an upload binding. Only FilePart instances are sent as file parts."""

    filename: str
    content: Union[bytes, IO[bytes]]
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path | str, content_type: str | None = None) -> "FilePart":
        p = Path(path)
        guessed = content_type or mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(filename=p.name, content=p.read_bytes(), content_type=guessed)

    def as_httpx(self) -> tuple[str, Union[bytes, IO[bytes]], str]:
        return (self.filename, self.content, self.content_type)
