from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Iterator, Sequence

from stubwire.repo.ignore import should_ignore_dir

DEFAULT_PATTERNS = ("*_controller.py", "*_gateway.py", "*_emitter.py")

_SERVICE_NEEDLES = ("controller", "websocket_gateway", "emit(")


def _iter_files(repo_path: Path) -> Iterator[Path]:
    for root, dirs, files in os.walk(repo_path):
        base = Path(root)
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(base / d))
        for name in sorted(files):
            yield base / name


def scan_source_files(
    repo_path: Path,
    patterns: Sequence[str] = DEFAULT_PATTERNS,
    max_files: int | None = None,
) -> list[str]:
    """
    Absolute paths of annotated service sources under repo_path, sorted.

    A file is kept when its name matches one of the glob patterns; an empty
    pattern list keeps every .py file.
    """
    pats = tuple(patterns) or ("*.py",)
    found: list[str] = []
    for path in _iter_files(repo_path):
        if not any(fnmatch.fnmatch(path.name, p) for p in pats):
            continue
        found.append(str(path.resolve()))
        if max_files is not None and len(found) >= max_files:
            break
    return found


def file_contains_any(path: str, needles: Sequence[str], max_bytes: int = 200_000) -> bool:
    try:
        head = Path(path).read_bytes()[:max_bytes]
    except OSError:
        return False
    text = head.decode("utf-8", errors="ignore")
    return any(n in text for n in needles)


def select_candidate_files(paths: list[str]) -> list[str]:
    """Keep only files that mention at least one class-level service decorator."""
    return [p for p in paths if file_contains_any(p, _SERVICE_NEEDLES)]
