from __future__ import annotations

from pathlib import Path

# directory names never walked into
IGNORED_DIRS = frozenset(
    {
        ".git", ".hg", ".svn",
        ".venv", "venv", "site-packages",
        "__pycache__", ".mypy_cache", ".ruff_cache", ".pytest_cache", ".tox", ".nox",
        "node_modules", "dist", "build",
    }
)


def should_ignore_dir(dir_path: Path) -> bool:
    name = dir_path.name
    return name in IGNORED_DIRS or name.endswith(".egg-info")
