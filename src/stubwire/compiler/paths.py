from __future__ import annotations

import re

_MULTI_SLASH = re.compile(r"/{2,}")
_PLACEHOLDER = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


def join_path(prefix: str, suffix: str) -> str:
    """
    Join a class prefix and a method suffix with exactly one "/".

    ("users", ":id") -> "/users/:id", ("/a/", "/b/") -> "/a/b", ("", "") -> "/"
    """
    joined = _MULTI_SLASH.sub("/", f"/{(prefix or '').strip()}/{(suffix or '').strip()}")
    return joined.rstrip("/") or "/"


def placeholders(path_template: str) -> list[str]:
    return _PLACEHOLDER.findall(path_template)


def join_url(base_url: str | None, path: str) -> str:
    if not base_url:
        return path
    return base_url.rstrip("/") + "/" + path.lstrip("/")
