from __future__ import annotations

import keyword
import pprint
import re
from typing import Any

from stubwire.domain.models import ContractBundle, ServiceContracts

RUNTIME_MODULE = "stubwire.runtime.entry"

_SAFE = re.compile(r"[^a-zA-Z0-9_]+")

_BASES = {
    "controller": "HttpService",
    "gateway": "SocketService",
    "emitter": "ListenerService",
}

_HEADER = '''"""
Generated stubs. Do not edit: re-run `stubwire generate` instead.
"""
'''


def _identifier(name: str, taken: set[str]) -> str:
    ident = _SAFE.sub("_", name).strip("_") or "Service"
    if ident[0].isdigit() or keyword.iskeyword(ident):
        ident = f"_{ident}"
    base, n = ident, 2
    while ident in taken:
        ident = f"{base}_{n}"
        n += 1
    taken.add(ident)
    return ident


def _literal(value: Any, indent: int) -> str:
    text = pprint.pformat(value, indent=1, width=88 - indent, sort_dicts=False)
    pad = " " * indent
    return text.replace("\n", "\n" + pad)


def _render_service(service: ServiceContracts, class_name: str) -> list[str]:
    lines = [f"class {class_name}({_BASES[service.kind]}):"]
    if service.source_path:
        lines.append(f"    # {service.source_path}")
    if service.kind != "controller":
        lines.append(f"    namespace = {service.namespace!r}")

    members = 0
    for endpoint in service.endpoints:
        body = _literal(endpoint.model_dump(mode="json"), 4)
        lines.append(f"    {endpoint.name} = http_stub({body})")
        members += 1
    for event in service.events:
        factory = "listener_stub" if event.direction == "listen" else "event_stub"
        body = _literal(event.model_dump(mode="json"), 4)
        lines.append(f"    {event.name} = {factory}({body})")
        members += 1

    if not members and service.kind == "controller":
        lines.append("    pass")
    return lines


def render_stub_module(bundle: ContractBundle) -> str:
    """
    Render a Python module with one stub class per compiled service.

    The module imports nothing but the runtime entry point; contracts are
    embedded as literal dicts and validated when the module is imported.
    Class names that collide are suffixed (_2, _3, ...) in bundle order.
    """
    out: list[str] = [_HEADER]
    out.append(
        f"from {RUNTIME_MODULE} import (\n"
        "    HttpService,\n"
        "    ListenerService,\n"
        "    SocketService,\n"
        "    event_stub,\n"
        "    http_stub,\n"
        "    listener_stub,\n"
        ")\n"
    )

    taken: set[str] = set()
    names: list[str] = []
    for service in bundle.services:
        class_name = _identifier(service.name, taken)
        names.append(class_name)
        out.append("")
        out.extend(_render_service(service, class_name))
        out.append("")

    out.append("")
    out.append("__all__ = " + _literal(sorted(names), 0))
    return "\n".join(out) + "\n"

