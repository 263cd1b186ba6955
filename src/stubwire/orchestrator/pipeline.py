from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from stubwire.compiler.contracts import compile_bundle
from stubwire.compiler.paths import placeholders
from stubwire.compiler.render import render_stub_module
from stubwire.domain.models import ContractBundle, EndpointContract
from stubwire.errors import DescriptorError
from stubwire.extractors.descriptors import ServiceDescriptor
from stubwire.extractors.services import extract_services_from_file
from stubwire.repo.scanner import DEFAULT_PATTERNS, scan_source_files, select_candidate_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileError:
    rel_path: str
    error: DescriptorError


@dataclass(frozen=True)
class CompileResult:
    repo_path: str
    files_scanned: int
    candidate_files: list[str]
    services: list[ServiceDescriptor]
    bundle: ContractBundle
    errors: list[FileError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def endpoint_count(self) -> int:
        return sum(len(s.endpoints) for s in self.bundle.services)

    @property
    def event_count(self) -> int:
        return sum(len(s.events) for s in self.bundle.services)


def _rel(path: str, repo_path: Path) -> str:
    # repo-relative, forward slashes
    return os.path.relpath(path, str(repo_path)).replace(os.sep, "/")


def unbound_placeholders(endpoint: EndpointContract) -> list[str]:
    """Placeholders of the path template that no path binding can fill."""
    path_bindings = [b for b in endpoint.parameter_bindings if b.kind == "path"]
    if any(b.key is None for b in path_bindings):
        # an object binding may fill any of them
        return []
    bound = {b.key for b in path_bindings}
    return [p for p in placeholders(endpoint.path_template) if p not in bound]


def run_compile(
    repo_path: Path,
    patterns: Sequence[str] = DEFAULT_PATTERNS,
    max_files: int | None = None,
) -> CompileResult:
    repo_path = repo_path.resolve()

    files = scan_source_files(repo_path, patterns=patterns, max_files=max_files)
    candidates = select_candidate_files(files)
    logger.debug("scanned %d files, %d candidates", len(files), len(candidates))

    services: list[ServiceDescriptor] = []
    errors: list[FileError] = []
    for p in candidates:
        rel_path = _rel(p, repo_path)
        extracted = extract_services_from_file(Path(p), rel_path=rel_path)
        services.extend(extracted.services)
        errors.extend(FileError(rel_path, e) for e in extracted.errors)

    bundle = compile_bundle(services)

    warnings: list[str] = []
    seen: dict[str, str] = {}
    for s in bundle.services:
        if s.name in seen:
            warnings.append(f"{s.source_path}: class {s.name} also declared in {seen[s.name]}")
        seen.setdefault(s.name, s.source_path)
        for e in s.endpoints:
            missing = unbound_placeholders(e)
            if missing:
                warnings.append(
                    f"{s.source_path}: {s.name}.{e.name} has no path binding for {', '.join(':' + m for m in missing)}"
                )
    for w in warnings:
        logger.warning(w)

    return CompileResult(
        repo_path=str(repo_path),
        files_scanned=len(files),
        candidate_files=[_rel(p, repo_path) for p in candidates],
        services=services,
        bundle=bundle,
        errors=errors,
        warnings=warnings,
    )


def write_bundle(bundle: ContractBundle, out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(bundle.model_dump_json(indent=2) + "\n", encoding="utf-8")
    return out_path


def load_bundle(path: Path) -> ContractBundle:
    return ContractBundle.model_validate_json(path.read_text(encoding="utf-8"))


def write_stub_module(bundle: ContractBundle, out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(render_stub_module(bundle), encoding="utf-8")
    return out_path
