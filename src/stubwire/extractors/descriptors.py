from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from stubwire.errors import DescriptorError

ArgKind = Literal["string", "number", "boolean", "object", "array", "none", "unknown"]


@dataclass(frozen=True)
class DecoratorArg:
    kind: ArgKind
    value: Any
    raw: str


@dataclass(frozen=True)
class DecoratorDecl:
    name: str
    args: tuple[DecoratorArg, ...] = ()
    keywords: tuple[tuple[str, DecoratorArg], ...] = ()
    line: int = 0

    def keyword(self, name: str) -> Optional[DecoratorArg]:
        for k, v in self.keywords:
            if k == name:
                return v
        return None

    def first_string(self, keyword: str = "") -> Optional[str]:
        """First positional string argument, else the given keyword if it is a string."""
        if self.args and self.args[0].kind == "string":
            return self.args[0].value
        if keyword:
            kw = self.keyword(keyword)
            if kw is not None and kw.kind == "string":
                return kw.value
        return None


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    position: int
    type_text: str
    marker: Optional[DecoratorDecl] = None  # first binding marker only


@dataclass(frozen=True)
class UploadFieldDescriptor:
    name: str
    is_array: bool
    max_count: Optional[int] = None


@dataclass(frozen=True)
class UploadDescriptor:
    shape: Literal["single", "multiple", "named_multiple"]
    parameter_name: str
    fields: tuple[UploadFieldDescriptor, ...] = ()


@dataclass(frozen=True)
class MethodDescriptor:
    name: str
    line: int
    parameters: tuple[ParameterDescriptor, ...] = ()
    decorators: tuple[DecoratorDecl, ...] = ()
    return_type: str = ""
    is_async: bool = False

    # http
    verb: Optional[str] = None
    path: str = ""
    upload: Optional[UploadDescriptor] = None

    # socket
    event: Optional[str] = None


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    kind: Literal["controller", "gateway", "emitter"]
    line: int
    prefix: str = ""
    namespace: str = ""
    methods: tuple[MethodDescriptor, ...] = ()
    file_path: str = ""


@dataclass
class ExtractionResult:
    file_path: str = ""
    services: list[ServiceDescriptor] = field(default_factory=list)
    errors: list[DescriptorError] = field(default_factory=list)
