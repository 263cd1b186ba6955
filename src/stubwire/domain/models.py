from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

HttpVerb = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD", "SSE"]
BindingKind = Literal["path", "query", "header", "body", "file", "request_context", "ignored"]
UploadShape = Literal["single", "multiple", "named_multiple"]
ServiceKind = Literal["controller", "gateway", "emitter"]
EventDirection = Literal["emit", "listen"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class FileField(_Frozen):
    name: str
    is_array: bool = False
    max_count: Optional[int] = None  # advisory only, never enforced


class FileUploadSpec(_Frozen):
    shape: UploadShape
    fields: tuple[FileField, ...] = ()

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


class ParameterBinding(_Frozen):
    """Maps one call-site argument position to a part of the outgoing operation.

    A missing ``key`` makes this an object binding: the argument's own entries
    are spread into the target namespace instead of being stored under one name.
    """

    arg_position: int
    kind: BindingKind
    name: str = ""
    key: Optional[str] = None
    file_info: Optional[FileUploadSpec] = None

    @property
    def is_object(self) -> bool:
        return self.key is None


class EndpointContract(_Frozen):
    name: str
    verb: HttpVerb
    path_template: str
    parameter_bindings: tuple[ParameterBinding, ...] = ()
    file_upload: Optional[FileUploadSpec] = None

    @property
    def is_stream(self) -> bool:
        return self.verb == "SSE"


class EventContract(_Frozen):
    name: str
    event: str
    namespace: str = ""
    parameter_bindings: tuple[ParameterBinding, ...] = ()
    expects_ack: bool = False
    direction: EventDirection = "emit"


class ServiceContracts(_Frozen):
    name: str
    kind: ServiceKind
    prefix: str = ""
    namespace: str = ""
    source_path: str = ""
    endpoints: tuple[EndpointContract, ...] = ()
    events: tuple[EventContract, ...] = ()


class ContractBundle(_Frozen):
    services: tuple[ServiceContracts, ...] = Field(default_factory=tuple)

    def service(self, name: str) -> ServiceContracts:
        for s in self.services:
            if s.name == name:
                return s
        raise KeyError(name)
