from __future__ import annotations

from typing import Iterable, Optional

from stubwire.compiler.paths import join_path
from stubwire.domain.models import (
    ContractBundle,
    EndpointContract,
    EventContract,
    FileField,
    FileUploadSpec,
    ParameterBinding,
    ServiceContracts,
)
from stubwire.extractors.descriptors import (
    MethodDescriptor,
    ParameterDescriptor,
    ServiceDescriptor,
    UploadDescriptor,
)
from stubwire.extractors.services import is_void_return

MARKER_KINDS = {
    "Param": "path",
    "Query": "query",
    "Header": "header",
    "Headers": "header",
    "Body": "body",
    "MessageBody": "body",
    "UploadedFile": "file",
    "UploadedFiles": "file",
    "Req": "request_context",
    "Res": "request_context",
    "ConnectedSocket": "ignored",
}


def compile_upload(upload: Optional[UploadDescriptor]) -> Optional[FileUploadSpec]:
    if upload is None:
        return None
    return FileUploadSpec(
        shape=upload.shape,
        fields=tuple(FileField(name=f.name, is_array=f.is_array, max_count=f.max_count) for f in upload.fields),
    )


def compile_binding(
    param: ParameterDescriptor,
    upload: Optional[FileUploadSpec] = None,
    socket: bool = False,
) -> Optional[ParameterBinding]:
    """Parameters without a marker produce no binding; their position is simply unused."""
    if param.marker is None:
        return None

    kind = MARKER_KINDS.get(param.marker.name)
    key = param.marker.first_string()
    if socket and kind not in ("body", "ignored"):
        # socket payloads carry every other marker under the parameter name
        kind, key = "body", param.name
    elif kind is None:
        return None

    return ParameterBinding(
        arg_position=param.position,
        kind=kind,  # type: ignore[arg-type]
        name=param.name,
        key=key,
        file_info=upload if kind == "file" else None,
    )


def compile_endpoint(service: ServiceDescriptor, method: MethodDescriptor) -> EndpointContract:
    upload = compile_upload(method.upload)
    bindings = [compile_binding(p, upload) for p in method.parameters]
    return EndpointContract(
        name=method.name,
        verb=method.verb or "GET",  # type: ignore[arg-type]
        path_template=join_path(service.prefix, method.path),
        parameter_bindings=tuple(b for b in bindings if b is not None),
        file_upload=upload,
    )


def compile_event(service: ServiceDescriptor, method: MethodDescriptor) -> EventContract:
    listen = service.kind == "emitter"
    bindings = [] if listen else [compile_binding(p, socket=True) for p in method.parameters]
    return EventContract(
        name=method.name,
        event=method.event or method.name,
        namespace=service.namespace,
        parameter_bindings=tuple(b for b in bindings if b is not None),
        expects_ack=not listen and not is_void_return(method.return_type),
        direction="listen" if listen else "emit",
    )


def compile_service(service: ServiceDescriptor) -> ServiceContracts:
    """Pure restatement of a descriptor; compiling the same descriptor twice gives equal contracts."""
    if service.kind == "controller":
        return ServiceContracts(
            name=service.name,
            kind=service.kind,
            prefix=service.prefix,
            source_path=service.file_path,
            endpoints=tuple(compile_endpoint(service, m) for m in service.methods),
        )
    return ServiceContracts(
        name=service.name,
        kind=service.kind,
        namespace=service.namespace,
        source_path=service.file_path,
        events=tuple(compile_event(service, m) for m in service.methods),
    )


def compile_bundle(services: Iterable[ServiceDescriptor]) -> ContractBundle:
    compiled = [compile_service(s) for s in services]
    compiled.sort(key=lambda s: (s.source_path, s.name))
    return ContractBundle(services=tuple(compiled))
