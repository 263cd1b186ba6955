from __future__ import annotations

import ast
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

from stubwire.errors import DescriptorError
from stubwire.extractors.annotations import (
    find_decorator,
    parse_decorator,
    parse_decorators,
    short_name,
    split_annotated,
)
from stubwire.extractors.descriptors import (
    DecoratorDecl,
    ExtractionResult,
    MethodDescriptor,
    ParameterDescriptor,
    ServiceDescriptor,
)
from stubwire.extractors.uploads import build_upload, parse_interceptor

logger = logging.getLogger(__name__)

HTTP_VERBS = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "delete": "DELETE",
    "patch": "PATCH",
    "options": "OPTIONS",
    "head": "HEAD",
    "sse": "SSE",
}

BINDING_MARKERS = {
    "Param",
    "Query",
    "Header",
    "Headers",
    "Body",
    "UploadedFile",
    "UploadedFiles",
    "Req",
    "Res",
    "MessageBody",
    "ConnectedSocket",
}

_FILE_MARKERS = {"UploadedFile", "UploadedFiles"}

_VOID_RETURN = re.compile(
    r"^(?:None|(?:\w+\.)*Awaitable\[None\]|(?:\w+\.)*Coroutine\[.*,\s*None\])$"
)


def is_void_return(return_type: str) -> bool:
    """A missing return annotation counts as void, like an explicit ``-> None``."""
    t = (return_type or "").strip()
    return not t or bool(_VOID_RETURN.match(t))


def extract_services_from_source(source: str, file_path: str = "") -> ExtractionResult:
    """
    Parse Python source and extract annotated service classes:
      @controller("users")            -> HTTP controller, methods use @get/@post/.../@sse
      @websocket_gateway(namespace=)  -> socket gateway, methods use @subscribe_message
      class with @emit(...) methods   -> server-side event emitter
    The source is parsed, never imported or executed.
    """
    result = ExtractionResult(file_path=file_path)
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        err = DescriptorError("<module>", f"syntax error: {e.msg}", e.lineno or 0)
        logger.warning("skipping %s: %s", file_path or "<source>", err)
        result.errors.append(err)
        return result

    class_nodes = [n for n in ast.walk(tree) if isinstance(n, ast.ClassDef)]
    # name lookup for upload dictionary types only
    classes = {n.name: n for n in class_nodes}

    for cls in class_nodes:
        service = _extract_service(cls, classes, result)
        if service is not None:
            result.services.append(ServiceDescriptor(**{**service.__dict__, "file_path": file_path}))

    # stable ordering: by declaration line
    result.services.sort(key=lambda s: (s.line, s.name))
    return result


def extract_services_from_file(
    path: Path,
    rel_path: Optional[str] = None,
    max_bytes: int = 500_000,
) -> ExtractionResult:
    """Same as extract_services_from_source; descriptors carry rel_path when given."""
    file_path = rel_path if rel_path is not None else str(path.resolve())
    try:
        data = path.read_bytes()[:max_bytes]
    except OSError as e:
        result = ExtractionResult(file_path=file_path)
        result.errors.append(DescriptorError("<module>", f"unreadable: {e}"))
        return result
    return extract_services_from_source(data.decode("utf-8", errors="ignore"), file_path=file_path)


def _iter_methods(cls: ast.ClassDef) -> Iterable[ast.FunctionDef | ast.AsyncFunctionDef]:
    for node in cls.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield node


def _extract_service(
    cls: ast.ClassDef,
    classes: dict[str, ast.ClassDef],
    result: ExtractionResult,
) -> Optional[ServiceDescriptor]:
    decorators = parse_decorators(cls.decorator_list)
    line = getattr(cls, "lineno", 1) or 1

    if find_decorator(decorators, ["controller"]) is not None:
        dec = find_decorator(decorators, ["controller"])
        prefix = dec.first_string("prefix")
        if prefix is None and (dec.args or dec.keyword("prefix") is not None):
            err = DescriptorError(cls.name, "controller prefix must be a string literal", dec.line)
            logger.warning("skipping %s: %s", cls.name, err.reason)
            result.errors.append(err)
            return None
        kind, prefix, namespace = "controller", prefix or "", ""
    elif find_decorator(decorators, ["websocket_gateway"]) is not None:
        dec = find_decorator(decorators, ["websocket_gateway"])
        kind, prefix, namespace = "gateway", "", _gateway_namespace(dec)
    elif any(find_decorator(parse_decorators(m.decorator_list), ["emit"]) for m in _iter_methods(cls)):
        kind, prefix, namespace = "emitter", "", ""
    else:
        return None

    methods: list[MethodDescriptor] = []
    for fn in _iter_methods(cls):
        member = f"{cls.name}.{fn.name}"
        try:
            method = _extract_method(kind, fn, classes, member)
        except DescriptorError as e:
            logger.warning("skipping %s: %s", member, e.reason)
            result.errors.append(e)
            continue
        if method is not None:
            methods.append(method)

    return ServiceDescriptor(
        name=cls.name,
        kind=kind,  # type: ignore[arg-type]
        line=line,
        prefix=prefix,
        namespace=namespace,
        methods=tuple(methods),
    )


def _gateway_namespace(dec: DecoratorDecl) -> str:
    kw = dec.keyword("namespace")
    if kw is not None and kw.kind == "string":
        return kw.value
    # websocket_gateway({"namespace": "chat"}) or websocket_gateway(80, {"namespace": "chat"})
    for arg in dec.args:
        if arg.kind == "object" and isinstance(arg.value.get("namespace"), str):
            return arg.value["namespace"]
    return ""


def _extract_method(
    kind: str,
    fn: ast.FunctionDef | ast.AsyncFunctionDef,
    classes: dict[str, ast.ClassDef],
    member: str,
) -> Optional[MethodDescriptor]:
    decorators = parse_decorators(fn.decorator_list)
    line = getattr(fn, "lineno", 1) or 1

    verb: Optional[str] = None
    path = ""
    event: Optional[str] = None

    if kind == "controller":
        verb_dec = next((d for d in decorators if d.name in HTTP_VERBS), None)
        if verb_dec is None:
            return None
        verb = HTTP_VERBS[verb_dec.name]
        if verb_dec.args or verb_dec.keyword("path") is not None:
            found = verb_dec.first_string("path")
            if found is None:
                raise DescriptorError(member, "route path must be a string literal", verb_dec.line)
            path = found
    else:
        wanted = "subscribe_message" if kind == "gateway" else "emit"
        ev_dec = find_decorator(decorators, [wanted])
        if ev_dec is None:
            return None
        event = ev_dec.first_string("event")
        if event is None:
            raise DescriptorError(member, f"@{wanted} needs a string literal event name", ev_dec.line)

    parameters = _extract_parameters(fn)

    upload = None
    if kind == "controller":
        file_param = next(
            (p for p in parameters if p.marker is not None and p.marker.name in _FILE_MARKERS),
            None,
        )
        if file_param is not None:
            upload = build_upload(file_param.name, file_param.type_text, parse_interceptor(fn, member), classes)

    return MethodDescriptor(
        name=fn.name,
        line=line,
        parameters=tuple(parameters),
        decorators=decorators,
        return_type=ast.unparse(fn.returns) if fn.returns is not None else "",
        is_async=isinstance(fn, ast.AsyncFunctionDef),
        verb=verb,
        path=path,
        upload=upload,
        event=event,
    )


def _extract_parameters(fn: ast.FunctionDef | ast.AsyncFunctionDef) -> list[ParameterDescriptor]:
    positional = list(fn.args.posonlyargs) + list(fn.args.args)
    defaults: list[Optional[ast.expr]] = [None] * (len(positional) - len(fn.args.defaults)) + list(
        fn.args.defaults
    )

    is_static = any(short_name(d) == "staticmethod" for d in fn.decorator_list)
    if positional and not is_static and positional[0].arg in ("self", "cls"):
        positional, defaults = positional[1:], defaults[1:]

    out: list[ParameterDescriptor] = []
    for position, (arg, default) in enumerate(zip(positional, defaults)):
        base, metadata = split_annotated(arg.annotation)
        type_text = ast.unparse(base) if base is not None else "Any"

        marker = None
        candidates = metadata + ([default] if default is not None else [])
        # first binding marker wins; Annotated metadata first, then the default value
        for node in candidates:
            if short_name(node) in BINDING_MARKERS:
                marker = parse_decorator(node)
                break
        if marker is None:
            # custom markers (CamelCase calls) are kept; only socket handlers bind them
            custom = next((n for n in candidates if isinstance(n, ast.Call) and short_name(n)[:1].isupper()), None)
            if custom is not None:
                marker = parse_decorator(custom)

        out.append(ParameterDescriptor(name=arg.arg, position=position, type_text=type_text, marker=marker))
    return out
