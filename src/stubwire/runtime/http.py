from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from stubwire.compiler.paths import join_url
from stubwire.domain.models import EndpointContract, FileUploadSpec, ParameterBinding
from stubwire.errors import DispatchError
from stubwire.runtime.config import ClientOptions, OptionsContext, default_context, merge_options
from stubwire.runtime.files import FilePart
from stubwire.runtime.values import entries, stringify

logger = logging.getLogger(__name__)


@dataclass
class RequestParts:
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    form: Optional[dict[str, str]] = None
    files: Optional[list[tuple[str, tuple]]] = None


@dataclass(frozen=True)
class PreparedRequest:
    method: str
    url: str
    headers: dict[str, str]
    query: dict[str, Any]
    json_body: Any = None
    form: Optional[dict[str, str]] = None
    files: Optional[list[tuple[str, tuple]]] = None
    timeout: Optional[float] = None

    @property
    def is_multipart(self) -> bool:
        return self.files is not None


def _arg(args: Sequence[Any], binding: ParameterBinding) -> Any:
    return args[binding.arg_position] if binding.arg_position < len(args) else None


def _substitute(path: str, key: str, value: Any) -> str:
    pattern = re.compile(rf":{re.escape(key)}(?![A-Za-z0-9_])")
    return pattern.sub(lambda _: quote(stringify(value), safe=""), path)


def resolve_path(contract: EndpointContract, args: Sequence[Any]) -> str:
    """
    Replace ``:key`` placeholders from path bindings.

    An object binding replaces every placeholder named by one of its entries;
    entries without a placeholder are not used for the path.
    """
    path = contract.path_template
    for binding in contract.parameter_bindings:
        if binding.kind != "path":
            continue
        value = _arg(args, binding)
        if value is None:
            continue
        if binding.key is not None:
            path = _substitute(path, binding.key, value)
            continue
        for k, v in (entries(value) or {}).items():
            path = _substitute(path, k, v)
    return path


def _query_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return json.dumps(value)
    return value


def _append_files(
    files: list[tuple[str, tuple]],
    binding: ParameterBinding,
    value: Any,
    upload: FileUploadSpec,
) -> None:
    spec = binding.file_info or upload
    named = spec.shape == "named_multiple"
    fallback = spec.fields[0].name if spec.fields else ("files" if spec.shape == "multiple" else "file")

    if named:
        # dictionary argument: one (list of) file(s) per declared field
        by_field = entries(value) or {}
        declared = spec.field_names() or list(by_field)
        for name in declared:
            items = by_field.get(name)
            for item in items if isinstance(items, (list, tuple)) else [items]:
                if isinstance(item, FilePart):
                    files.append((name, item.as_httpx()))
        return

    items = value if isinstance(value, (list, tuple)) else [value]
    for item in items:
        if isinstance(item, FilePart):
            files.append((fallback, item.as_httpx()))


def classify_arguments(contract: EndpointContract, args: Sequence[Any]) -> RequestParts:
    """One pass over the bindings in declaration order; ``None`` arguments are skipped."""
    parts = RequestParts()
    upload = contract.file_upload
    if upload is not None:
        parts.form = {}
        parts.files = []

    for binding in contract.parameter_bindings:
        value = _arg(args, binding)
        if value is None:
            continue

        if binding.kind == "query":
            if binding.key is not None:
                parts.query[binding.key] = _query_value(value)
            else:
                for k, v in (entries(value) or {}).items():
                    parts.query[k] = _query_value(v)

        elif binding.kind == "header":
            if binding.key is not None:
                parts.headers[binding.key] = stringify(value)
            else:
                for k, v in (entries(value) or {}).items():
                    parts.headers[k] = stringify(v)

        elif binding.kind == "body":
            if parts.form is not None:
                obj = entries(value)
                if obj is not None:
                    for k, v in obj.items():
                        parts.form[k] = stringify(v)
                else:
                    parts.form["data"] = stringify(value)
            else:
                parts.body = value.model_dump(mode="json") if isinstance(value, BaseModel) else value

        elif binding.kind == "file":
            if parts.files is not None and upload is not None:
                _append_files(parts.files, binding, value, upload)

        # path is resolved separately; request_context and ignored never reach the wire

    return parts


def prepare_request(
    contract: EndpointContract,
    args: Sequence[Any],
    *layers: Optional[ClientOptions],
) -> PreparedRequest:
    """
    Build the concrete request for one call.

    ``layers`` go from least to most specific (default, instance, call site).
    Headers and query derived from the arguments are applied on top.
    """
    options = merge_options(*layers)
    parts = classify_arguments(contract, args)

    method = (options.method or contract.verb).upper()
    if method == "SSE":
        method = "GET"

    return PreparedRequest(
        method=method,
        url=join_url(options.base_url, resolve_path(contract, args)),
        headers={**options.headers, **parts.headers},
        query={**options.query, **parts.query},
        json_body=parts.body,
        form=parts.form,
        files=parts.files,
        timeout=options.timeout,
    )


class HttpDispatcher:
    """
    Turns an endpoint contract plus call-site arguments into an HTTP request.

    ``dispatch`` returns the response unconsumed: status and headers are
    available, the body is read later by the caller (``read_json``) or by a
    stream consumer. Non-2xx statuses are not raised.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        options: Optional[ClientOptions] = None,
        context: OptionsContext = default_context,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.options = options or ClientOptions()
        self.context = context

    def with_options(self, options: ClientOptions) -> "HttpDispatcher":
        """A dispatcher sharing this client with ``options`` merged over the instance layer."""
        d = HttpDispatcher(self.client, merge_options(self.options, options), self.context)
        d._owns_client = False
        return d

    def prepare(
        self,
        contract: EndpointContract,
        args: Sequence[Any],
        call_options: Optional[ClientOptions] = None,
    ) -> PreparedRequest:
        return prepare_request(contract, args, self.context.get(), self.options, call_options)

    def build_request(
        self,
        contract: EndpointContract,
        args: Sequence[Any],
        call_options: Optional[ClientOptions] = None,
    ) -> httpx.Request:
        prepared = self.prepare(contract, args, call_options)
        kwargs: dict[str, Any] = {
            "params": prepared.query,
            "headers": prepared.headers,
            "timeout": prepared.timeout if prepared.timeout is not None else httpx.USE_CLIENT_DEFAULT,
        }
        if prepared.is_multipart and prepared.files:
            kwargs["data"] = prepared.form
            kwargs["files"] = prepared.files
        elif prepared.is_multipart:
            # httpx falls back to urlencoded without files; send the fields as parts
            kwargs["files"] = [(k, (None, v)) for k, v in (prepared.form or {}).items()]
        elif prepared.json_body is not None:
            kwargs["json"] = prepared.json_body
        return self.client.build_request(prepared.method, prepared.url, **kwargs)

    async def dispatch(
        self,
        contract: EndpointContract,
        args: Sequence[Any],
        call_options: Optional[ClientOptions] = None,
    ) -> httpx.Response:
        request = self.build_request(contract, args, call_options)
        logger.debug("dispatch %s -> %s %s", contract.name, request.method, request.url)
        try:
            return await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise DispatchError(f"{request.method} {request.url} failed: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpDispatcher":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


def raise_for_status(response: httpx.Response) -> httpx.Response:
    if not response.is_success:
        raise DispatchError(
            f"{response.status_code} for {response.request.method} {response.request.url}",
            status=response.status_code,
            response=response,
        )
    return response


async def read_json(response: httpx.Response) -> Any:
    """Read the whole body and parse it; a non-JSON error page fails here."""
    try:
        await response.aread()
    finally:
        await response.aclose()
    return response.json()
