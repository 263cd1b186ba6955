import json

import httpx
import pytest
from pydantic import BaseModel

from stubwire.domain.models import EndpointContract, FileField, FileUploadSpec, ParameterBinding
from stubwire.errors import DispatchError
from stubwire.runtime.config import ClientOptions, OptionsContext
from stubwire.runtime.files import FilePart
from stubwire.runtime.http import HttpDispatcher, prepare_request, raise_for_status, read_json


def _contract(verb="GET", path="/", bindings=(), upload=None) -> EndpointContract:
    return EndpointContract(
        name="op",
        verb=verb,
        path_template=path,
        parameter_bindings=tuple(bindings),
        file_upload=upload,
    )


def _dispatcher(handler, **kwargs) -> HttpDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpDispatcher(client, context=OptionsContext(), **kwargs)


async def _body(*chunks):
    for chunk in chunks:
        yield chunk


def test_keyed_path_bindings_are_substituted_and_encoded():
    c = _contract(
        path="/a/:x/b/:y",
        bindings=[
            ParameterBinding(arg_position=0, kind="path", key="x"),
            ParameterBinding(arg_position=1, kind="path", key="y"),
        ],
    )
    assert prepare_request(c, [1, 2]).url == "/a/1/b/2"
    assert prepare_request(c, ["a b", "c/d"]).url == "/a/a%20b/b/c%2Fd"


def test_placeholder_prefix_does_not_clobber_longer_name():
    c = _contract(
        path="/:id/:idx",
        bindings=[ParameterBinding(arg_position=0, kind="path", key="id")],
    )
    assert prepare_request(c, [5]).url == "/5/:idx"


def test_object_path_binding_fills_matching_placeholders_only():
    c = _contract(
        path="/org/:org/repo/:repo",
        bindings=[ParameterBinding(arg_position=0, kind="path")],
    )
    prepared = prepare_request(c, [{"org": "acme", "repo": "tools", "extra": "x"}])
    assert prepared.url == "/org/acme/repo/tools"
    assert prepared.query == {}


def test_query_header_and_body_classification():
    class Dto(BaseModel):
        name: str
        admin: bool = False

    c = _contract(
        verb="POST",
        path="/users",
        bindings=[
            ParameterBinding(arg_position=0, kind="query", key="page"),
            ParameterBinding(arg_position=1, kind="query"),
            ParameterBinding(arg_position=2, kind="header", key="x-trace"),
            ParameterBinding(arg_position=3, kind="header"),
            ParameterBinding(arg_position=4, kind="body"),
            ParameterBinding(arg_position=5, kind="request_context"),
        ],
    )
    prepared = prepare_request(
        c,
        [2, {"filter": {"role": "admin"}, "sort": "name"}, 42, {"x-flag": True}, Dto(name="ann"), object()],
    )
    assert prepared.method == "POST"
    assert prepared.query == {"page": 2, "filter": '{"role": "admin"}', "sort": "name"}
    assert prepared.headers == {"x-trace": "42", "x-flag": "true"}
    assert prepared.json_body == {"name": "ann", "admin": False}
    assert not prepared.is_multipart


def test_none_arguments_are_skipped_and_later_spreads_win():
    c = _contract(
        bindings=[
            ParameterBinding(arg_position=0, kind="query", key="a"),
            ParameterBinding(arg_position=1, kind="query"),
            ParameterBinding(arg_position=2, kind="query"),
        ],
    )
    prepared = prepare_request(c, [None, {"k": 1, "j": 0}, {"k": 2}])
    assert prepared.query == {"k": 2, "j": 0}


def test_sse_is_sent_as_get():
    assert prepare_request(_contract(verb="SSE", path="/stream"), []).method == "GET"


def test_option_layers_and_argument_headers():
    c = _contract(
        path="/x",
        bindings=[ParameterBinding(arg_position=0, kind="header", key="x-b")],
    )
    prepared = prepare_request(
        c,
        ["arg"],
        ClientOptions(base_url="http://default", headers={"x-a": "default", "x-b": "default"}, timeout=5),
        ClientOptions(base_url="http://instance", headers={"x-a": "instance"}),
        ClientOptions(method="patch", query={"v": 1}),
    )
    assert prepared.url == "http://instance/x"
    assert prepared.headers == {"x-a": "instance", "x-b": "arg"}
    assert prepared.query == {"v": 1}
    assert prepared.timeout == 5
    assert prepared.method == "PATCH"


def test_named_multiple_upload_builds_one_part_per_file():
    upload = FileUploadSpec(
        shape="named_multiple",
        fields=(FileField(name="avatar"), FileField(name="docs", is_array=True, max_count=1)),
    )
    c = _contract(
        verb="POST",
        path="/profile",
        upload=upload,
        bindings=[
            ParameterBinding(arg_position=0, kind="file", file_info=upload),
            ParameterBinding(arg_position=1, kind="body"),
        ],
    )
    files = {
        "avatar": FilePart("a.png", b"png", "image/png"),
        "docs": [FilePart("1.txt", b"one"), FilePart("2.txt", b"two"), "not a file"],
    }
    prepared = prepare_request(c, [files, {"title": "me", "public": True}])
    assert prepared.is_multipart
    # max_count is advisory: both docs are sent
    assert [name for name, _ in prepared.files] == ["avatar", "docs", "docs"]
    assert prepared.form == {"title": "me", "public": "true"}
    assert prepared.json_body is None


def test_multiple_upload_and_scalar_body_under_data():
    upload = FileUploadSpec(shape="multiple", fields=(FileField(name="photos", is_array=True),))
    c = _contract(
        verb="POST",
        upload=upload,
        bindings=[
            ParameterBinding(arg_position=0, kind="file", file_info=upload),
            ParameterBinding(arg_position=1, kind="body"),
        ],
    )
    prepared = prepare_request(c, [[FilePart("a", b"1"), FilePart("b", b"2")], 7])
    assert [name for name, _ in prepared.files] == ["photos", "photos"]
    assert prepared.form == {"data": "7"}


@pytest.mark.asyncio
async def test_dispatch_sends_multipart_request():
    received = {}

    def handler(request: httpx.Request) -> httpx.Response:
        received["content_type"] = request.headers["content-type"]
        received["body"] = request.read()
        return httpx.Response(201)

    upload = FileUploadSpec(shape="single", fields=(FileField(name="file"),))
    c = _contract(
        verb="POST",
        path="/upload",
        upload=upload,
        bindings=[
            ParameterBinding(arg_position=0, kind="file", file_info=upload),
            ParameterBinding(arg_position=1, kind="body"),
        ],
    )
    d = _dispatcher(handler, options=ClientOptions(base_url="http://api.test"))
    response = await d.dispatch(c, [FilePart("hello.txt", b"hello world", "text/plain"), {"note": "hi"}])
    assert response.status_code == 201
    assert received["content_type"].startswith("multipart/form-data")
    assert b'name="file"; filename="hello.txt"' in received["body"]
    assert b"hello world" in received["body"]
    assert b'name="note"' in received["body"]
    await d.client.aclose()


@pytest.mark.asyncio
async def test_upload_without_file_is_still_multipart():
    received = {}

    def handler(request: httpx.Request) -> httpx.Response:
        received["content_type"] = request.headers["content-type"]
        received["body"] = request.read()
        return httpx.Response(201)

    upload = FileUploadSpec(shape="single", fields=(FileField(name="file"),))
    c = _contract(
        verb="POST",
        path="/upload",
        upload=upload,
        bindings=[
            ParameterBinding(arg_position=0, kind="file", file_info=upload),
            ParameterBinding(arg_position=1, kind="body"),
        ],
    )
    d = _dispatcher(handler, options=ClientOptions(base_url="http://api.test"))
    await d.dispatch(c, [None, {"note": "hi"}])
    assert received["content_type"].startswith("multipart/form-data")
    assert b'name="note"' in received["body"]
    assert b"filename=" not in received["body"]
    assert b"hi" in received["body"]
    await d.client.aclose()


def test_file_part_from_path(tmp_path):
    path = tmp_path / "avatar.png"
    path.write_bytes(b"\x89PNG")

    part = FilePart.from_path(path)
    assert part.as_httpx() == ("avatar.png", b"\x89PNG", "image/png")
    assert FilePart.from_path(str(path), "application/x-custom").content_type == "application/x-custom"


@pytest.mark.asyncio
async def test_dispatch_returns_unconsumed_response_and_does_not_raise():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "x"
        assert json.loads(request.content) == {"a": 1}
        return httpx.Response(
            404,
            headers={"content-type": "application/json"},
            content=_body(b'{"message": ', b'"nope"}'),
        )

    c = _contract(
        verb="PUT",
        path="/things",
        bindings=[
            ParameterBinding(arg_position=0, kind="query", key="q"),
            ParameterBinding(arg_position=1, kind="body"),
        ],
    )
    d = _dispatcher(handler, options=ClientOptions(base_url="http://api.test"))
    response = await d.dispatch(c, ["x", {"a": 1}])
    assert response.status_code == 404
    assert not response.is_stream_consumed

    with pytest.raises(DispatchError) as exc:
        raise_for_status(response)
    assert exc.value.status == 404
    assert await read_json(response) == {"message": "nope"}
    await d.client.aclose()


@pytest.mark.asyncio
async def test_transport_failure_raises_dispatch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    d = _dispatcher(handler)
    with pytest.raises(DispatchError) as exc:
        await d.dispatch(_contract(path="/x"), [], ClientOptions(base_url="http://api.test"))
    assert isinstance(exc.value.__cause__, httpx.ConnectError)
    await d.client.aclose()


@pytest.mark.asyncio
async def test_default_options_are_read_per_request():
    urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        urls.append(str(request.url))
        return httpx.Response(204)

    ctx = OptionsContext()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    d = HttpDispatcher(client, context=ctx)

    ctx.set(ClientOptions(base_url="http://one.test"))
    await d.dispatch(_contract(path="/ping"), [])
    ctx.set(ClientOptions(base_url="http://two.test"))
    await d.dispatch(_contract(path="/ping"), [])
    await d.with_options(ClientOptions(base_url="http://three.test")).dispatch(_contract(path="/ping"), [])

    assert urls == ["http://one.test/ping", "http://two.test/ping", "http://three.test/ping"]
    await client.aclose()
