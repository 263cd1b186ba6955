from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientOptions(BaseModel):
    """
    One configuration layer for HTTP dispatch.

    Map-valued fields (headers, query) are deep-merged across layers; scalars
    (base_url, method, timeout) are overridden by the most specific layer that
    sets them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[float] = None
    method: Optional[str] = None


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def merge_options(*layers: Optional[ClientOptions]) -> ClientOptions:
    """Merge layers from least to most specific. Inputs are never mutated."""
    base_url = method = timeout = None
    headers: dict[str, Any] = {}
    query: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        base_url = layer.base_url if layer.base_url is not None else base_url
        method = layer.method if layer.method is not None else method
        timeout = layer.timeout if layer.timeout is not None else timeout
        headers = deep_merge(headers, layer.headers)
        query = deep_merge(query, layer.query)
    return ClientOptions(base_url=base_url, headers=headers, query=query, timeout=timeout, method=method)


class OptionsContext:
    """
    Process-wide default options.

    Single writer: call ``set`` from application setup code. Every dispatch reads
    the current value when it builds its request, so a replacement only affects
    requests built afterwards.
    """

    def __init__(self) -> None:
        self._options = ClientOptions()

    def get(self) -> ClientOptions:
        return self._options

    def set(self, options: ClientOptions) -> None:
        self._options = options


default_context = OptionsContext()


def set_default_options(options: ClientOptions) -> None:
    default_context.set(options)


def get_default_options() -> ClientOptions:
    return default_context.get()
