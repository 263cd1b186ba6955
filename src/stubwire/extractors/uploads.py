from __future__ import annotations

import ast
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from stubwire.errors import DescriptorError
from stubwire.extractors.annotations import short_name
from stubwire.extractors.descriptors import UploadDescriptor, UploadFieldDescriptor

_FILE = r"(?:\w+\.)*UploadFile"
_SINGLE = re.compile(rf"^{_FILE}$")
_ARRAY = re.compile(rf"^(?:\w+\.)*(?:list|List|Sequence|tuple|Tuple)\[{_FILE}(?:,\.\.\.)?\]$")
_DICT = re.compile(rf"^(?:\w+\.)*(?:dict|Dict|Mapping)\[str,(?:\w+\.)*(?:list|List|Sequence)\[{_FILE}\]\]$")
_OPTIONAL = re.compile(r"^(?:\w+\.)*(?:Optional|NotRequired|Required)\[(.*)\]$")

_INTERCEPTORS = {
    "file_interceptor": "single",
    "files_interceptor": "multiple",
    "file_fields_interceptor": "named_multiple",
}


@dataclass(frozen=True)
class FileTypeInfo:
    is_file: bool = False
    is_array: bool = False
    named: bool = False
    # (field name, is_array) pairs, only for named types declared as a class
    fields: tuple[tuple[str, bool], ...] = ()


@dataclass
class InterceptorInfo:
    shape: str
    field_names: list[str] = field(default_factory=list)
    max_count: Optional[int] = None
    details: dict[str, Optional[int]] = field(default_factory=dict)


def _clean(type_text: str) -> str:
    t = re.sub(r"\s+", "", type_text or "")
    t = re.sub(r"\|None$|^None\|", "", t)
    m = _OPTIONAL.match(t)
    while m:
        t = m.group(1)
        m = _OPTIONAL.match(t)
    return t


def classify_file_type(type_text: str, classes: Mapping[str, ast.ClassDef]) -> FileTypeInfo:
    """
    Match a parameter's declared type text against the three upload forms:
      UploadFile                     -> single
      list[UploadFile]               -> multiple
      SomeFiles (class in the unit)  -> named multiple, one field per
                                        UploadFile / list[UploadFile] attribute
    """
    t = _clean(type_text)
    if _SINGLE.match(t):
        return FileTypeInfo(is_file=True)
    if _ARRAY.match(t):
        return FileTypeInfo(is_file=True, is_array=True)
    if _DICT.match(t):
        return FileTypeInfo(is_file=True, is_array=True, named=True)

    cls = classes.get(t.rsplit(".", 1)[-1])
    if cls is None:
        return FileTypeInfo()

    fields: list[tuple[str, bool]] = []
    for stmt in cls.body:
        if not isinstance(stmt, ast.AnnAssign) or not isinstance(stmt.target, ast.Name):
            continue
        ft = _clean(ast.unparse(stmt.annotation))
        if _SINGLE.match(ft):
            fields.append((stmt.target.id, False))
        elif _ARRAY.match(ft):
            fields.append((stmt.target.id, True))
        else:
            return FileTypeInfo()
    if not fields:
        return FileTypeInfo()
    return FileTypeInfo(is_file=True, is_array=True, named=True, fields=tuple(fields))


def _literal(node: ast.AST, member: str, line: int):
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError):
        raise DescriptorError(
            member, f"upload interceptor argument is not a literal: {ast.unparse(node)}", line
        ) from None


def parse_interceptor(fn: ast.AST, member: str) -> Optional[InterceptorInfo]:
    """Read ``@use_interceptors(file_interceptor(...))`` style configuration from a method."""
    for dec in getattr(fn, "decorator_list", []):
        if not isinstance(dec, ast.Call) or short_name(dec.func) != "use_interceptors":
            continue
        for arg in dec.args:
            if not isinstance(arg, ast.Call):
                continue
            shape = _INTERCEPTORS.get(short_name(arg.func))
            if shape is None:
                continue
            line = getattr(arg, "lineno", 0) or 0
            values = [_literal(a, member, line) for a in arg.args]
            kw = {k.arg: _literal(k.value, member, line) for k in arg.keywords if k.arg}

            if shape == "single":
                name = values[0] if values else kw.get("field_name", "file")
                return InterceptorInfo(shape=shape, field_names=[str(name)])

            if shape == "multiple":
                name = values[0] if values else kw.get("field_name", "files")
                max_count = values[1] if len(values) > 1 else kw.get("max_count")
                return InterceptorInfo(
                    shape=shape,
                    field_names=[str(name)],
                    max_count=int(max_count) if max_count is not None else None,
                )

            specs = values[0] if values else kw.get("fields", [])
            if not isinstance(specs, (list, tuple)):
                raise DescriptorError(member, "file_fields_interceptor expects a list of field specs", line)
            info = InterceptorInfo(shape=shape)
            for spec in specs:
                if not isinstance(spec, dict) or "name" not in spec:
                    raise DescriptorError(member, f"bad upload field spec: {spec!r}", line)
                name = str(spec["name"])
                count = spec.get("max_count", spec.get("maxCount"))
                info.field_names.append(name)
                info.details[name] = int(count) if count is not None else None
            return info
    return None


def build_upload(
    parameter_name: str,
    type_text: str,
    interceptor: Optional[InterceptorInfo],
    classes: Mapping[str, ast.ClassDef],
) -> Optional[UploadDescriptor]:
    """
    Combine the file parameter's type with the interceptor configuration.
    Without an interceptor there is no upload, whatever the parameter type says.
    """
    if interceptor is None:
        return None

    type_info = classify_file_type(type_text, classes)
    fields: list[UploadFieldDescriptor] = []

    if type_info.named and type_info.fields:
        for name, is_array in type_info.fields:
            fields.append(UploadFieldDescriptor(name=name, is_array=is_array, max_count=interceptor.details.get(name)))
    elif type_info.named or interceptor.shape == "named_multiple":
        for name in interceptor.field_names:
            fields.append(UploadFieldDescriptor(name=name, is_array=True, max_count=interceptor.details.get(name)))
    else:
        default = "files" if interceptor.shape == "multiple" else "file"
        name = interceptor.field_names[0] if interceptor.field_names else default
        fields.append(
            UploadFieldDescriptor(
                name=name,
                is_array=type_info.is_array or interceptor.shape == "multiple",
                max_count=interceptor.max_count,
            )
        )

    return UploadDescriptor(shape=interceptor.shape, parameter_name=parameter_name, fields=tuple(fields))  # type: ignore[arg-type]
