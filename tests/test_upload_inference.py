import pytest

from stubwire.extractors.services import extract_services_from_source


def _upload(src: str):
    result = extract_services_from_source(src)
    assert result.errors == []
    return result.services[0].methods[0].upload


def test_single_file_upload():
    src = """
@controller("files")
class FilesController:
    @post("avatar")
    @use_interceptors(file_interceptor("avatar"))
    def avatar(self, file: UploadFile = UploadedFile()):
        ...
"""
    upload = _upload(src)
    assert upload.shape == "single"
    assert upload.parameter_name == "file"
    assert [(f.name, f.is_array, f.max_count) for f in upload.fields] == [("avatar", False, None)]


def test_multiple_files_take_interceptor_field_and_max_count():
    src = """
@controller("files")
class FilesController:
    @post("many")
    @use_interceptors(files_interceptor("photos", 5))
    def many(self, files: Annotated[list[UploadFile], UploadedFiles()]):
        ...
"""
    upload = _upload(src)
    assert upload.shape == "multiple"
    assert [(f.name, f.is_array, f.max_count) for f in upload.fields] == [("photos", True, 5)]


def test_named_multiple_from_class_fields():
    src = """
class ProfileFiles:
    avatar: UploadFile
    documents: list[UploadFile]

@controller("profile")
class ProfileController:
    @post()
    @use_interceptors(file_fields_interceptor([
        {"name": "avatar", "max_count": 1},
        {"name": "documents", "max_count": 3},
    ]))
    def upload(self, files: ProfileFiles = UploadedFiles(), meta: dict = Body()):
        ...
"""
    upload = _upload(src)
    assert upload.shape == "named_multiple"
    assert [(f.name, f.is_array, f.max_count) for f in upload.fields] == [
        ("avatar", False, 1),
        ("documents", True, 3),
    ]


def test_named_multiple_from_dict_type_uses_interceptor_names():
    src = """
@controller("profile")
class ProfileController:
    @post()
    @use_interceptors(file_fields_interceptor([{"name": "a"}, {"name": "b", "maxCount": 2}]))
    def upload(self, files: dict[str, list[UploadFile]] = UploadedFiles()):
        ...
"""
    upload = _upload(src)
    assert [(f.name, f.is_array, f.max_count) for f in upload.fields] == [
        ("a", True, None),
        ("b", True, 2),
    ]


def test_no_interceptor_means_no_upload():
    src = """
@controller("files")
class FilesController:
    @post()
    def plain(self, file: UploadFile = UploadedFile()):
        ...
"""
    assert _upload(src) is None


def test_interceptor_defaults_field_name():
    src = """
@controller("files")
class FilesController:
    @post()
    @use_interceptors(file_interceptor())
    def one(self, file: Optional[UploadFile] = UploadedFile()):
        ...
"""
    upload = _upload(src)
    assert upload.fields[0].name == "file"
    assert upload.fields[0].is_array is False


@pytest.mark.parametrize("arg", ["FIELD", "[spec for spec in SPECS]"])
def test_non_literal_interceptor_argument_is_a_member_error(arg):
    src = f"""
@controller("files")
class FilesController:
    @post()
    @use_interceptors(file_fields_interceptor({arg}))
    def bad(self, files: dict[str, list[UploadFile]] = UploadedFiles()):
        ...

    @get("ok")
    def ok(self):
        ...
"""
    result = extract_services_from_source(src)
    assert [e.member for e in result.errors] == ["FilesController.bad"]
    assert [m.name for m in result.services[0].methods] == ["ok"]
