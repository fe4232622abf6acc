import logging

from pydantic import BaseModel
from werkzeug.test import EnvironBuilder

from jape.context import STATUS_TOO_LARGE, Context
from jape.errors import JapeError


class Pet(BaseModel):
    name: str


def _context(path: str = "/", method: str = "GET", data: bytes | None = None, params: dict | None = None) -> Context:
    request = EnvironBuilder(path=path, method=method, data=data).get_request()
    return Context(request, params)


def _body(jc: Context) -> str:
    return jc.finish().get_data(as_text=True)


class TestEncode:
    def test_json(self):
        jc = _context()
        jc.encode(Pet(name="Rex"))
        response = jc.finish()
        assert response.status_code == 200
        assert response.mimetype == "application/json"
        assert response.get_json() == {"name": "Rex"}

    def test_none_is_no_content(self):
        jc = _context()
        jc.encode(None)
        assert jc.finish().status_code == 204

    def test_bytes_written_as_is(self):
        jc = _context()
        jc.encode(b"\x89PNG")
        response = jc.finish()
        assert response.mimetype == "application/octet-stream"
        assert response.get_data() == b"\x89PNG"

    def test_empty_list_is_json_array(self):
        jc = _context()
        jc.encode([])
        response = jc.finish()
        assert response.status_code == 200
        assert response.mimetype == "application/json"
        assert response.get_data(as_text=True).strip() == "[]"

    def test_empty_dict_is_json_object(self):
        jc = _context()
        jc.encode({})
        response = jc.finish()
        assert response.status_code == 200
        assert response.get_json() == {}
        assert response.get_data(as_text=True).strip() == "{}"

    def test_nothing_written_is_empty_ok(self):
        response = _context().finish()
        assert response.status_code == 200
        assert response.get_data() == b""

    def test_second_write_ignored(self, caplog):
        jc = _context(path="/pets")
        jc.encode(1)
        with caplog.at_level(logging.WARNING, logger="jape.context"):
            jc.encode(2)
        assert _body(jc).strip() == "1"
        assert "superfluous response write for GET /pets" in caplog.text


class TestErrors:
    def test_error_writes_status_and_message(self):
        jc = _context()
        err = jc.error("not found", 404)
        assert isinstance(err, JapeError)
        assert jc.finish().status_code == 404
        assert _body(jc) == "not found\n"

    def test_check_without_error(self):
        jc = _context()
        assert jc.check("couldn't save", None) is None
        assert jc.response is None

    def test_check_with_error(self):
        jc = _context()
        cause = ValueError("disk full")
        err = jc.check("couldn't save", cause)
        assert str(err) == "couldn't save: disk full"
        assert err.__cause__ is cause
        assert jc.finish().status_code == 500
        assert _body(jc) == "couldn't save: disk full\n"


class TestDecode:
    def test_valid_body(self):
        jc = _context(method="POST", data=b'{"name": "Rex"}')
        pet = jc.decode(Pet)
        assert pet == Pet(name="Rex")
        assert jc.response is None

    def test_invalid_body(self):
        jc = _context(method="POST", data=b'{"name": 5}')
        assert jc.decode(Pet) is None
        assert jc.finish().status_code == 400
        assert _body(jc).startswith("couldn't decode request type (Pet): ")

    def test_malformed_json(self):
        jc = _context(method="POST", data=b"{")
        assert jc.decode(Pet) is None
        assert jc.finish().status_code == 400

    def test_body_too_large(self):
        jc = _context(method="POST", data=b'{"name": "' + b"x" * 64 + b'"}')
        assert jc.decode_limit(Pet, 16) is None
        assert jc.finish().status_code == STATUS_TOO_LARGE
        assert _body(jc) == "request body too large\n"

    def test_body_within_limit(self):
        jc = _context(method="POST", data=b'{"name": "Rex"}')
        assert jc.decode_limit(Pet, 64) == Pet(name="Rex")


class TestParams:
    def test_path_param(self):
        jc = _context(params={"name": "rex"})
        assert jc.path_param("name") == "rex"
        assert jc.path_param("missing") == ""

    def test_decode_param(self):
        jc = _context(params={"id": "42"})
        assert jc.decode_param("id", int) == 42

    def test_decode_param_invalid(self):
        jc = _context(params={"id": "abc"})
        assert jc.decode_param("id", int) is None
        assert jc.finish().status_code == 400
        assert _body(jc).startswith('couldn\'t parse param "id": ')

    def test_decode_form(self):
        jc = _context(path="/pets?limit=5")
        assert jc.decode_form("limit", int) == 5

    def test_decode_form_absent_uses_default(self):
        jc = _context(path="/pets")
        assert jc.decode_form("limit", int, 100) == 100
        assert jc.response is None

    def test_decode_form_invalid(self):
        jc = _context(path="/pets?limit=many")
        assert jc.decode_form("limit", int, 100) is None
        assert jc.finish().status_code == 400
        assert _body(jc).startswith('invalid form value "limit": ')

    def test_custom_is_a_no_op(self):
        jc = _context()
        jc.custom(None, bytes)
        assert jc.response is None
