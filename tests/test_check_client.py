import ast

from jape.check.client import CallExtractor
from jape.check.report import Reporter
from jape.check.source import load_package
from jape.check.typeinfo import TypeInfo


def _extract(write_package, source: str, client_prefix: str = ""):
    root = write_package({"client.py": source})
    package = load_package(root)
    reporter = Reporter()
    extractor = CallExtractor(package, TypeInfo(package), reporter, client_prefix)
    calls = extractor.extract()
    return extractor, calls, [d.message for d in reporter.diagnostics]


class TestCallRecognition:
    def test_methods_on_client_attribute(self, write_package):
        extractor, calls, messages = _extract(write_package, """
            from jape import Client


            class PetClient:
                def __init__(self, url: str):
                    self.c = Client(url)

                def pet(self, pet_id: int):
                    return self.c.get(f"/pets/{pet_id}", dict)

                def add(self, pet):
                    return self.c.post("/pets", pet, dict)

                def remove(self, pet_id: int):
                    self.c.delete(f"/pets/{pet_id}")
        """)
        assert messages == []
        assert extractor.found == 3
        assert [c.key() for c in calls] == ["GET /pets/%s", "POST /pets", "DELETE /pets/%s"]

    def test_client_parameter(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def health(c: Client) -> str:
                return c.get("/healthz", str)
        """)
        assert [str(c) for c in calls] == ["GET /healthz"]

    def test_client_subclass(self, write_package):
        _, calls, _ = _extract(write_package, """
            import jape


            class PetClient(jape.Client):
                def health(self) -> str:
                    return self.get("/healthz", str)
        """)
        assert [str(c) for c in calls] == ["GET /healthz"]

    def test_other_receivers_ignored(self, write_package):
        extractor, calls, _ = _extract(write_package, """
            import requests


            def fetch(session: requests.Session):
                return session.get("/pets")
        """)
        assert calls == []
        assert extractor.found == 0

    def test_custom_method(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def photo(c: Client, pet_id: int) -> None:
                c.custom("GET", f"/pets/{pet_id}/photo", None, bytes)
        """)
        assert [c.key() for c in calls] == ["GET /pets/%s/photo"]

    def test_keyword_arguments(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def add(c: Client, pet) -> dict:
                return c.post(route="/pets", req=pet, resp=dict)
        """)
        call = calls[0]
        assert ast.unparse(call.request) == "pet"
        assert ast.unparse(call.response) == "dict"


class TestCallParameters:
    def test_path_and_query_parameters(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def toys(c: Client, pet_id: int, limit: int) -> list:
                return c.get(f"/pets/{pet_id}/toys?limit={limit}&sort=name", list)
        """)
        call = calls[0]
        assert call.key() == "GET /pets/%s/toys"
        assert [ast.unparse(p) for p in call.path_params] == ["pet_id"]
        assert {k: ast.unparse(v) for k, v in call.query_params.items()} == {"limit": "limit"}

    def test_omitted_response_is_none(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def add(c: Client, pet) -> None:
                c.post("/pets", pet)
        """)
        response = calls[0].response
        assert isinstance(response, ast.Constant)
        assert response.value is None

    def test_delete_has_no_bodies(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def remove(c: Client) -> None:
                c.delete("/pets/1")
        """)
        assert calls[0].request is None
        assert calls[0].response is None

    def test_client_prefix_trimmed(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def health(c: Client) -> str:
                return c.get("/api/healthz", str)
        """, client_prefix="/api")
        assert calls[0].path == "/healthz"

    def test_parameter_count_mismatch(self, write_package):
        extractor, calls, messages = _extract(write_package, """
            from jape import Client


            def pet(c: Client) -> dict:
                return c.get("/pets/%s?limit=%s", dict)
        """)
        assert calls == []
        assert extractor.found == 1
        assert messages == ["route contains (1 path + 1 form) = 2 parameters, but 0 arguments are supplied"]

    def test_opaque_query_string(self, write_package):
        extractor, calls, messages = _extract(write_package, """
            from urllib.parse import urlencode

            from jape import Client


            def pets(c: Client, limit: int) -> str:
                return c.get("/pets?" + urlencode({"limit": limit}), str)
        """)
        assert messages == []
        assert calls[0].key() == "GET /pets"
        assert calls[0].path_params == []
        assert calls[0].query_params == {}

    def test_opaque_route_suffix(self, write_package):
        _, calls, messages = _extract(write_package, """
            from jape import Client


            def pet(c: Client, suffix) -> dict:
                return c.get("/pets" + suffix, dict)
        """)
        assert messages == []
        assert calls[0].path == "/pets%s"

    def test_formatted_value_outside_a_segment(self, write_package):
        _, calls, messages = _extract(write_package, """
            from jape import Client


            def pet(c: Client, pet_id: int) -> dict:
                return c.get(f"/pets-{pet_id}", dict)
        """)
        assert calls == []
        assert messages == ["route contains (0 path + 0 form) = 0 parameters, but 1 arguments are supplied"]

    def test_calls_sorted_by_position(self, write_package):
        _, calls, _ = _extract(write_package, """
            from jape import Client


            def b(c: Client) -> None:
                c.delete("/b")


            def a(c: Client) -> None:
                c.delete("/a")
        """)
        assert [c.path for c in calls] == ["/b", "/a"]
