import json
from unittest.mock import MagicMock, patch

import pytest
from pydantic import BaseModel

from jape import Client, ClientError, RequestTooLargeError


class Pet(BaseModel):
    name: str


def _response(status: int, body: bytes = b"") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.content = body
    response.text = body.decode()
    return response


class TestClientRequests:
    @patch("requests.Session.request")
    def test_get_decodes_response(self, mock_request):
        mock_request.return_value = _response(200, b'{"name": "Rex"}')
        client = Client("http://localhost:8080/")

        pet = client.get("/pets/1", Pet)

        assert pet == Pet(name="Rex")
        args, kwargs = mock_request.call_args
        assert args == ("GET", "http://localhost:8080/pets/1")
        assert kwargs["data"] is None
        assert kwargs["auth"] is None
        assert kwargs["timeout"] == 30.0

    @patch("requests.Session.request")
    def test_get_generic_response(self, mock_request):
        mock_request.return_value = _response(200, b'[{"name": "Rex"}, {"name": "Max"}]')
        pets = Client("http://localhost").get("/pets", list[Pet])
        assert [p.name for p in pets] == ["Rex", "Max"]

    @patch("requests.Session.request")
    def test_post_encodes_request(self, mock_request):
        mock_request.return_value = _response(200, b'{"name": "Rex"}')
        client = Client("http://localhost")

        pet = client.post("/pets", Pet(name="Rex"), Pet)

        assert pet.name == "Rex"
        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert json.loads(kwargs["data"]) == {"name": "Rex"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    @patch("requests.Session.request")
    def test_post_without_response(self, mock_request):
        mock_request.return_value = _response(204)
        assert Client("http://localhost").post("/pets", Pet(name="Rex")) is None

    @patch("requests.Session.request")
    def test_put_and_delete(self, mock_request):
        mock_request.return_value = _response(200)
        client = Client("http://localhost")

        assert client.put("/pets/1", Pet(name="Max")) is None
        assert mock_request.call_args[0][0] == "PUT"
        assert client.delete("/pets/1") is None
        assert mock_request.call_args[0][0] == "DELETE"

    @patch("requests.Session.request")
    def test_patch(self, mock_request):
        mock_request.return_value = _response(200, b'{"name": "Max"}')
        pet = Client("http://localhost").patch("/pets/1", {"name": "Max"}, Pet)
        assert pet.name == "Max"
        assert mock_request.call_args[0][0] == "PATCH"

    @patch("requests.Session.request")
    def test_password_sent_as_basic_auth(self, mock_request):
        mock_request.return_value = _response(200, b'"ok"')
        Client("http://localhost", password="hunter2").get("/healthz", str)
        assert mock_request.call_args[1]["auth"] == ("", "hunter2")

    def test_custom_is_a_no_op(self):
        with patch("requests.Session.request") as mock_request:
            Client("http://localhost").custom("GET", "/pets/1/photo", None, bytes)
        mock_request.assert_not_called()


class TestClientErrors:
    @patch("requests.Session.request")
    def test_error_status_raises(self, mock_request):
        mock_request.return_value = _response(404, b"no such pet\n")

        with pytest.raises(ClientError) as exc_info:
            Client("http://localhost").get("/pets/9", Pet)

        assert str(exc_info.value) == "no such pet"
        assert exc_info.value.status == 404
        assert not isinstance(exc_info.value, RequestTooLargeError)

    @patch("requests.Session.request")
    def test_too_large(self, mock_request):
        mock_request.return_value = _response(413, b"request body too large\n")

        with pytest.raises(RequestTooLargeError) as exc_info:
            Client("http://localhost").post("/pets", Pet(name="x" * 100), Pet)

        assert exc_info.value.status == 413
        assert str(exc_info.value) == "request body too large"
