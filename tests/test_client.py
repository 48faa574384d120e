"""Tests for the HTTP API client."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from tsdb_cli import TSDBAPIError, TSDBClient, TSDBConnectionError, TSDBError
from tsdb_cli.utils import ResultTable


def _response(status: int = 200, body: Any = None, reason: str = "OK") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.url = "http://localhost:8086/"
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    return response


class _Recorder:
    """Stands in for requests.request and records every call."""

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def query_params(self, index: int = 0) -> dict[str, list[str]]:
        return parse_qs(urlsplit(self.calls[index]["url"]).query)


@pytest.fixture
def client() -> TSDBClient:
    return TSDBClient(host="db.local", port=8086, user="admin", password="secret", database="metrics", timeout=5)


def _install(monkeypatch: pytest.MonkeyPatch, *responses: Any) -> _Recorder:
    recorder = _Recorder(*responses)
    monkeypatch.setattr("tsdb_cli.requests.request", recorder)
    return recorder


def test_constructor_validates_settings() -> None:
    with pytest.raises(ValueError, match="Database"):
        TSDBClient(database="")
    with pytest.raises(ValueError, match="Port"):
        TSDBClient(port=0, database="metrics")


def test_select_query_uses_get(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    body = {"results": [{"statement_id": 0, "series": [{"name": "cpu", "columns": ["time", "v"], "values": [[1, 2]]}]}]}
    recorder = _install(monkeypatch, _response(body=body))

    tables = client.query("SELECT * FROM cpu")

    assert tables == [ResultTable(columns=["time", "v"], rows=[[1, 2]], name="cpu")]
    call = recorder.calls[0]
    assert call["method"] == "GET"
    assert call["url"].startswith("http://db.local:8086/query?")
    assert call["auth"] == ("admin", "secret")
    assert call["timeout"] == 5
    assert recorder.query_params() == {"db": ["metrics"], "q": ["SELECT * FROM cpu"]}


def test_other_statements_use_post(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch, _response(body={"results": [{"statement_id": 0}]}))

    tables = client.query("create database other")

    assert tables == []
    assert recorder.calls[0]["method"] == "POST"
    assert recorder.calls[0]["data"] == {"q": "create database other"}
    assert recorder.query_params() == {"db": ["metrics"]}


def test_query_rejects_empty_string(client: TSDBClient) -> None:
    with pytest.raises(ValueError):
        client.query("")
    with pytest.raises(ValueError):
        client.query("   ")


def test_mixed_statements_use_post(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch, _response(body={"results": [{"statement_id": 0}, {"statement_id": 1}]}))

    client.query("SELECT * FROM cpu; DROP MEASUREMENT cpu")

    assert recorder.calls[0]["method"] == "POST"
    assert recorder.calls[0]["data"] == {"q": "SELECT * FROM cpu; DROP MEASUREMENT cpu"}


def test_read_only_statements_use_get(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch, _response(body={"results": [{"statement_id": 0}, {"statement_id": 1}]}))

    client.query("SELECT * FROM cpu; show measurements;")

    assert recorder.calls[0]["method"] == "GET"


def test_statement_error_raises_api_error(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    _install(monkeypatch, _response(body={"results": [{"statement_id": 0, "error": "measurement not found"}]}))

    with pytest.raises(TSDBAPIError, match="measurement not found"):
        client.query("SELECT * FROM nope")


def test_http_error_carries_status_and_message(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    _install(monkeypatch, _response(status=400, body={"error": "error parsing query"}, reason="Bad Request"))

    with pytest.raises(TSDBAPIError) as excinfo:
        client.query("SELECT")

    assert excinfo.value.status_code == 400
    assert excinfo.value.response_data == {"error": "error parsing query"}
    assert str(excinfo.value) == "HTTP 400: error parsing query"


def test_http_error_without_json_uses_reason(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    response = _response(status=502, reason="Bad Gateway")
    response._content = b"<html>oops</html>"
    _install(monkeypatch, response)

    with pytest.raises(TSDBAPIError, match="HTTP 502: Bad Gateway"):
        client.get_list_series()


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.ConnectionError("refused"), requests.exceptions.Timeout("slow")],
)
def test_network_errors_raise_connection_error(
    monkeypatch: pytest.MonkeyPatch, client: TSDBClient, error: Exception
) -> None:
    _install(monkeypatch, error)

    with pytest.raises(TSDBConnectionError):
        client.get_list_series()


def test_get_list_series_returns_names_in_order(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    body = {
        "results": [
            {"statement_id": 0, "series": [{"name": "measurements", "columns": ["name"], "values": [["mem"], ["cpu"]]}]}
        ]
    }
    recorder = _install(monkeypatch, _response(body=body))

    assert client.get_list_series() == ["mem", "cpu"]
    assert recorder.query_params()["q"] == ["SHOW MEASUREMENTS"]


def test_get_list_series_of_empty_database(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    _install(monkeypatch, _response(body={"results": [{"statement_id": 0}]}))

    assert client.get_list_series() == []


def test_delete_series_quotes_name(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch, _response(body={"results": [{"statement_id": 0}]}))

    client.delete_series('odd"name')

    assert recorder.calls[0]["method"] == "POST"
    assert recorder.calls[0]["data"] == {"q": 'DROP MEASUREMENT "odd\\"name"'}


def test_write_points_sends_line_protocol(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch, _response(status=204, reason="No Content"))

    written = client.write_points("cpu", [{"time": 1000, "count": 1}, {"time": 2000, "count": 2}])

    assert written == 2
    call = recorder.calls[0]
    assert call["method"] == "POST"
    assert urlsplit(call["url"]).path == "/write"
    assert recorder.query_params() == {"db": ["metrics"], "precision": ["ms"]}
    assert call["data"] == b"cpu count=1i 1000\ncpu count=2i 2000"


def test_write_points_skips_empty_batches(monkeypatch: pytest.MonkeyPatch, client: TSDBClient) -> None:
    recorder = _install(monkeypatch)

    assert client.write_points("cpu", []) == 0
    assert recorder.calls == []


@pytest.mark.parametrize(
    "body",
    [
        {"results": [{"series": [{"columns": ["name"], "values": [[]]}]}]},
        {"results": [{"series": [{"name": "measurements"}]}]},
        {"results": ["oops"]},
        {"results": 5},
    ],
)
def test_malformed_response_raises_tsdb_error(
    monkeypatch: pytest.MonkeyPatch, client: TSDBClient, body: Any
) -> None:
    _install(monkeypatch, _response(body=body))

    with pytest.raises(TSDBError):
        client.get_list_series()
