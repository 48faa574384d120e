"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from tsdb_cli import cli
from tsdb_cli.utils import ResultTable


class _FakeTSDBClient:
    instances: list["_FakeTSDBClient"] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.database = kwargs["database"]
        _FakeTSDBClient.instances.append(self)

    def get_list_series(self) -> list[str]:
        return ["cpu", "mem"]

    def query(self, query: str) -> list[ResultTable]:
        return [ResultTable(columns=["time", "value"], rows=[[1, 0.5]], name="cpu")]


@pytest.fixture
def config_file(tmp_path: Path) -> str:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"host": "db.local", "port": 8086, "user": "", "password": "", "database": "metrics"})
    )
    return str(path)


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[_FakeTSDBClient]:
    _FakeTSDBClient.instances = []
    monkeypatch.setattr("tsdb_cli.config.TSDBClient", _FakeTSDBClient)
    return _FakeTSDBClient


def _exit_code(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    return excinfo.value.code


@pytest.mark.parametrize(
    "host, expected",
    [
        ("http://db", ("http", "db")),
        ("https://db", ("https", "db")),
        ("db", (None, "db")),
        ("", (None, "")),
    ],
)
def test_detect_scheme_in_host(host: str, expected: tuple[Any, str]) -> None:
    assert cli.detect_scheme_in_host(host) == expected


def test_parser_splits_command_and_raw_arguments() -> None:
    args = cli.build_parser().parse_args(["-H", "db", "-F", "psql", "query", "SELECT * FROM cpu"])

    assert args.host == "db"
    assert args.format == "psql"
    assert args.command == "query"
    assert args.args == ["SELECT * FROM cpu"]


def test_resolve_overrides_takes_scheme_from_host() -> None:
    args = cli.build_parser().parse_args(["-H", "https://db", "-p", "pw", "-u", "me", "series"])

    overrides = cli.resolve_overrides(args)

    assert overrides["host"] == "db"
    assert overrides["scheme"] == "https"
    assert overrides["user"] == "me"
    assert overrides["password"] == "pw"


def test_explicit_scheme_wins_over_host_prefix() -> None:
    args = cli.build_parser().parse_args(["-H", "https://db", "--scheme", "http", "series"])

    assert cli.resolve_overrides(args)["scheme"] == "http"


def test_user_without_password_prompts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "getpass", lambda prompt: "typed")
    args = cli.build_parser().parse_args(["-u", "me", "series"])

    assert cli.resolve_overrides(args)["password"] == "typed"


def test_unknown_command_exits_2(capsys: pytest.CaptureFixture[str], fake_client: Any) -> None:
    assert _exit_code(["nope"]) == 2

    assert "usage:" in capsys.readouterr().err
    assert fake_client.instances == []


def test_bad_arguments_exit_2(capsys: pytest.CaptureFixture[str], config_file: str, fake_client: Any) -> None:
    assert _exit_code(["-c", config_file, "backfill", "cpu", "2020-01-02", "2020-01-01", "10", "{}"]) == 2

    assert "is after end" in capsys.readouterr().err
    assert fake_client.instances == []


def test_series_lists_names(capsys: pytest.CaptureFixture[str], config_file: str, fake_client: Any) -> None:
    assert _exit_code(["-c", config_file, "-d", "other", "series"]) == 0

    assert capsys.readouterr().out == "cpu\nmem\n"
    assert fake_client.instances[0].kwargs["database"] == "other"
    assert fake_client.instances[0].kwargs["host"] == "db.local"


def test_query_prints_table(capsys: pytest.CaptureFixture[str], config_file: str, fake_client: Any) -> None:
    assert _exit_code(["-c", config_file, "query", "SELECT * FROM cpu"]) == 0

    assert capsys.readouterr().out == "TIME  VALUE\n   1    0.5\n"


def test_missing_config_exits_1(capsys: pytest.CaptureFixture[str], tmp_path: Path, fake_client: Any) -> None:
    assert _exit_code(["-c", str(tmp_path / "missing.json"), "series"]) == 1

    assert "Config file not found" in capsys.readouterr().err


def test_non_finite_template_exits_2_without_connecting(
    capsys: pytest.CaptureFixture[str], config_file: str, fake_client: Any
) -> None:
    argv = ["-c", config_file, "backfill", "cpu", "2020-01-01", "2020-01-02", "1000", '{"x": NaN}']

    assert _exit_code(argv) == 2

    assert "invalid template" in capsys.readouterr().err
    assert fake_client.instances == []
