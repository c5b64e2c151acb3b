import json

import httpx
import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine

from packagebug import cli
from packagebug.config.settings import Settings
from packagebug.storage.token_store import TokenStore


def test_rate_command_prints_budget(monkeypatch, capsys):
    monkeypatch.setattr(
        "packagebug.ingestion.github_client.http_get",
        lambda url, **_k: httpx.Response(
            200,
            request=httpx.Request("GET", url),
            headers={"X-RateLimit-Remaining": "12", "X-RateLimit-Reset": "1700000000"},
        ),
    )

    assert cli.main(["rate"]) == 0

    out = capsys.readouterr().out.strip().splitlines()[-1]
    assert json.loads(out) == {"remaining": 12, "reset_at": 1700000000}


def test_fetch_command_refreshes_one_package(monkeypatch, capsys, tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'tokens.db'}")
    store = TokenStore(engine)
    store.create_schema()
    monkeypatch.setattr(cli.TokenStore, "from_settings", classmethod(lambda _cls, _settings: store))
    monkeypatch.setattr(cli, "get_settings", lambda: Settings())
    monkeypatch.setattr(
        "packagebug.ingestion.github_client.http_get",
        lambda url, **_k: httpx.Response(
            200, request=httpx.Request("GET", url), json=[], headers={"ETag": '"e1"'}
        ),
    )

    assert cli.main(["fetch", "github.com/pyk/byten"]) == 0

    assert capsys.readouterr().out.strip().endswith("github.com/pyk/byten: updated")
    assert store.get_token("github.com/pyk/byten") == '"e1"'


def test_fetch_command_rejects_bad_package_path():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["fetch", "github.com/pyk"])


@pytest.mark.parametrize(
    "argv",
    [
        ["run", "--wait-seconds", "30"],
        ["run", "--wait-seconds", "-1"],
        ["run", "--max-concurrency", "0"],
    ],
)
def test_run_rejects_out_of_range_overrides(monkeypatch, capsys, argv):
    def unexpected(_settings):
        raise AssertionError("dispatcher must not be built")

    monkeypatch.setattr(cli, "get_settings", lambda: Settings())
    monkeypatch.setattr(cli, "build_dispatcher", unexpected)

    assert cli.main(argv) == 2
    assert "invalid run options" in capsys.readouterr().out


def test_run_overrides_are_applied_within_range():
    args = cli.build_parser().parse_args(["run", "--wait-seconds", "20", "--max-concurrency", "3"])

    settings = cli._apply_overrides(Settings(), args)

    assert settings.queue.wait_seconds == 20
    assert settings.worker.max_concurrency == 3
    assert settings.github == Settings().github


def test_out_of_range_wait_seconds_fails_validation():
    args = cli.build_parser().parse_args(["run", "--wait-seconds", "30"])

    with pytest.raises(ValidationError):
        cli._apply_overrides(Settings(), args)
