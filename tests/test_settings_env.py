import pydantic
import pytest

from packagebug.config.settings import Settings, get_settings


@pytest.fixture()
def fresh_settings(monkeypatch, tmp_path):
    # Keep a developer's real `.env` out of the picture.
    monkeypatch.setenv("PACKAGEBUG_ENV_FILE", str(tmp_path / "missing.env"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_match_packaged_yaml(fresh_settings, monkeypatch):
    for name in ["PACKAGEBUG_MAX_CONCURRENCY", "PACKAGEBUG_POLL_WAIT_SECONDS", "DATABASE_URL"]:
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.worker.max_concurrency == 10
    assert settings.queue.wait_seconds == 10
    assert settings.github.root_endpoint == "https://api.github.com"
    assert settings.github.supported_host == "github.com"


def test_environment_overrides_are_applied(fresh_settings, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/packagebug")
    monkeypatch.setenv("PACKAGEBUG_SQS_ENDPOINT", "https://sqs.test/123/packages")
    monkeypatch.setenv("PACKAGEBUG_SQS_REGION", "ap-southeast-1")
    monkeypatch.setenv("PACKAGEBUG_GITHUB_ROOT_ENDPOINT", "https://gh.test")
    monkeypatch.setenv("PACKAGEBUG_GITHUB_CLIENT_ID", "id")
    monkeypatch.setenv("PACKAGEBUG_GITHUB_CLIENT_SECRET", "secret")
    monkeypatch.setenv("PACKAGEBUG_MAX_CONCURRENCY", "4")
    monkeypatch.setenv("PACKAGEBUG_POLL_WAIT_SECONDS", "20")

    settings = get_settings()

    assert settings.store.url == "postgresql://u:p@db/packagebug"
    assert settings.queue.endpoint == "https://sqs.test/123/packages"
    assert settings.queue.region == "ap-southeast-1"
    assert settings.github.root_endpoint == "https://gh.test"
    assert settings.github.client_id == "id"
    assert settings.github.client_secret == "secret"
    assert settings.worker.max_concurrency == 4
    assert settings.queue.wait_seconds == 20


def test_config_path_replaces_packaged_defaults(fresh_settings, monkeypatch, tmp_path):
    monkeypatch.delenv("PACKAGEBUG_MAX_CONCURRENCY", raising=False)
    path = tmp_path / "packagebug.yaml"
    path.write_text("worker:\n  max_concurrency: 3\n", encoding="utf-8")
    monkeypatch.setenv("PACKAGEBUG_CONFIG_PATH", str(path))

    assert get_settings().worker.max_concurrency == 3


def test_settings_are_frozen():
    settings = Settings()
    with pytest.raises(pydantic.ValidationError):
        settings.worker = settings.worker.model_copy(update={"max_concurrency": 2})


@pytest.mark.parametrize("payload", [{"worker": {"max_concurrency": 0}}, {"queue": {"wait_seconds": 21}}])
def test_out_of_range_values_are_rejected(payload):
    with pytest.raises(pydantic.ValidationError):
        Settings.model_validate(payload)
