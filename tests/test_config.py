import pytest

from revenium_google import Config, ConfigError, Provider, detect_provider, normalize_base_url
from revenium_google.config import DEFAULT_BASE_URL, load_env_files_from


class TestFromEnv:
    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
        monkeypatch.setenv("REVENIUM_METERING_API_KEY", "hak_env")
        monkeypatch.setenv("REVENIUM_METERING_BASE_URL", "https://meter.example.com/meter")
        monkeypatch.setenv("REVENIUM_CAPTURE_PROMPTS", "true")
        monkeypatch.setenv("REVENIUM_DEBUG", "1")

        config = Config.from_env()

        assert config.google_api_key == "g-key"
        assert config.revenium_api_key == "hak_env"
        assert config.revenium_base_url == "https://meter.example.com"
        assert config.capture_prompts
        assert config.debug
        assert not config.vertex_disabled

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        config = Config.from_env()

        assert config.revenium_base_url == DEFAULT_BASE_URL
        assert config.request_timeout == 10.0
        assert not config.capture_prompts

    def test_overrides_win(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("REVENIUM_METERING_API_KEY", "hak_env")

        config = Config.from_env(revenium_api_key="hak_override", capture_prompts=True)

        assert config.revenium_api_key == "hak_override"
        assert config.capture_prompts

    def test_unknown_override_is_rejected(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="unknown configuration option"):
            Config.from_env(api_key="oops")

    def test_env_files(self, monkeypatch, tmp_path):
        project = tmp_path / "project"
        project.mkdir()
        (project / ".env.local").write_text("REVENIUM_METERING_API_KEY=hak_local\n")
        (project / ".env").write_text("REVENIUM_METERING_API_KEY=hak_dotenv\nGOOGLE_API_KEY=g-dotenv\n")
        (tmp_path / ".env").write_text("GOOGLE_CLOUD_LOCATION=europe-west4\n")
        monkeypatch.chdir(project)

        config = Config.from_env()

        assert config.revenium_api_key == "hak_local"
        assert config.google_api_key == "g-dotenv"
        assert config.location == "europe-west4"

    def test_environment_beats_env_files(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("REVENIUM_METERING_API_KEY=hak_file\n")
        monkeypatch.setenv("REVENIUM_METERING_API_KEY", "hak_shell")

        load_env_files_from(tmp_path)

        assert Config.from_env(load_env_files=False).revenium_api_key == "hak_shell"


class TestValidate:
    def test_valid(self):
        Config(revenium_api_key="hak_abc").validate()

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="REVENIUM_METERING_API_KEY"):
            Config().validate()

    def test_bad_prefix(self):
        with pytest.raises(ConfigError, match="invalid Revenium API key format"):
            Config(revenium_api_key="sk_abc").validate()

    def test_timeout_must_be_positive(self):
        with pytest.raises(ConfigError):
            Config(revenium_api_key="hak_abc", request_timeout=0).validate()


@pytest.mark.parametrize(
    "base_url, expected",
    [
        ("https://api.revenium.ai", "https://api.revenium.ai"),
        ("https://api.revenium.ai/", "https://api.revenium.ai"),
        ("https://api.revenium.ai/meter/v2", "https://api.revenium.ai"),
        ("https://api.revenium.ai/meter/v2/", "https://api.revenium.ai"),
        ("https://api.revenium.ai/meter", "https://api.revenium.ai"),
        ("https://api.revenium.ai/v2", "https://api.revenium.ai"),
        ("", ""),
    ],
)
def test_normalize_base_url(base_url, expected):
    assert normalize_base_url(base_url) == expected


def test_empty_base_url_falls_back_to_default():
    assert Config(revenium_base_url="").revenium_base_url == DEFAULT_BASE_URL


class TestDetectProvider:
    def test_no_config(self):
        assert detect_provider(None) is Provider.GOOGLE_AI

    def test_api_key_only(self):
        assert detect_provider(Config(google_api_key="g")) is Provider.GOOGLE_AI

    def test_project_selects_vertex(self):
        config = Config(project_id="my-project", location="us-central1")
        assert detect_provider(config) is Provider.VERTEX_AI

    def test_vertex_can_be_disabled(self):
        config = Config(project_id="my-project", google_api_key="g", vertex_disabled=True)
        assert detect_provider(config) is Provider.GOOGLE_AI
