"""Tests for settings loading and SELLER_* environment overrides."""
import pytest

from config.settings import (
    DEFAULT_SIGNAL_API_URL, GatewayConfig, QueueConfig, load_settings, positive_number,
)

QUEUE_ENV = ("SELLER_MAX_CONCURRENCY", "SELLER_MAX_ATTEMPTS", "SELLER_RETRY_DELAY_MS",
             "SIGNAL_API_URL", "SQDGN_API_KEY", "ACP_GATEWAY_URL", "ACP_GATEWAY_TOKEN")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in QUEUE_ENV:
        monkeypatch.delenv(name, raising=False)


class TestPositiveNumber:
    @pytest.mark.parametrize("raw,expected", [
        ("7", 7),
        (7, 7),
        ("2500", 2500),
        ("1.9", 1),
        (None, 3),
        ("", 3),
        ("abc", 3),
        ("0", 3),
        ("-4", 3),
    ])
    def test_parse(self, raw, expected):
        assert positive_number(raw, 3) == expected


class TestDefaults:
    def test_queue_defaults(self):
        cfg = QueueConfig()
        assert (cfg.max_concurrency, cfg.max_attempts, cfg.base_retry_delay_ms) == (3, 5, 5_000)

    def test_gateway_default_endpoints(self):
        cfg = GatewayConfig()
        assert cfg.endpoints["respond_job"] == "/jobs/{job_id}/respond"
        assert cfg.endpoints["deliver_job"] == "/jobs/{job_id}/deliver"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.queue == QueueConfig()
        assert settings.signals.api_url == DEFAULT_SIGNAL_API_URL
        assert settings.gateway.base_url == ""


class TestLoadSettings:
    def test_yaml_with_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SQDGN_API_KEY", "sq-123")
        monkeypatch.setenv("ACP_GATEWAY_URL", "https://gateway.test")
        path = tmp_path / "settings.yaml"
        path.write_text(
            "app_name: TestSeller\n"
            "queue:\n"
            "  max_concurrency: 4\n"
            "  max_attempts: 2\n"
            "  base_retry_delay_ms: 250\n"
            "signals:\n"
            "  api_key: ${SQDGN_API_KEY}\n"
            "  max_attempts: 4\n"
            "gateway:\n"
            "  base_url: ${ACP_GATEWAY_URL}\n"
            "  endpoints:\n"
            "    deliver_job: /custom/{job_id}\n"
        )

        settings = load_settings(str(path))

        assert settings.app_name == "TestSeller"
        assert settings.queue == QueueConfig(max_concurrency=4, max_attempts=2, base_retry_delay_ms=250)
        assert settings.signals.api_key == "sq-123"
        assert settings.signals.max_attempts == 4
        assert settings.gateway.base_url == "https://gateway.test"
        assert settings.gateway.endpoints["deliver_job"] == "/custom/{job_id}"
        assert settings.gateway.endpoints["respond_job"] == "/jobs/{job_id}/respond"

    def test_unset_env_var_substitutes_empty(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("gateway:\n  base_url: ${ACP_GATEWAY_URL}\n")
        assert load_settings(str(path)).gateway.base_url == ""

    def test_invalid_yaml_queue_values_fall_back(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("queue:\n  max_concurrency: zero\n  max_attempts: -1\n")
        settings = load_settings(str(path))
        assert settings.queue.max_concurrency == 3
        assert settings.queue.max_attempts == 5

    def test_env_overrides_queue(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SELLER_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("SELLER_MAX_ATTEMPTS", "not-a-number")
        monkeypatch.setenv("SELLER_RETRY_DELAY_MS", "1000")
        path = tmp_path / "settings.yaml"
        path.write_text("queue:\n  max_attempts: 6\n")

        settings = load_settings(str(path))

        assert settings.queue.max_concurrency == 8
        assert settings.queue.max_attempts == 6
        assert settings.queue.base_retry_delay_ms == 1000

    def test_env_overrides_signal_source(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SIGNAL_API_URL", "https://signals.test/feed")
        monkeypatch.setenv("SQDGN_API_KEY", "sq-env")
        settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.signals.api_url == "https://signals.test/feed"
        assert settings.signals.api_key == "sq-env"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("app_name: FromEnv\n")
        monkeypatch.setenv("SELLER_CONFIG", str(path))
        assert load_settings().app_name == "FromEnv"
