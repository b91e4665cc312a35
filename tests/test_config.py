"""Tests for run configuration and the error hierarchy."""

from pathlib import Path

import pytest

from loadwright.config import DEFAULT_BASE_URL, DEFAULT_PASSWORD, RunConfig
from loadwright.exceptions import ConfigError, LoadwrightError, MetricKindError


class TestRunConfig:
    def test_defaults(self):
        config = RunConfig.from_env({})
        assert config.base_url == DEFAULT_BASE_URL
        assert config.username is None
        assert config.password == DEFAULT_PASSWORD
        assert config.out_dir == Path(".")
        assert config.http_timeout == 60
        assert config.log_level == "INFO"

    def test_from_env(self):
        config = RunConfig.from_env({
            "BASE_URL": "https://api.example.com/",
            "USERNAME": "alice",
            "PASSWORD": "s3cret",
            "OUT_DIR": "/tmp/out",
            "LOADWRIGHT_HTTP_TIMEOUT": "2.5",
            "LOADWRIGHT_LOG_LEVEL": "debug",
        })
        assert config.base_url == "https://api.example.com"
        assert config.username == "alice"
        assert config.out_dir == Path("/tmp/out")
        assert config.http_timeout == 2.5
        assert config.log_level == "DEBUG"
        assert config.url("/healthz") == "https://api.example.com/healthz"
        assert config.url("healthz") == "https://api.example.com/healthz"

    @pytest.mark.parametrize("url", ["localhost:4000", "ftp://x", "http://", "not a url"])
    def test_invalid_base_url(self, url):
        with pytest.raises(ConfigError) as info:
            RunConfig(base_url=url)
        assert info.value.code == "invalid_base_url"
        assert info.value.option == "base_url"

    def test_non_numeric_timeout(self):
        with pytest.raises(ConfigError):
            RunConfig.from_env({"LOADWRIGHT_HTTP_TIMEOUT": "soon"})

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError):
            RunConfig(http_timeout=0)

    def test_replace_ignores_none(self):
        config = RunConfig(base_url="http://a.test").replace(
            base_url=None, username="bob", out_dir="reports"
        )
        assert config.base_url == "http://a.test"
        assert config.username == "bob"
        assert config.out_dir == Path("reports")

    def test_frozen(self):
        config = RunConfig()
        with pytest.raises(AttributeError):
            config.base_url = "http://other"


class TestErrors:
    def test_to_dict(self):
        err = ConfigError("bad", option="base_url", code="invalid_base_url")
        assert isinstance(err, LoadwrightError)
        data = err.to_dict()
        assert data["error"] == "invalid_base_url"
        assert data["message"] == "bad"

    def test_metric_kind_error(self):
        err = MetricKindError("read_duration", "trend", "counter")
        assert "read_duration" in str(err)
        assert err.code == "MetricKindError"
