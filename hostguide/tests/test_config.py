"""Configuration, JSON logging and access-log redaction."""

import importlib
import json
import logging

import pytest

from hostguide import config
from hostguide.access_log import request_line_safe
from hostguide.logging_config import JSONLogFormatter


class TestApiEnv:
    def test_invalid_api_env_fails_fast(self, monkeypatch):
        monkeypatch.setenv("API_ENV", "production")
        try:
            with pytest.raises(RuntimeError, match="Invalid API_ENV"):
                importlib.reload(config)
        finally:
            monkeypatch.setenv("API_ENV", "dev")
            importlib.reload(config)

    def test_derived_urls(self, monkeypatch):
        monkeypatch.setenv("HOSTGUIDE_PUBLIC_BASE_URL", "https://guide.example/")
        monkeypatch.setenv("HOSTGUIDE_IMAGES_BUCKET", "imgs")
        monkeypatch.delenv("HOSTGUIDE_STORAGE_URL_PREFIX", raising=False)
        monkeypatch.delenv("HOSTGUIDE_ISSUER_URL", raising=False)
        try:
            importlib.reload(config)
            assert config.PUBLIC_BASE_URL == "https://guide.example"
            assert config.STORAGE_URL_PREFIX == "https://guide.example/storage/v1/object/imgs/"
            assert config.ISSUER_URL == "https://guide.example/functions/v1/get-image"
        finally:
            monkeypatch.undo()
            importlib.reload(config)


class TestRequestLineSafe:
    def test_query_token_redacted(self):
        assert (
            request_line_safe("/", "path=user-aaaa/beach.png&token=secret")
            == "/?path=user-aaaa/beach.png&token=REDACTED"
        )

    def test_view_path_redacted(self):
        assert request_line_safe("/api/view/secret/pages/p1", "") == "/api/view/REDACTED/pages/p1"

    def test_other_paths_untouched(self):
        assert request_line_safe("/api/spaces", "") == "/api/spaces"


class TestJSONLogFormatter:
    def test_request_extras(self):
        record = logging.LogRecord("hostguide.access_log", logging.INFO, __file__, 1, "GET /", None, None)
        record.path = "/api/spaces"
        record.status = 200
        record.duration = 0.0123
        out = json.loads(JSONLogFormatter().format(record))
        assert out["level"] == "INFO"
        assert out["logger"] == "hostguide.access_log"
        assert out["message"] == "GET /"
        assert out["path"] == "/api/spaces"
        assert out["status"] == 200
        assert out["duration_ms"] == 12.3

    def test_access_log_never_contains_token(self, client, backend, caplog):
        space = backend.create_space("user-aaaa", "Beach House")
        with caplog.at_level(logging.INFO, logger="hostguide.access_log"):
            client.get(f"/api/view/{space.access_token}")
        access = [r for r in caplog.records if r.name == "hostguide.access_log"]
        assert access
        assert all(space.access_token not in r.getMessage() for r in access)
        assert all(space.access_token not in r.path for r in access)
