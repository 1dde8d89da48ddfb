"""Tests for tplc.config and tplc.errors."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tplc.client import CloudClient, make_tls_context
from tplc.cloud import CloudType
from tplc.config import (
    CliLogHandler,
    ca_cert_path,
    configure_logging,
    config_dir,
    credentials_from_env,
    credentials_path,
)
from tplc.errors import (
    ApiError,
    AuthError,
    DeviceNotFoundError,
    DeviceOfflineError,
    InvalidInputError,
    MfaRequiredError,
    NotAuthenticatedError,
    RefreshTokenExpiredError,
    TokenExpiredError,
    TransportError,
)


class TestPaths:
    def test_config_dir_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TPLC_CONFIG_DIR", str(tmp_path))
        assert config_dir() == tmp_path
        assert credentials_path() == tmp_path / "credentials.json"

    def test_default_config_dir(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("TPLC_CONFIG_DIR", raising=False)
        assert config_dir().parts[-2:] == (".config", "tplc")

    def test_ca_file_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TPLC_CA_FILE", str(tmp_path / "ca.pem"))
        assert ca_cert_path() == tmp_path / "ca.pem"


class TestTlsContext:
    @pytest.fixture(autouse=True)
    def fresh_context(self):
        make_tls_context.cache_clear()
        yield
        make_tls_context.cache_clear()

    def test_missing_bundle_uses_system_store(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ):
        monkeypatch.setenv("TPLC_CA_FILE", str(tmp_path / "absent.pem"))
        with caplog.at_level(logging.WARNING, logger="tplc"):
            assert make_tls_context() is not None
        assert "absent.pem" in caplog.text

    def test_malformed_bundle(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        bundle = tmp_path / "ca.pem"
        bundle.write_text("not a certificate")
        monkeypatch.setenv("TPLC_CA_FILE", str(bundle))
        with pytest.raises(TransportError, match="ca.pem") as exc_info:
            make_tls_context()
        assert exc_info.value.to_dict()["error"] == "http"

    async def test_malformed_bundle_surfaces_from_requests(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        bundle = tmp_path / "ca.pem"
        bundle.write_text("not a certificate")
        monkeypatch.setenv("TPLC_CA_FILE", str(bundle))
        with pytest.raises(TransportError, match="Cannot load CA bundle"):
            await CloudClient(CloudType.KASA).get_device_list("tok")


class TestCredentialsFromEnv:
    def test_both_set(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TPLC_USERNAME", "me@example.com")
        monkeypatch.setenv("TPLC_PASSWORD", "secret")
        assert credentials_from_env() == ("me@example.com", "secret")

    def test_empty_password_ignored(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TPLC_USERNAME", "me@example.com")
        monkeypatch.setenv("TPLC_PASSWORD", "")
        assert credentials_from_env() is None


class TestConfigureLogging:
    def test_levels_and_single_handler(self):
        logger = logging.getLogger("tplc")
        before = list(logger.handlers)
        try:
            configure_logging(True)
            configure_logging(True)
            assert logger.level == logging.DEBUG
            added = [h for h in logger.handlers if h not in before]
            assert len(added) == 1

            configure_logging(False)
            assert logger.level == logging.WARNING
            assert isinstance(logger.handlers[-1], CliLogHandler)
        finally:
            for handler in [h for h in logger.handlers if h not in before]:
                logger.removeHandler(handler)

    def test_foreign_handlers_survive(self):
        logger = logging.getLogger("tplc")
        foreign = logging.NullHandler()
        logger.addHandler(foreign)
        try:
            configure_logging(False)
            configure_logging(True)
            assert foreign in logger.handlers
            assert sum(isinstance(h, CliLogHandler) for h in logger.handlers) == 1
        finally:
            for handler in [h for h in logger.handlers if isinstance(h, CliLogHandler)]:
                logger.removeHandler(handler)
            logger.removeHandler(foreign)


class TestErrors:
    @pytest.mark.parametrize(
        ("error", "exit_code"),
        [
            (AuthError("bad"), 2),
            (MfaRequiredError(email="me@example.com"), 2),
            (TokenExpiredError("expired"), 2),
            (RefreshTokenExpiredError("expired"), 2),
            (NotAuthenticatedError(), 2),
            (DeviceNotFoundError("'x'"), 3),
            (DeviceOfflineError("x"), 4),
            (ApiError("x"), 1),
            (InvalidInputError("x"), 1),
            (TransportError("x", status=500), 1),
        ],
    )
    def test_exit_codes(self, error: Exception, exit_code: int):
        assert error.exit_code == exit_code  # type: ignore[attr-defined]

    def test_refresh_expired_is_not_retryable(self):
        assert not isinstance(RefreshTokenExpiredError("x"), TokenExpiredError)

    def test_to_dict(self):
        record = ApiError("Server busy", error_code=-20002).to_dict()
        assert record == {
            "error": "api",
            "message": "API error: Server busy",
            "error_code": -20002,
        }

    def test_to_dict_without_code(self):
        assert NotAuthenticatedError().to_dict() == {
            "error": "not_authenticated",
            "message": "Not authenticated. Run 'tplc login' first.",
        }
