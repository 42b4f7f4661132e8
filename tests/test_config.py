"""Tests for configuration discovery, structured errors and logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from mdcite._logging import configure_logging
from mdcite.config import find_config_file, get_cache_dir, get_scope_root
from mdcite.errors import ErrorCode, MdciteError, format_error_json


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("MDCITE_SCOPE", raising=False)
    monkeypatch.delenv("MDCITE_CACHE_DIR", raising=False)


# ─────────────────────────────────────────────────────────────────────────────
# Scope Discovery
# ─────────────────────────────────────────────────────────────────────────────


class TestGetScopeRoot:
    def test_env_var_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        (tmp_path / "project").mkdir()
        (tmp_path / "project" / ".mdcite").write_text("scope: .\n")
        monkeypatch.setenv("MDCITE_SCOPE", str(tmp_path / "elsewhere"))

        assert get_scope_root(tmp_path / "project") == tmp_path / "elsewhere"

    def test_discovers_config_in_parent(self, tmp_path: Path):
        (tmp_path / "vault" / "notes" / "deep").mkdir(parents=True)
        (tmp_path / ".mdcite").write_text("scope: vault\n")

        scope = get_scope_root(tmp_path / "vault" / "notes" / "deep")

        assert scope == (tmp_path / "vault").resolve()

    def test_nearest_config_wins(self, tmp_path: Path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / ".mdcite").write_text("scope: b\n")
        (tmp_path / ".mdcite").write_text("scope: a\n")

        assert get_scope_root(tmp_path / "a" / "b") == (tmp_path / "a" / "b").resolve()

    def test_config_without_scope_key_disables_fallback(self, tmp_path: Path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / ".mdcite").write_text("other: 1\n")
        (tmp_path / ".mdcite").write_text("scope: a\n")

        assert get_scope_root(tmp_path / "a") is None

    def test_empty_config_disables_fallback(self, tmp_path: Path):
        (tmp_path / ".mdcite").write_text("")

        assert get_scope_root(tmp_path) is None

    def test_missing_scope_folder_is_an_error(self, tmp_path: Path):
        (tmp_path / ".mdcite").write_text("scope: missing\n")

        with pytest.raises(MdciteError) as exc_info:
            get_scope_root(tmp_path)

        assert exc_info.value.code == ErrorCode.CONFIG_ERROR
        assert "does not exist" in exc_info.value.message
        assert exc_info.value.details["path"] == str((tmp_path / ".mdcite").resolve())
        assert "suggestion" in exc_info.value.details

    def test_invalid_yaml_is_an_error(self, tmp_path: Path):
        (tmp_path / ".mdcite").write_text("scope: [unclosed\n")

        with pytest.raises(MdciteError) as exc_info:
            get_scope_root(tmp_path)

        assert exc_info.value.code == ErrorCode.CONFIG_ERROR

    def test_non_mapping_is_an_error(self, tmp_path: Path):
        (tmp_path / ".mdcite").write_text("- docs\n- notes\n")

        with pytest.raises(MdciteError, match="must be a YAML mapping"):
            get_scope_root(tmp_path)

    def test_none_without_config(self, tmp_path: Path):
        assert get_scope_root(tmp_path) is None


class TestFindConfigFile:
    def test_finds_file_in_start_dir(self, tmp_path: Path):
        (tmp_path / ".mdcite").write_text("scope: .\n")

        assert find_config_file(tmp_path) == (tmp_path / ".mdcite").resolve()

    def test_depth_limit(self, tmp_path: Path):
        deep = tmp_path / "a" / "b" / "c"
        deep.mkdir(parents=True)
        (tmp_path / ".mdcite").write_text("scope: .\n")

        assert find_config_file(deep, max_depth=2) is None
        assert find_config_file(deep, max_depth=4) == (tmp_path / ".mdcite").resolve()

    def test_directory_named_like_config_ignored(self, tmp_path: Path):
        (tmp_path / "a" / ".mdcite").mkdir(parents=True)

        assert find_config_file(tmp_path / "a") is None


class TestGetCacheDir:
    def test_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MDCITE_CACHE_DIR", str(tmp_path))

        assert get_cache_dir() == tmp_path

    def test_default_under_home(self):
        assert get_cache_dir() == Path.home() / ".cache" / "mdcite" / "extract"


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class TestMdciteError:
    def test_to_dict_without_details(self):
        err = MdciteError(ErrorCode.FILE_NOT_FOUND, "File not found: a.md")

        assert err.to_dict() == {"error": {"code": "FILE_NOT_FOUND", "message": "File not found: a.md"}}
        assert str(err) == "File not found: a.md"

    def test_to_json_with_details(self):
        err = MdciteError(ErrorCode.INVALID_LINE_RANGE, "Invalid line range: 5-3", {"value": "5-3"})

        data = json.loads(err.to_json())

        assert data["error"]["code"] == "INVALID_LINE_RANGE"
        assert data["error"]["details"] == {"value": "5-3"}

    @pytest.mark.parametrize("code", [ErrorCode.PARSE_ERROR, "PARSE_ERROR"])
    def test_format_error_json(self, code):
        data = json.loads(format_error_json(code, "bad", {"path": "x.md"}))

        assert data == {"error": {"code": "PARSE_ERROR", "message": "bad", "details": {"path": "x.md"}}}


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────


class TestConfigureLogging:
    @pytest.fixture
    def pkg_logger(self, monkeypatch: pytest.MonkeyPatch) -> logging.Logger:
        logger = logging.getLogger("mdcite")
        monkeypatch.setattr(logger, "handlers", [])
        monkeypatch.setattr(logger, "propagate", logger.propagate)
        monkeypatch.setattr(logger, "level", logger.level)
        return logger

    def test_idempotent(self, pkg_logger: logging.Logger):
        configure_logging()
        configure_logging()

        assert len(pkg_logger.handlers) == 1
        assert pkg_logger.propagate is False

    def test_level_from_env(self, pkg_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MDCITE_LOG_LEVEL", "debug")

        configure_logging()

        assert pkg_logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_warning(self, pkg_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MDCITE_LOG_LEVEL", "chatty")

        configure_logging()

        assert pkg_logger.level == logging.WARNING

    def test_explicit_level_beats_env(self, pkg_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("MDCITE_LOG_LEVEL", "ERROR")

        configure_logging()
        configure_logging("debug")

        assert pkg_logger.level == logging.DEBUG
        assert len(pkg_logger.handlers) == 1
