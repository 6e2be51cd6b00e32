"""Tests for YAML-backed settings."""

from unittest.mock import patch

import pytest

from docsql.core.config import config_loader
from docsql.setting.setting import RouterSettings, SandboxSettings, SearchSettings


@pytest.fixture
def config_dir(tmp_path):
    """Point the loader at a temporary config directory."""
    config_loader.reload_configs()
    with patch.object(config_loader, "get_config_path", return_value=tmp_path):
        yield tmp_path
    config_loader.reload_configs()


class TestSettings:
    """Tests for settings loading."""

    def test_values_from_yaml(self, config_dir):
        (config_dir / "docsql.yaml").write_text(
            "search:\n  top_k: 8\n  rrf_k: 30\nsandbox:\n  row_limit: 250\nrouter:\n  evidence_only: true\n"
        )
        assert SearchSettings().top_k == 8
        assert SearchSettings().rrf_k == 30
        assert SandboxSettings().row_limit == 250
        assert RouterSettings().evidence_only is True

    def test_defaults_when_file_missing(self, config_dir):
        search = SearchSettings()
        sandbox = SandboxSettings()
        assert search.top_k == 5
        assert search.rrf_k == 60
        assert sandbox.row_limit == 1000
        assert sandbox.statement_timeout_ms == 5000
        assert RouterSettings().history_turns == 6

    def test_malformed_yaml_falls_back(self, config_dir):
        (config_dir / "docsql.yaml").write_text("search: [unclosed\n")
        assert SearchSettings().top_k == 5

    def test_non_mapping_section_ignored(self, config_dir):
        (config_dir / "docsql.yaml").write_text("search: 12\n")
        assert SearchSettings().top_k == 5
        assert config_loader.get_config_value("search", "top_k", 3) == 3

    def test_encryption_key_from_environment(self, config_dir, monkeypatch):
        monkeypatch.setenv("DSN_ENCRYPTION_KEY", "a2V5")
        assert SandboxSettings().encryption_key == "a2V5"
