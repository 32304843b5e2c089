"""Test configuration loading."""

import json
from pathlib import Path

import pytest

from reportlens.config import ReportlensConfig, find_config, load_config, read_structured_file
from reportlens.validation import ConfigError


def test_defaults():
    """Test default configuration values."""
    config = ReportlensConfig()

    assert config.data_dir == "."
    assert config.catalog is None
    assert config.max_buckets == 500
    assert config.sql_dialect == "duckdb"
    assert config.log_level == "WARNING"


def test_load_yaml_resolves_paths(tmp_path):
    """Test that relative paths resolve against the config file's directory."""
    config_path = tmp_path / "reportlens.yaml"
    config_path.write_text("data_dir: fixtures\ncatalog: schema/catalog.yaml\nmax_buckets: 365\nlog_level: DEBUG\n")

    config = load_config(config_path)

    assert Path(config.data_dir) == (tmp_path / "fixtures").resolve()
    assert Path(config.catalog) == (tmp_path / "schema" / "catalog.yaml").resolve()
    assert config.max_buckets == 365
    assert config.log_level == "DEBUG"


def test_load_json(tmp_path):
    """Test JSON config files."""
    config_path = tmp_path / "reportlens.json"
    config_path.write_text(json.dumps({"sql_dialect": "postgres"}))

    assert load_config(config_path).sql_dialect == "postgres"


def test_empty_file_gives_defaults(tmp_path):
    """Test that an empty YAML file is an empty configuration."""
    config_path = tmp_path / "reportlens.yaml"
    config_path.write_text("")

    assert load_config(config_path).max_buckets == 500


@pytest.mark.parametrize(
    "name,content,message",
    [
        ("reportlens.yaml", "max_buckets: 0\n", "Invalid config"),
        ("reportlens.yaml", "log_level: LOUD\n", "Invalid config"),
        ("reportlens.yaml", "- a\n- b\n", "must contain a mapping"),
        ("reportlens.yaml", "data_dir: [unclosed\n", "Invalid YAML"),
        ("reportlens.json", "{", "Invalid JSON"),
        ("reportlens.toml", "data_dir = 'x'\n", "Unsupported format"),
    ],
)
def test_invalid_config(tmp_path, name, content, message):
    """Test that unreadable or invalid config files raise ConfigError."""
    config_path = tmp_path / name
    config_path.write_text(content)

    with pytest.raises(ConfigError, match=message):
        load_config(config_path)


def test_missing_file(tmp_path):
    """Test reading a file that does not exist."""
    with pytest.raises(ConfigError, match="File not found"):
        read_structured_file(tmp_path / "nope.yaml")


def test_find_config_searches_upwards(tmp_path):
    """Test discovery from a nested directory."""
    (tmp_path / "reportlens.yml").write_text("max_buckets: 100\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config(nested) == (tmp_path / "reportlens.yml").resolve()


def test_find_config_prefers_yaml(tmp_path):
    """Test the lookup order within one directory."""
    (tmp_path / "reportlens.json").write_text("{}")
    (tmp_path / "reportlens.yaml").write_text("")

    assert find_config(tmp_path).name == "reportlens.yaml"
