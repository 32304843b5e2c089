"""Configuration file format for reportlens."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from reportlens.core.time_buckets import DEFAULT_MAX_BUCKETS
from reportlens.validation import ConfigError

CONFIG_NAMES = ("reportlens.yaml", "reportlens.yml", "reportlens.json")


class ReportlensConfig(BaseModel):
    """reportlens configuration file format.

    Can be saved as reportlens.yaml or reportlens.json.

    Example YAML:
        data_dir: ./data
        catalog: ./catalog.yaml
        max_buckets: 365
        sql_dialect: postgres
        log_level: INFO
    """

    data_dir: str = Field(default=".", description="Directory containing <entity>.json fixtures")
    catalog: str | None = Field(default=None, description="Catalog file (defaults to the bundled billing catalog)")
    max_buckets: int = Field(
        default=DEFAULT_MAX_BUCKETS, gt=0, description="Bucket count above which ranges are flagged"
    )
    sql_dialect: str = Field(default="duckdb", description="Dialect of SQL previews")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="WARNING", description="Logging level")

    def resolve_paths(self, base_dir: Path | None = None) -> "ReportlensConfig":
        """Resolve relative paths to absolute paths.

        Args:
            base_dir: Base directory for resolving relative paths (defaults to cwd)

        Returns:
            New config with resolved paths
        """
        base = base_dir or Path.cwd()

        data_path = Path(self.data_dir)
        if not data_path.is_absolute():
            data_path = (base / data_path).resolve()

        catalog = self.catalog
        if catalog is not None:
            catalog_path = Path(catalog)
            if not catalog_path.is_absolute():
                catalog_path = (base / catalog_path).resolve()
            catalog = str(catalog_path)

        return self.model_copy(update={"data_dir": str(data_path), "catalog": catalog})


def read_structured_file(path: Path) -> dict:
    """Read a YAML or JSON mapping.

    Raises:
        ConfigError: If the file is missing, has an unsupported suffix, or does not hold a mapping
    """
    import json

    if not path.exists():
        raise ConfigError(f"File not found: {path}")

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        import yaml

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigError(f"Unsupported format: {suffix}. Use .yaml, .yml, or .json")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(config_path: Path) -> ReportlensConfig:
    """Load configuration from YAML or JSON file.

    Args:
        config_path: Path to config file (reportlens.yaml or reportlens.json)

    Returns:
        Loaded and validated configuration, paths resolved against the file's directory

    Raises:
        ConfigError: If the file is missing or invalid
    """
    config_path = Path(config_path)
    data = read_structured_file(config_path)

    try:
        config = ReportlensConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path}:\n{e}") from e

    return config.resolve_paths(config_path.parent)


def find_config(start_dir: Path | None = None) -> Path | None:
    """Find config file by searching up the directory tree.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        for name in CONFIG_NAMES:
            config_path = current / name
            if config_path.exists():
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None
