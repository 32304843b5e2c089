"""CLI for reportlens report evaluation."""

import json
import logging
from pathlib import Path

import typer

from reportlens import __version__
from reportlens.config import ReportlensConfig, find_config, load_config
from reportlens.validation import ReportlensError


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"reportlens {__version__}")
        raise typer.Exit()


app = typer.Typer(
    help="reportlens: in-memory report engine over billing fixtures",
    no_args_is_help=True,
)

# Global state for config (set in callback, used in commands)
_loaded_config: ReportlensConfig | None = None


def _config() -> ReportlensConfig:
    return _loaded_config or ReportlensConfig().resolve_paths()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True, help="Show version"
    ),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config file (reportlens.yaml)"),
    log_level: str = typer.Option(None, "--log-level", help="Logging level (overrides config)"),
):
    """reportlens CLI.

    You can use a config file (reportlens.yaml or reportlens.json) to set default values.
    CLI arguments override config file values.
    """
    global _loaded_config

    config_path = config or find_config()
    _loaded_config = None
    if config_path:
        try:
            _loaded_config = load_config(config_path)
            typer.echo(f"Loaded config from: {config_path}", err=True)
        except ReportlensError as e:
            typer.echo(f"Error: Failed to load config: {e}", err=True)
            raise typer.Exit(1)

    level = (log_level or _config().log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(levelname)s %(name)s: %(message)s")


def _catalog(catalog_path: Path | None):
    from reportlens.loaders import default_catalog, load_catalog

    path = catalog_path or (Path(_config().catalog) if _config().catalog else None)
    return load_catalog(path) if path else default_catalog()


def _data_dir(data_dir: Path | None) -> Path:
    return data_dir or Path(_config().data_dir)


def _load_store(data_dir: Path, names: list[str]):
    from reportlens.core.warehouse import discover_entities, load_warehouse

    available = set(discover_entities(data_dir)) if data_dir.is_dir() else set()
    wanted = [name for name in dict.fromkeys(names) if name in available or f"{name}s" in available]
    return load_warehouse(data_dir, wanted)


def _report_entities(spec) -> list[str]:
    names = list(spec.selected_objects)
    names.extend(ref.object for ref in spec.selected_fields)
    names.extend(condition.field.object for condition in spec.filters.conditions)
    if spec.formula is not None:
        for block in spec.formula.blocks:
            if block.source is not None:
                names.append(block.source.object)
            names.extend(condition.field.object for condition in block.filters)
    return names


@app.command()
def objects(
    catalog: Path = typer.Option(None, "--catalog", help="Catalog file (defaults to the bundled catalog)"),
):
    """
    List catalog objects and their relationships.

    Examples:
      reportlens objects
      reportlens objects --catalog my_catalog.yaml
    """
    try:
        schema = _catalog(catalog)
    except ReportlensError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    for obj in schema.get_all_objects():
        typer.echo(f"● {obj.name}")
        typer.echo(f"  Fields: {len(obj.fields)}")
        related = [rel.to for rel in schema.relationships if rel.from_object == obj.name]
        if related:
            typer.echo(f"  References: {', '.join(related)}")
        typer.echo()


@app.command()
def rows(
    report: Path = typer.Argument(..., help="Report definition (YAML or JSON)"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Fixture directory (overrides config)"),
    catalog: Path = typer.Option(None, "--catalog", help="Catalog file"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of rows to print"),
    filtered: bool = typer.Option(True, "--filtered/--all", help="Apply report filters"),
):
    """
    Print the row views of a report as JSON lines.

    Examples:
      reportlens rows report.yaml --data-dir data/
    """
    from reportlens.core.report import run_report
    from reportlens.loaders import load_report

    try:
        spec = load_report(report)
        schema = _catalog(catalog)
        store = _load_store(_data_dir(data_dir), _report_entities(spec))
        result = run_report(spec, store, schema, max_buckets=_config().max_buckets)
    except ReportlensError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    selected = result.filtered_rows if filtered else result.rows
    for row in selected[:limit]:
        typer.echo(json.dumps({"key": f"{row.pk.object}:{row.pk.id}", "ts": row.ts, **row.display}, default=str))
    typer.echo(f"{len(selected)} rows", err=True)


@app.command()
def metric(
    report: Path = typer.Argument(..., help="Report definition (YAML or JSON)"),
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Fixture directory (overrides config)"),
    catalog: Path = typer.Option(None, "--catalog", help="Catalog file"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """
    Compute the metric formula of a report.

    Examples:
      reportlens metric report.yaml --data-dir data/
      reportlens metric report.yaml --json
    """
    from dataclasses import asdict

    from reportlens.core.report import run_report
    from reportlens.core.unit_types import format_value_by_unit
    from reportlens.loaders import load_report
    from reportlens.validation import validate_formula

    try:
        spec = load_report(report)
        if spec.formula is None:
            typer.echo("Error: Report has no formula", err=True)
            raise typer.Exit(1)
        for issue in validate_formula(spec.formula):
            typer.echo(f"Warning: {issue}", err=True)
        schema = _catalog(catalog)
        store = _load_store(_data_dir(data_dir), _report_entities(spec))
        result = run_report(spec, store, schema, max_buckets=_config().max_buckets)
    except ReportlensError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if result.bucket_validation.warning:
        typer.echo(f"Warning: {result.bucket_validation.warning}", err=True)

    formula = result.formula
    if as_json:
        typer.echo(json.dumps(asdict(formula), indent=2, default=str))
        return

    unit_type = formula.result.unit_type or "count"
    typer.echo(f"Value: {format_value_by_unit(formula.result.value, unit_type)}")
    if formula.result.note:
        typer.echo(f"Note: {formula.result.note}")
    for point in formula.result.series or []:
        typer.echo(f"  {point.date}\t{format_value_by_unit(point.value, unit_type)}")
    for block in formula.block_results:
        typer.echo(f"Block {block.block_id} ({block.block_name}): {format_value_by_unit(block.value, block.unit_type)}")


@app.command()
def sql(
    report: Path = typer.Argument(..., help="Report definition (YAML or JSON)"),
    catalog: Path = typer.Option(None, "--catalog", help="Catalog file"),
    dialect: str = typer.Option(None, "--dialect", help="SQL dialect (overrides config)"),
):
    """
    Print a SQL preview of a report.

    Examples:
      reportlens sql report.yaml
      reportlens sql report.yaml --dialect postgres
    """
    from reportlens.loaders import load_report
    from reportlens.sql.generator import generate_sql

    try:
        spec = load_report(report)
        schema = _catalog(catalog)
    except ReportlensError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(generate_sql(spec, schema, dialect=dialect or _config().sql_dialect))


@app.command()
def validate(
    data_dir: Path = typer.Option(None, "--data-dir", "-d", help="Fixture directory (overrides config)"),
    catalog: Path = typer.Option(None, "--catalog", help="Catalog file"),
):
    """
    Validate the catalog and the referential integrity of fixtures.

    Examples:
      reportlens validate --data-dir data/
    """
    from reportlens.core.warehouse import discover_entities, load_warehouse
    from reportlens.validation import validate_warehouse

    directory = _data_dir(data_dir)
    try:
        schema = _catalog(catalog)
        store = load_warehouse(directory, discover_entities(directory) if directory.is_dir() else None)
    except ReportlensError as e:
        typer.echo(f"✗ {e}", err=True)
        raise typer.Exit(1)

    issues = validate_warehouse(store, schema)
    if issues:
        typer.echo("✗ Fixture validation failed:", err=True)
        for issue in issues:
            typer.echo(f"  - {issue}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✓ Catalog OK ({len(schema.objects)} objects), {len(store)} entities consistent")


@app.command()
def buckets(
    start: str = typer.Argument(..., help="Range start (YYYY-MM-DD)"),
    end: str = typer.Argument(..., help="Range end (YYYY-MM-DD)"),
    granularity: str = typer.Option(None, "--granularity", "-g", help="day, week, month, quarter or year"),
    max_buckets: int = typer.Option(None, "--max-buckets", help="Bucket cap (overrides config)"),
):
    """
    Show the bucket labels of a date range.

    Examples:
      reportlens buckets 2024-01-01 2024-12-31 --granularity quarter
    """
    from reportlens.core.time_buckets import (
        bucket_label,
        range_by_granularity,
        suggest_granularity,
        validate_granularity_range,
    )

    try:
        granularity = granularity or suggest_granularity(start, end)
        validation = validate_granularity_range(start, end, granularity, max_buckets or _config().max_buckets)
        dates = range_by_granularity(start, end, granularity)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Granularity: {granularity} ({validation.bucket_count} buckets)")
    if not validation.valid:
        typer.echo(f"Warning: {validation.warning}", err=True)
        raise typer.Exit(1)

    for day in dates:
        typer.echo(bucket_label(day, granularity))


if __name__ == "__main__":
    app()
