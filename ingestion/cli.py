#!/usr/bin/env python3
"""
Dataset ingestion command line

Runs the ingestion pipeline on local files and prints JSON to stdout. Logs go
to stderr so output can be piped.

Usage:
    python -m ingestion.cli summarize data/sales.csv
    python -m ingestion.cli project data/zones.geojson --category "Population"
    python -m ingestion.cli quality data/sales.json
    python -m ingestion.cli simplify data/zones.geojson --output zones.small.geojson
    python -m ingestion.cli store data/zones.geojson --dataset-id 42

    # Config overrides without editing config.yaml:
    python -m ingestion.cli --config geojson.every_nth=10 simplify data/zones.geojson -o out.geojson

    # Verbose logging:
    python -m ingestion.cli --verbose summarize data/sales.csv
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

import click
from loguru import logger

from storage.geojson_store import create_geojson_store

from .config_loader import Config
from .geojson_processor import load_geojson
from .geojson_worker import GeoJSONTaskRunner
from .pipeline import DatasetProcessor
from .tabular_parser import DatasetParseError


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
    elif verbose:
        log_level = "DEBUG"
    else:
        log_level = "INFO"

    if enable_trace or verbose:
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_format = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")


class ConfigOverride(click.ParamType):
    """KEY=VALUE config override with dot-notation keys."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if isinstance(value, tuple):
            return value
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.lower() in ("null", "none"):
            parsed_val = None
        elif val.isdigit():
            parsed_val = int(val)
        elif "." in val and val.replace(".", "", 1).isdigit():
            parsed_val = float(val)
        else:
            parsed_val = val

        return key, parsed_val


def apply_overrides(data: Dict[str, Any], overrides: Tuple[Tuple[str, Any], ...]) -> Dict[str, Any]:
    """Set dot-notation overrides on a nested config mapping."""
    for key_path, value in overrides:
        section = data
        *parents, leaf = key_path.split(".")
        for key in parents:
            if not isinstance(section.get(key), dict):
                section[key] = {}
            section = section[key]
        section[leaf] = value
    return data


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _processor(ctx: click.Context, with_store: bool = False) -> DatasetProcessor:
    config: Config = ctx.obj["config"]
    geojson_store = create_geojson_store(config) if with_store else None
    return DatasetProcessor(config, geojson_store=geojson_store)


def _process(ctx: click.Context, file: str, **kwargs: Any):
    try:
        return _processor(ctx, with_store=kwargs.get("dataset_id") is not None).process_file(file, **kwargs)
    except DatasetParseError as e:
        logger.error(f"❌ Could not parse {file}: {e}")
        ctx.exit(1)


@click.group()
@click.option("--config-file", type=click.Path(exists=True, dir_okay=False), help="Path to config.yaml")
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., geojson.every_nth=10)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option("--trace", is_flag=True, help="Enable TRACE level logging for deep debugging")
@click.pass_context
def cli(ctx, config_file, config_overrides, verbose, trace):
    """
    Dataset ingestion tools: summaries, chart points, quality checks and
    GeoJSON simplification for CSV, JSON and GeoJSON files.
    """
    setup_logging(verbose=verbose, enable_trace=trace)

    config = Config(config_file)
    if config_overrides:
        config = Config.from_dict(apply_overrides(config.data, config_overrides))
        logger.info(f"🎯 Applied {len(config_overrides)} config override(s)")

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def summarize(ctx, file):
    """Print the dataset summary of FILE."""
    result = _process(ctx, file)
    _emit(result.summary)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--category", help="Dataset category (e.g. 'Geography', 'Electricity')")
@click.pass_context
def project(ctx, file, category):
    """Print chart-ready {name, value} points for FILE."""
    result = _process(ctx, file, category=category)
    _emit(result.visualization)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def quality(ctx, file):
    """Print missing values, type inconsistencies and duplicates for FILE."""
    result = _process(ctx, file)
    _emit(result.quality)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="Output GeoJSON file path")
@click.option("--every-nth", type=click.IntRange(min=1), help="Keep every nth point of lines and rings")
@click.pass_context
def simplify(ctx, file, output, every_nth):
    """Write a simplified copy of the GeoJSON FILE to OUTPUT."""
    config: Config = ctx.obj["config"]

    try:
        geojson = load_geojson(Path(file).read_bytes())
    except DatasetParseError as e:
        logger.error(f"❌ Could not parse {file}: {e}")
        ctx.exit(1)

    runner = GeoJSONTaskRunner(
        use_worker=config.get("worker.enabled"),
        max_workers=config.get("worker.max_workers"),
    )
    try:
        simplified = runner.simplify_geojson(
            geojson,
            every_nth=every_nth or config.get_geojson_setting("every_nth"),
            max_features=config.get_geojson_setting("max_features"),
            max_multipoint=config.get_geojson_setting("max_multipoint"),
        ).result()
    finally:
        runner.close()

    Path(output).write_text(json.dumps(simplified, separators=(",", ":")), encoding="utf-8")
    logger.success(f"✅ Wrote {len(simplified['features']):,} features to {output}")
    _emit({"output": output, "feature_count": len(simplified["features"])})


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--dataset-id", required=True, help="Dataset id the map data belongs to")
@click.option("--category", help="Dataset category used for coloring hints")
@click.pass_context
def store(ctx, file, dataset_id, category):
    """Process FILE and persist its GeoJSON for DATASET_ID."""
    result = _process(ctx, file, dataset_id=dataset_id, category=category)
    if result.format != "geojson":
        logger.error(f"❌ {file} is not a GeoJSON file")
        ctx.exit(1)

    _emit({"dataset_id": dataset_id, "stored": bool(result.stored)})
    if not result.stored:
        ctx.exit(1)


if __name__ == "__main__":
    cli()
