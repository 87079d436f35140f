"""CLI for device-matrix -- query a device compatibility matrix from the shell.

Usage::

    # Row and device counts of a source document
    device-matrix stats matrix.json

    # One page of rows as JSON
    device-matrix query matrix.json --q "^mini" --filter matterSupported=true --sort device_model:desc

    # Facet options under a filter
    device-matrix facets matrix.json --filter device_brand=SONOFF --column device_category

    # Spreadsheet export
    device-matrix export https://example.com/matrix.json matrix.xlsx

``FILE`` may be a local path or an ``http(s)://`` URL.  When it is omitted,
``DEVICE_MATRIX_DATA_URL`` is used.
"""

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from device_matrix.config import MAX_FILTER_OPTIONS, get_settings
from device_matrix.engine import DeviceMatrixEngine
from device_matrix.errors import DeviceMatrixError
from device_matrix.logging import setup_logging

app = typer.Typer(
    name="device-matrix",
    help="Search, filter, facet and export a device compatibility matrix.",
    no_args_is_help=True,
)

SourceArg = Annotated[Optional[str], typer.Argument(help="Source JSON: local path or http(s) URL")]
QueryOpt = Annotated[Optional[str], typer.Option("--q", "-q", help="Full-text search query")]
FilterOpt = Annotated[Optional[list[str]], typer.Option("--filter", "-f", help="Column filter as col=value (repeatable)")]


@app.callback()
def _configure(
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level (default from DEVICE_MATRIX_LOG_LEVEL)")] = None,
) -> None:
    setup_logging(log_level or get_settings().log_level)


def parse_filters(items: list[str] | None) -> dict[str, list[str]]:
    """Turn ``["col=a", "col=b", "other=c"]`` into ``{"col": ["a", "b"], "other": ["c"]}``."""
    enums: dict[str, list[str]] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected col=value, got {item!r}", param_hint="--filter")
        enums.setdefault(key.strip(), []).append(value.strip())
    return enums


def parse_sort(items: list[str] | None) -> list[dict[str, Any]]:
    """Turn ``["model", "brand:desc"]`` into sort specs."""
    sort: list[dict[str, Any]] = []
    for item in items or []:
        column, _, direction = item.partition(":")
        sort.append({"column": column.strip(), "descending": direction.strip().lower() == "desc"})
    return sort


def _load_engine(source: str | None) -> DeviceMatrixEngine:
    settings = get_settings()
    source = source or settings.data_url
    if not source:
        typer.echo("Error: no source given and DEVICE_MATRIX_DATA_URL is not set", err=True)
        raise typer.Exit(code=1)
    engine = DeviceMatrixEngine(page_size=settings.page_size, fetch_timeout=settings.fetch_timeout)
    try:
        engine.load(source)
    except DeviceMatrixError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    return engine


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


@app.command()
def stats(source: SourceArg = None) -> None:
    """Print row count, device count and update time of a source."""
    engine = _load_engine(source)
    _echo_json(engine.stats())


@app.command()
def query(
    source: SourceArg = None,
    q: QueryOpt = None,
    filters: FilterOpt = None,
    sort: Annotated[Optional[list[str]], typer.Option("--sort", "-s", help="Sort key as col or col:desc (repeatable)")] = None,
    page: Annotated[int, typer.Option("--page", "-p", help="1-based page number")] = 1,
    page_size: Annotated[Optional[int], typer.Option("--page-size", "-n", help="Rows per page")] = None,
) -> None:
    """Print one page of matching rows as JSON."""
    request = {"q": q, "enums": parse_filters(filters), "sort": parse_sort(sort), "page": page, "page_size": page_size}
    engine = _load_engine(source)
    try:
        result = engine.query(request)
    except (DeviceMatrixError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    _echo_json(result)


@app.command()
def facets(
    source: SourceArg = None,
    q: QueryOpt = None,
    filters: FilterOpt = None,
    column: Annotated[Optional[list[str]], typer.Option("--column", "-c", help="Only these facet columns (repeatable)")] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Options shown per column (0 for all)")] = MAX_FILTER_OPTIONS,
) -> None:
    """Print facet options with counts as JSON."""
    enums = parse_filters(filters)
    engine = _load_engine(source)
    try:
        if column:
            result = engine.distinct({"q": q, "enums": enums}, columns=column)
        else:
            result = engine.distinct({"q": q, "enums": enums})
    except (DeviceMatrixError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    if limit > 0:
        result = {key: options[:limit] for key, options in result.items()}
    _echo_json(result)


@app.command()
def export(
    source: Annotated[str, typer.Argument(help="Source JSON: local path or http(s) URL")],
    output: Annotated[Path, typer.Argument(help="Destination .xlsx file")],
    q: QueryOpt = None,
    filters: FilterOpt = None,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Title row text")] = None,
) -> None:
    """Write the matching rows to an Excel workbook."""
    enums = parse_filters(filters)
    engine = _load_engine(source)
    request = {"q": q, "enums": enums} if q or enums else None
    kwargs: dict[str, Any] = {"request": request}
    if title:
        kwargs["title"] = title
    try:
        data = engine.build_export(**kwargs)
    except (DeviceMatrixError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    output.write_bytes(data)
    typer.echo(f"Wrote {len(data):,} bytes to {output}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
