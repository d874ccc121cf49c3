"""
CLI run commands — mirror collections, or preview what a run would read.

Usage:
    python -m mongo_mirror.main run -f mirror.yaml [--only orders] [--concurrency 4]
    python -m mongo_mirror.main run -f mirror.yaml --continue-on-error --ledger audit/mirror.ndjson
    python -m mongo_mirror.main plan -f mirror.yaml
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import click

from ..config.loader import load_mirror_file
from ..config.models import CollectionSpec, MirrorFile, MirrorSettings
from ..errors import ConfigError, MirrorError, exit_code_for


def fail(ctx: click.Context, error: MirrorError) -> None:
    """Print a fatal error and exit with its code."""
    click.secho(f"❌ [{error.code}] {error}", fg="red", err=True)
    ctx.exit(exit_code_for(error))


def select_collections(mirror: MirrorFile, only: Tuple[str, ...]) -> List[CollectionSpec]:
    """Resolve ``--only`` names against the file, in file order."""
    unknown = [name for name in only if mirror.get_collection(name) is None]
    if unknown:
        raise ConfigError(f"Unknown collection(s): {', '.join(unknown)}")
    return mirror.select(list(only))


def load_for_command(
    config_file: Path,
    only: Tuple[str, ...] = (),
) -> Tuple[MirrorSettings, List[CollectionSpec]]:
    mirror = load_mirror_file(config_file)
    return mirror.config, select_collections(mirror, only)


@click.command("run")
@click.option("--file", "-f", "config_file", type=click.Path(path_type=Path),
              default="mirror.yaml", show_default=True, help="Mirror YAML file")
@click.option("--only", multiple=True, help="Mirror only this collection (repeatable)")
@click.option("--concurrency", type=click.IntRange(min=1), help="Collections transferred in parallel")
@click.option("--continue-on-error", is_flag=True, help="Keep going after a collection fails")
@click.option("--ledger", type=click.Path(path_type=Path), help="Append run events to this NDJSON file")
@click.option("--json-lines", is_flag=True, help="Emit one JSON object per event on stdout")
@click.option("--progress", is_flag=True, help="Show a progress bar per collection")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    config_file: Path,
    only: Tuple[str, ...],
    concurrency: Optional[int],
    continue_on_error: bool,
    ledger: Optional[Path],
    json_lines: bool,
    progress: bool,
) -> None:
    """Mirror the configured collections from source to destination."""
    from ..engine.orchestrator import mongo_store_factory, run_mirror
    from ..reporting import CompositeReporter, ConsoleReporter, RunLedger

    try:
        settings, collections = load_for_command(config_file, only)
    except MirrorError as e:
        fail(ctx, e)
        return

    overrides = {}
    if concurrency:
        overrides["concurrency"] = concurrency
    if continue_on_error:
        overrides["on_collection_error"] = "continue"
    if overrides:
        settings = settings.model_copy(update=overrides)

    reporter = CompositeReporter([ConsoleReporter(json_lines=json_lines, progress=progress)])
    if ledger:
        reporter.add(RunLedger(ledger))

    store_factory = (ctx.obj or {}).get("store_factory", mongo_store_factory)

    try:
        report = run_mirror(settings, collections, reporter=reporter, store_factory=store_factory)
    except MirrorError as e:
        fail(ctx, e)
        return

    ctx.exit(report.exit_code)


@click.command("plan")
@click.option("--file", "-f", "config_file", type=click.Path(path_type=Path),
              default="mirror.yaml", show_default=True, help="Mirror YAML file")
@click.option("--only", multiple=True, help="Plan only this collection (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def plan(ctx: click.Context, config_file: Path, only: Tuple[str, ...], as_json: bool) -> None:
    """
    Count what a run would copy, without writing anything.

    Connects to the source only; the destination is never contacted.
    """
    import json as json_lib

    from ..engine.filters import build_filter
    from ..engine.orchestrator import mongo_store_factory
    from ..engine.reader import SourceReader, parse_batch_size
    from ..reliability.deadline import Deadline
    from ..stores.base import StoreError
    from ..errors import StoreConnectionError

    try:
        settings, collections = load_for_command(config_file, only)
    except MirrorError as e:
        fail(ctx, e)
        return

    store_factory = (ctx.obj or {}).get("store_factory", mongo_store_factory)
    deadline = Deadline(settings.timeout)
    store = store_factory(settings.source, "source", deadline, settings.connect_timeout)

    rows = []
    failed = 0
    try:
        try:
            store.connect()
            store.ping(settings.connect_timeout)
        except StoreError as e:
            raise StoreConnectionError(str(e)) from e

        reader = SourceReader(store, settings.source.database, read_retries=settings.read_retries)
        for spec in collections:
            row = {"collection": spec.name, "mode": spec.mode, "batch_size": spec.batch_size}
            try:
                limit = parse_batch_size(spec.batch_size, spec.name)
                query = build_filter(
                    spec,
                    settings.tenants,
                    tenant_field=settings.tenant_field,
                    policy=settings.filter_policy,
                )
                row["count"] = reader.count(spec.name, query, limit)
            except MirrorError as e:
                if e.fatal_to_run:
                    raise
                row["error"] = f"[{e.code}] {e.message}"
                failed += 1
            rows.append(row)
    except MirrorError as e:
        fail(ctx, e)
        return
    finally:
        store.close()

    if as_json:
        click.echo(json_lib.dumps({"database": settings.source.database, "collections": rows}, indent=2))
    else:
        click.echo(f"\n📋 Plan for {settings.source.database} ({len(rows)} collection(s))\n")
        for row in rows:
            if "error" in row:
                click.secho(f"  ✗ {row['collection']}", fg="red", nl=False)
                click.echo(f" — {row['error']}")
            else:
                click.secho(f"  ✓ {row['collection']}", fg="green", nl=False)
                click.echo(f" — {row['count']} document(s), {row['mode']}, batchSize {row['batch_size']}")
        click.echo()
        total = sum(row.get("count", 0) for row in rows)
        click.secho(f"Total: {total} document(s)", bold=True)

    if failed:
        ctx.exit(1)
