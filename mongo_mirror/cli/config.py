"""
CLI config commands — validate a mirror file without connecting.

Usage:
    python -m mongo_mirror.main check-config -f mirror.yaml [--json]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import click

CONFIG_EXIT_CODE = 2


@click.command("check-config")
@click.option("--file", "-f", "config_file", type=click.Path(path_type=Path),
              default="mirror.yaml", show_default=True, help="Mirror YAML file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, config_file: Path, as_json: bool) -> None:
    """
    Validate the mirror file and show the resolved filters.

    Checks, in order:
    - the YAML parses and matches the schema
    - the destination tenant is a UUID
    - the destination is not a production target
    - every collection has a valid batchSize and filter
    """
    import json as json_lib

    from bson import json_util

    from ..config.guard import ProductionGuard
    from ..config.loader import load_mirror_file
    from ..engine.filters import build_filter
    from ..engine.identifiers import uuid_to_binary
    from ..engine.reader import parse_batch_size
    from ..errors import ConfigError, MirrorError, SafetyViolation, exit_code_for
    from .run import fail

    try:
        mirror = load_mirror_file(config_file)
    except MirrorError as e:
        fail(ctx, e)
        return

    settings = mirror.config
    problems: List[MirrorError] = []

    if settings.tenant_destination:
        try:
            uuid_to_binary(settings.tenant_destination)
        except MirrorError as e:
            problems.append(ConfigError(f"tenantDestiny: {e.message}"))

    guard = ProductionGuard.from_settings(settings)
    matched = guard.violation(settings.destination.connection_string)
    if matched:
        problems.append(SafetyViolation(
            f"The destination database can't be a production database (matched {matched})"
        ))

    collections: List[Dict[str, Any]] = []
    for spec in mirror.collections:
        entry: Dict[str, Any] = {
            "name": spec.name,
            "mode": spec.mode,
            "multi_tenant": spec.multi_tenant,
        }
        try:
            limit = parse_batch_size(spec.batch_size, spec.name)
            entry["limit"] = limit if limit is not None else "all"
            query = build_filter(
                spec,
                settings.tenants,
                tenant_field=settings.tenant_field,
                policy=settings.filter_policy,
            )
            entry["filter"] = json_util.dumps(query)
        except MirrorError as e:
            entry["error"] = f"[{e.code}] {e.message}"
            problems.append(e)
        collections.append(entry)

    if as_json:
        click.echo(json_lib.dumps({
            "valid": not problems,
            "source": settings.source.database,
            "destination": settings.destination.database,
            "collections": collections,
            "problems": [f"[{p.code}] {p}" for p in problems],
        }, indent=2))
    else:
        click.echo(f"\n📋 Mirror {settings.source.database} → {settings.destination.database}\n")
        for entry in collections:
            if "error" in entry:
                click.secho(f"  ✗ {entry['name']}", fg="red", nl=False)
                click.echo(f" — {entry['error']}")
                continue
            click.secho(f"  ✓ {entry['name']}", fg="green", nl=False)
            click.echo(f" — {entry['mode']}, limit {entry['limit']}")
            click.echo(f"      filter: {entry['filter']}")

        click.echo()
        if problems:
            for problem in problems:
                click.secho(f"  ❌ [{problem.code}] {problem}", fg="red")
        else:
            click.secho("✅ Configuration is valid", fg="green", bold=True)

    if problems:
        # A production target outranks any other problem.
        safety = [p for p in problems if isinstance(p, SafetyViolation)]
        ctx.exit(exit_code_for(safety[0]) if safety else CONFIG_EXIT_CODE)
