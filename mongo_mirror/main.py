"""
Mongo Mirror — CLI Entry Point

Usage:
    mongo-mirror run -f mirror.yaml [--only NAME] [--concurrency N]
    mongo-mirror check-config -f mirror.yaml
    mongo-mirror plan -f mirror.yaml
    python -m mongo_mirror.main run -f mirror.yaml
"""

from __future__ import annotations

# Load .env FIRST, before anything reads LOG_LEVEL or ${VAR} references
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from .logging_config import setup_logging
from .cli.config import check_config
from .cli.run import plan, run_cmd

# Initialize logging
setup_logging()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Mongo Mirror — Copy tenant-scoped MongoDB collections between databases."""
    ctx.ensure_object(dict)


cli.add_command(run_cmd)
cli.add_command(check_config)
cli.add_command(plan)


if __name__ == "__main__":
    cli()
