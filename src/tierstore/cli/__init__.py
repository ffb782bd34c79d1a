"""CLI commands for tierstore.

Provides command-line interface using Typer:
- tierstore layers: Show the configured layer stack
- tierstore worker: Run the replication and eviction job worker
- tierstore evict: Run cache eviction once
- tierstore missing: Referenced hashes absent from every layer
- tierstore orphaned: Stored hashes nothing references

Usage:
    tierstore --help
    tierstore layers --layers layers.json
    tierstore worker --name worker-1
    tierstore missing documents --hashes referenced.txt
"""

import typer

from tierstore.cli.evict_cmd import app as evict_app
from tierstore.cli.layers_cmd import app as layers_app
from tierstore.cli.reconcile_cmd import missing_app, orphaned_app
from tierstore.cli.worker_cmd import app as worker_app
from tierstore.config import settings
from tierstore.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="tierstore",
    help="tierstore: content-addressable, multi-tier blob storage",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(layers_app, name="layers")
app.add_typer(worker_app, name="worker")
app.add_typer(evict_app, name="evict")
app.add_typer(missing_app, name="missing")
app.add_typer(orphaned_app, name="orphaned")


@app.callback()
def callback() -> None:
    """tierstore: content-addressable, multi-tier blob storage."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    app()


if __name__ == "__main__":
    main()
