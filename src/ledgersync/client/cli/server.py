"""Server command for LedgerSync CLI.

Commands:
- serve: Run the LedgerSync API server
"""

from __future__ import annotations

import os

import click


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", type=int, default=8000, show_default=True, help="Bind port.")
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: LEDGERSYNC_DB_PATH or ./ledgersync.db).",
)
def serve(host: str, port: int, db_path: str | None) -> None:
    """Run the LedgerSync API server."""
    import uvicorn

    if db_path:
        os.environ["LEDGERSYNC_DB_PATH"] = db_path

    uvicorn.run(
        "ledgersync.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
    )
