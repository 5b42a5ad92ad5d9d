"""pgscope command line entry point.

The root app only carries ``--version``; the work is done by the
``db`` and ``config`` command groups.
"""

from typing import Annotated

import typer

from pgscope import __version__
from pgscope.commands.config import app as config_app
from pgscope.commands.db import app as db_app


app = typer.Typer(
    name="pgscope",
    help="pgscope - Privilege-scoped PostgreSQL restores.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

app.add_typer(db_app, name="db")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pgscope version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """pgscope - Privilege-scoped PostgreSQL restores.

    Restores pg_dump backups into databases where the connecting role
    only owns part of the schema, such as hosted Postgres projects.
    Custom archives go to pg_restore; plain SQL dumps are cut down to
    the data the role may write and replayed with psql.

    [bold]Examples:[/bold]
        pgscope db restore backup.dump -h db.local -d app
        pgscope db restore backup.sql --all-insertable
        pgscope db scope
        pgscope config show
    """


if __name__ == "__main__":
    app()
