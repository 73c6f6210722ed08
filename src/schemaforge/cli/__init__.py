"""SchemaForge CLI entry point with lazy command registration."""

from __future__ import annotations

import logging

import click

from schemaforge.settings import settings

_COMMANDS_REGISTERED = False


def _register_commands_once() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from .commands import database, migrations, schemas

    cli.add_command(database.init_db_command, name="init-db")
    cli.add_command(schemas.validate_command, name="validate")
    cli.add_command(schemas.ddl_command, name="ddl")
    cli.add_command(schemas.history_command, name="history")
    cli.add_command(migrations.generate_migration_command, name="generate-migration")
    cli.add_command(migrations.execute_migration_command, name="execute-migration")
    cli.add_command(migrations.rollback_migration_command, name="rollback-migration")
    cli.add_command(migrations.execute_pending_command, name="execute-pending")

    _COMMANDS_REGISTERED = True


class _LazyCLIGroup(click.Group):
    def list_commands(self, ctx):
        _register_commands_once()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        _register_commands_once()
        return super().get_command(ctx, cmd_name)


@click.group(cls=_LazyCLIGroup)
def cli():
    """SchemaForge CLI for managing schemas and running migrations."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    cli()
