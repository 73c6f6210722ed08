"""Migration commands: generate, execute, rollback, execute pending."""

import click

from schemaforge.cli.base import CliCommand
from schemaforge.executor import MigrationExecutor

_actor_option = click.option('--actor', default='cli', show_default=True, help='Identity recorded on the migration')
_database_option = click.option('--database-url', default=None, help='Override the configured database URL')


@click.command(name='generate-migration')
@click.option('--to', 'to_schema_id', required=True, help='Target schema id')
@click.option('--from', 'from_schema_id', default=None, help='Source schema id (omit for CREATE TABLE)')
@click.option('--name', 'migration_name', default=None, help='Migration name (default: <model>_<from>_to_<to>)')
@_actor_option
@_database_option
def generate_migration_command(to_schema_id, from_schema_id, migration_name, actor, database_url):
    """Plan a migration between two schema versions and store it as pending."""
    GenerateMigrationCommand(database_url).invoke(
        to_schema_id=to_schema_id,
        from_schema_id=from_schema_id,
        migration_name=migration_name,
        actor=actor,
    )


class GenerateMigrationCommand(CliCommand):

    def run(self, *, to_schema_id, from_schema_id, migration_name, actor):
        migration, plan = MigrationExecutor(self.db).generate(
            to_schema_id,
            from_schema_id,
            migration_name=migration_name,
            created_by=actor,
        )
        click.echo(f"Generated migration {migration.id} ({migration.migration_name}): {plan.summary()}")
        for warning in plan.warnings:
            click.echo(f"WARNING: {warning}", err=True)
        click.echo("-- forward")
        for statement in migration.forward_statements:
            click.echo(statement)
        click.echo("-- reverse")
        for statement in migration.reverse_statements:
            click.echo(statement)


@click.command(name='execute-migration')
@click.argument('migration_id')
@_actor_option
@_database_option
def execute_migration_command(migration_id, actor, database_url):
    """Apply a pending migration in a single transaction."""
    ExecuteMigrationCommand(database_url).invoke(migration_id=migration_id, actor=actor)


class ExecuteMigrationCommand(CliCommand):

    def run(self, *, migration_id, actor):
        result = MigrationExecutor(self.db).execute(migration_id, actor)
        click.echo(
            f"Migration {result.migration.migration_name} completed in {result.execution_time_ms} ms"
            + (f" ({result.skipped_statements} commented statement(s) skipped)" if result.skipped_statements else "")
        )


@click.command(name='rollback-migration')
@click.argument('migration_id')
@_actor_option
@_database_option
def rollback_migration_command(migration_id, actor, database_url):
    """Apply the reverse statements of a completed migration."""
    RollbackMigrationCommand(database_url).invoke(migration_id=migration_id, actor=actor)


class RollbackMigrationCommand(CliCommand):

    def run(self, *, migration_id, actor):
        result = MigrationExecutor(self.db).rollback(migration_id, actor)
        click.echo(f"Migration {result.migration.migration_name} rolled back in {result.execution_time_ms} ms")


@click.command(name='execute-pending')
@_actor_option
@_database_option
def execute_pending_command(actor, database_url):
    """Run all pending migrations in order, stopping at the first failure."""
    ExecutePendingCommand(database_url).invoke(actor=actor)


class ExecutePendingCommand(CliCommand):

    def run(self, *, actor):
        result = MigrationExecutor(self.db).execute_all_pending(actor)
        if not result["migrations"]:
            click.echo("No pending migrations")
            return
        for item in result["migrations"]:
            if item["success"]:
                click.echo(f"  ok    {item['migrationName']} ({item['executionTime']} ms)")
            else:
                click.echo(f"  FAIL  {item['migrationName']}: {item['error']}", err=True)
        click.echo(f"{result['executed']} executed, {result['failed']} failed")
        if not result["success"]:
            raise SystemExit(1)
