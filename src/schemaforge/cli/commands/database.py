"""Create the engine tables in the configured database."""

import click

from schemaforge.cli.base import CliCommand
from schemaforge.metadata import Base


@click.command(name='init-db')
@click.option('--database-url', default=None, help='Override the configured database URL')
def init_db_command(database_url):
    """Create the schemas, migrations, schema_changes and schema_dependencies tables.

    Uses ``create_all``, so existing tables are left alone. Production
    databases should be managed with the alembic revisions instead.
    """
    InitDbCommand(database_url).invoke()


class InitDbCommand(CliCommand):

    def run(self):
        Base.metadata.create_all(self.engine)
        click.echo(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
