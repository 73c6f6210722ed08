"""Schema inspection commands: validate, ddl, history."""

import json
from pathlib import Path

import click
import yaml

from schemaforge import changelog
from schemaforge.cli.base import CliCommand
from schemaforge.metadata import coerce_uuid
from schemaforge.registry import SchemaRegistry
from schemaforge.validation import validate_definition


def load_definition_file(path: Path):
    """Read a definition from JSON or YAML.

    The file may hold the bare definition or a full schema document with the
    definition under ``definition`` (or ``schemaDefinition``).
    """
    raw = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            document = json.loads(raw)
        else:
            document = yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise click.ClickException(f"Could not parse {path}: {exc}") from exc

    if isinstance(document, dict) and "properties" not in document:
        for key in ("definition", "schemaDefinition"):
            if key in document:
                return document[key]
    return document


@click.command(name='validate')
@click.argument('definition_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate_command(definition_file: Path):
    """Validate a schema definition file without touching the database."""
    result = validate_definition(load_definition_file(definition_file))
    if result.valid:
        click.echo(f"{definition_file}: valid")
        return
    click.echo(f"{definition_file}: {len(result.errors)} error(s)", err=True)
    for error in result.errors:
        click.echo(f"  - {error}", err=True)
    raise SystemExit(1)


@click.command(name='ddl')
@click.argument('schema_id')
@click.option('--database-url', default=None, help='Override the configured database URL')
def ddl_command(schema_id, database_url):
    """Print the CREATE TABLE script for a stored schema."""
    DdlCommand(database_url).invoke(schema_id=schema_id)


class DdlCommand(CliCommand):

    def run(self, *, schema_id):
        click.echo(SchemaRegistry(self.db).ddl(schema_id), nl=False)


@click.command(name='history')
@click.argument('schema_id')
@click.option('--limit', default=50, show_default=True, type=int, help='Maximum entries to show')
@click.option('--database-url', default=None, help='Override the configured database URL')
def history_command(schema_id, limit, database_url):
    """Show the change log of a schema, newest first."""
    HistoryCommand(database_url).invoke(schema_id=schema_id, limit=limit)


class HistoryCommand(CliCommand):

    def run(self, *, schema_id, limit):
        entries = changelog.get_schema_history(self.db, coerce_uuid(schema_id), limit=limit)
        if not entries:
            click.echo(f"No changes recorded for schema {schema_id}")
            return
        for entry in entries:
            actor = entry.changed_by or "-"
            click.echo(f"{entry.changed_at:%Y-%m-%d %H:%M:%S}  {entry.change_type:<12} {actor:<20} {changelog.summarize_change(entry)}")
