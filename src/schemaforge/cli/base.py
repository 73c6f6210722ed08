"""Base command class for shared CLI setup/teardown."""

from typing import Optional

import click
from sqlalchemy.orm import sessionmaker

from schemaforge.database import build_engine
from schemaforge.errors import SchemaForgeError


class CliCommand:
    """Base class for all CLI commands with shared setup/teardown."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine = None
        self.Session = None
        self.db = None

    def setup_db(self):
        """Initialize database connection."""
        self.engine = build_engine(self.database_url)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

    def cleanup_db(self):
        """Close database connection."""
        if self.db:
            self.db.close()
        if self.engine:
            self.engine.dispose()

    def run(self, **kwargs):
        """Execute command - override in subclasses."""
        raise NotImplementedError

    def invoke(self, **kwargs):
        """Run inside a session, turning engine errors into click errors."""
        self.setup_db()
        try:
            return self.run(**kwargs)
        except SchemaForgeError as exc:
            raise click.ClickException(f"{exc.kind}: {exc.message}") from exc
        finally:
            self.cleanup_db()
