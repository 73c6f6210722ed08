"""SchemaForge API routers package."""

from . import changes
from . import dependencies
from . import migrations
from . import schemas
