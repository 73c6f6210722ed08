"""Directed dependency edges between schemas.

An edge ``schema_id -> depends_on_schema_id`` reads "schema depends on
depends_on". The edge set is kept acyclic: inserting an edge first walks
the existing edges from its head, and the edge is rejected if its tail is
reachable from there.
"""

from __future__ import annotations

from collections import deque
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from schemaforge.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from schemaforge.metadata import DEPENDENCY_TYPES, Schema, SchemaDependency, coerce_uuid

logger = logging.getLogger(__name__)

TREE_DIRECTIONS = ("dependencies", "dependents")
MAX_TREE_DEPTH = 10


class DependencyGraph:
    """Edge storage plus cycle detection and ordering over the schema graph."""

    def __init__(self, db: Session):
        self.db = db

    def _get_schema(self, schema_id) -> Schema:
        schema_id = coerce_uuid(schema_id)
        schema = self.db.query(Schema).filter(Schema.id == schema_id).first()
        if not schema:
            raise NotFoundError(f"Schema not found: {schema_id}")
        return schema

    def _dependency_ids(self, schema_id: UUID) -> list[UUID]:
        rows = (
            self.db.query(SchemaDependency.depends_on_schema_id)
            .filter(SchemaDependency.schema_id == schema_id)
            .order_by(SchemaDependency.created_at)
            .all()
        )
        return [row[0] for row in rows]

    def reaches(self, start_id: UUID, target_id: UUID) -> bool:
        """True when ``target_id`` is reachable from ``start_id`` along edges."""
        visited: set[UUID] = set()
        stack = [start_id]
        while stack:
            current = stack.pop()
            if current == target_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self._dependency_ids(current))
        return False

    def add_dependency(
        self,
        schema_id,
        depends_on_schema_id,
        *,
        dependency_type: str = "reference",
        field_name: Optional[str] = None,
    ) -> SchemaDependency:
        schema = self._get_schema(schema_id)
        target = self._get_schema(depends_on_schema_id)

        if dependency_type not in DEPENDENCY_TYPES:
            raise ValidationError(
                f"Invalid dependency type: {dependency_type}",
                [f"dependencyType must be one of: {', '.join(DEPENDENCY_TYPES)}"],
            )
        if schema.id == target.id:
            raise DependencyError("A schema cannot depend on itself")

        existing = (
            self.db.query(SchemaDependency)
            .filter(
                SchemaDependency.schema_id == schema.id,
                SchemaDependency.depends_on_schema_id == target.id,
            )
            .first()
        )
        if existing:
            raise ConflictError(
                f"Dependency already exists: {schema.model_id} -> {target.model_id}"
            )

        if self.reaches(target.id, schema.id):
            raise DependencyError(
                f"Circular dependency detected: {target.model_id} v{target.version} "
                f"already depends on {schema.model_id} v{schema.version}",
                details={"schemaId": str(schema.id), "dependsOnSchemaId": str(target.id)},
            )

        edge = SchemaDependency(
            schema_id=schema.id,
            depends_on_schema_id=target.id,
            dependency_type=dependency_type,
            field_name=field_name,
        )
        self.db.add(edge)
        self.db.commit()
        self.db.refresh(edge)
        logger.info("Added dependency %s -> %s (%s)", schema.id, target.id, dependency_type)
        return edge

    def remove_dependency(self, schema_id, depends_on_schema_id) -> None:
        schema_id = coerce_uuid(schema_id)
        depends_on_schema_id = coerce_uuid(depends_on_schema_id)
        edge = (
            self.db.query(SchemaDependency)
            .filter(
                SchemaDependency.schema_id == schema_id,
                SchemaDependency.depends_on_schema_id == depends_on_schema_id,
            )
            .first()
        )
        if not edge:
            raise NotFoundError(f"Dependency not found: {schema_id} -> {depends_on_schema_id}")
        self.db.delete(edge)
        self.db.commit()
        logger.info("Removed dependency %s -> %s", schema_id, depends_on_schema_id)

    def list_dependencies(self, schema_id) -> list[SchemaDependency]:
        """Outgoing edges: what ``schema_id`` depends on."""
        schema = self._get_schema(schema_id)
        return (
            self.db.query(SchemaDependency)
            .filter(SchemaDependency.schema_id == schema.id)
            .order_by(SchemaDependency.created_at)
            .all()
        )

    def get_dependents(self, schema_id, *, status: Optional[str] = None) -> list[Schema]:
        """Schemas with an edge pointing at ``schema_id``."""
        schema_id = coerce_uuid(schema_id)
        query = (
            self.db.query(Schema)
            .join(SchemaDependency, SchemaDependency.schema_id == Schema.id)
            .filter(SchemaDependency.depends_on_schema_id == schema_id)
        )
        if status:
            query = query.filter(Schema.status == status)
        return query.order_by(Schema.model_id, Schema.version).all()

    def active_dependent_count(self, schema_id) -> int:
        return len(self.get_dependents(schema_id, status="active"))

    def execution_order(self, schema_ids: Optional[list] = None) -> list[Schema]:
        """Topological order (dependencies first) using Kahn's algorithm.

        Defaults to every active schema. Edges to schemas outside the set are
        ignored. Ties are broken by model id then version so the order is
        stable.
        """
        query = self.db.query(Schema)
        if schema_ids is None:
            query = query.filter(Schema.status == "active")
        else:
            query = query.filter(Schema.id.in_([coerce_uuid(value) for value in schema_ids]))
        schemas = {schema.id: schema for schema in query.all()}

        in_degree = {schema_id: 0 for schema_id in schemas}
        dependents: dict[UUID, list[UUID]] = {schema_id: [] for schema_id in schemas}
        if schemas:
            edges = (
                self.db.query(SchemaDependency)
                .filter(SchemaDependency.schema_id.in_(list(schemas)))
                .all()
            )
            for edge in edges:
                if edge.depends_on_schema_id not in schemas:
                    continue
                in_degree[edge.schema_id] += 1
                dependents[edge.depends_on_schema_id].append(edge.schema_id)

        def sort_key(schema_id):
            return (schemas[schema_id].model_id, schemas[schema_id].version)

        queue = deque(sorted((sid for sid, deg in in_degree.items() if deg == 0), key=sort_key))
        ordered: list[Schema] = []
        while queue:
            current = queue.popleft()
            ordered.append(schemas[current])
            for dependent in sorted(dependents[current], key=sort_key):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) != len(schemas):
            remaining = [str(sid) for sid, deg in in_degree.items() if deg > 0]
            raise DependencyError(
                f"Circular dependency detected. Unresolved schemas: {', '.join(remaining)}",
                details={"unresolved": remaining},
            )
        return ordered

    def dependency_tree(
        self,
        schema_id,
        *,
        direction: str = "dependencies",
        max_depth: int = MAX_TREE_DEPTH,
    ) -> dict[str, Any]:
        """Nested view of what a schema depends on, or what depends on it."""
        if direction not in TREE_DIRECTIONS:
            raise ValidationError(
                f"Invalid direction: {direction}",
                [f"direction must be one of: {', '.join(TREE_DIRECTIONS)}"],
            )
        root = self._get_schema(schema_id)
        visited: set[UUID] = set()

        def node_for(schema: Schema, edge: Optional[SchemaDependency] = None) -> dict[str, Any]:
            node = {
                "schemaId": str(schema.id),
                "modelId": schema.model_id,
                "version": schema.version,
                "name": schema.name,
                "status": schema.status,
                "children": [],
            }
            if edge is not None:
                node["dependencyType"] = edge.dependency_type
                node["fieldName"] = edge.field_name
            return node

        def build(node: dict[str, Any], current_id: UUID, depth: int) -> None:
            if depth >= max_depth or current_id in visited:
                return
            visited.add(current_id)
            if direction == "dependencies":
                edges = self.db.query(SchemaDependency).filter(SchemaDependency.schema_id == current_id).all()
            else:
                edges = (
                    self.db.query(SchemaDependency)
                    .filter(SchemaDependency.depends_on_schema_id == current_id)
                    .all()
                )
            for edge in edges:
                child = edge.depends_on_schema if direction == "dependencies" else edge.schema
                if child is None:
                    continue
                child_node = node_for(child, edge)
                node["children"].append(child_node)
                build(child_node, child.id, depth + 1)

        tree = node_for(root)
        build(tree, root.id, 0)
        return tree
