"""Read-only access to the content catalog.

Tracking consumes two lookups from the catalog: a content item by id and
the live count of active items in a module. The count is always queried
at call time because content may be added to a module after enrollment.
"""

from dataclasses import replace
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

from .models import CatalogModule, ContentItem


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ContentCatalog(Protocol):
    async def get_content_item(self, content_id: UUID) -> ContentItem | None: ...
    async def count_active_content_items(self, module_id: UUID) -> int: ...
    async def get_module(self, module_id: UUID) -> CatalogModule | None: ...


class CassandraContentCatalog:
    """Catalog read model stored in Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_content_item = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.content_items
            WHERE content_id = ?
        """)

        self._count_module_items = self.session.prepare(f"""
            SELECT COUNT(*) AS total FROM {self.keyspace}.content_items_by_module
            WHERE module_id = ?
        """)

        self._get_module = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.catalog_modules
            WHERE module_id = ?
        """)

    async def get_content_item(self, content_id: UUID) -> ContentItem | None:
        result = await self.session.aexecute(self._get_content_item, [content_id])
        row = result.one()
        return ContentItem.from_row(row) if row else None

    async def count_active_content_items(self, module_id: UUID) -> int:
        result = await self.session.aexecute(self._count_module_items, [module_id])
        row = result.one()
        return int(row.total) if row else 0

    async def get_module(self, module_id: UUID) -> CatalogModule | None:
        result = await self.session.aexecute(self._get_module, [module_id])
        row = result.one()
        return CatalogModule.from_row(row) if row else None


class InMemoryContentCatalog:
    """Catalog held in dictionaries, seeded by tests and local tooling."""

    def __init__(self) -> None:
        self._modules: dict[UUID, CatalogModule] = {}
        self._items: dict[UUID, ContentItem] = {}

    def add_module(self, module: CatalogModule) -> None:
        self._modules[module.id] = module

    def add_content_item(self, item: ContentItem) -> None:
        """Register an item, keeping order unique per (module, section)."""
        for existing in self._items.values():
            if (
                existing.is_active
                and existing.id != item.id
                and existing.module_id == item.module_id
                and existing.section == item.section
                and existing.order == item.order
            ):
                msg = f"order {item.order} already used in section {item.section!r}"
                raise ValueError(msg)
        self._items[item.id] = item
        if item.module_id not in self._modules:
            self._modules[item.module_id] = CatalogModule(id=item.module_id)

    def remove_content_item(self, content_id: UUID) -> ContentItem:
        """Mark an item inactive, as the catalog does on deletion."""
        item = self._items[content_id]
        removed = replace(item, is_active=False)
        self._items[content_id] = removed
        logger.info(
            "catalog_content_removed",
            content_id=str(content_id),
            module_id=str(item.module_id),
        )
        return removed

    async def get_content_item(self, content_id: UUID) -> ContentItem | None:
        return self._items.get(content_id)

    async def count_active_content_items(self, module_id: UUID) -> int:
        return sum(
            1
            for item in self._items.values()
            if item.module_id == module_id and item.is_active
        )

    async def get_module(self, module_id: UUID) -> CatalogModule | None:
        return self._modules.get(module_id)
