"""Read model of the content catalog.

Phases, modules and content items are authored by the catalog service;
tracking only reads them. Tables are declared here so that local and
test environments can create the read model alongside the tracking tables.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID


class ContentType(str, Enum):
    """Kind of content item."""

    VIDEO = "video"
    LAB = "lab"
    GAME = "game"
    DOCUMENT = "document"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CATALOG_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.catalog_modules (
    module_id UUID PRIMARY KEY,
    phase_id UUID,
    title TEXT,
    is_active BOOLEAN
)
"""

CONTENT_ITEMS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_items (
    content_id UUID PRIMARY KEY,
    module_id UUID,
    content_type TEXT,
    section TEXT,
    item_order INT,
    duration_minutes INT,
    title TEXT,
    is_active BOOLEAN
)
"""

# Only active items are listed here; removing content deletes its row.
# Clustering on (section, item_order) keeps order unique per module+section.
CONTENT_ITEMS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.content_items_by_module (
    module_id UUID,
    section TEXT,
    item_order INT,
    content_id UUID,
    content_type TEXT,
    PRIMARY KEY (module_id, section, item_order)
) WITH CLUSTERING ORDER BY (section ASC, item_order ASC)
"""

CATALOG_TABLES_CQL = [
    CATALOG_MODULES_TABLE_CQL,
    CONTENT_ITEMS_TABLE_CQL,
    CONTENT_ITEMS_BY_MODULE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class CatalogModule:
    """Module as seen by tracking."""

    id: UUID
    phase_id: UUID | None = None
    title: str = ""
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Any) -> "CatalogModule":
        return cls(
            id=row.module_id,
            phase_id=row.phase_id,
            title=row.title or "",
            is_active=row.is_active if row.is_active is not None else True,
        )


@dataclass(frozen=True)
class ContentItem:
    """Content item belonging to exactly one module.

    Attributes:
        id: Content UUID
        module_id: Owning module
        type: video, lab, game or document
        section: Optional section label inside the module
        order: Position, unique per (module_id, section)
        duration: Expected duration in minutes
        is_active: False once removed from the catalog
    """

    id: UUID
    module_id: UUID
    type: ContentType
    order: int = 0
    section: str | None = None
    duration: int = 0
    title: str = ""
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Any) -> "ContentItem":
        """Create ContentItem from Cassandra row."""
        return cls(
            id=row.content_id,
            module_id=row.module_id,
            type=ContentType(row.content_type),
            order=row.item_order or 0,
            section=row.section or None,
            duration=row.duration_minutes or 0,
            title=row.title or "",
            is_active=row.is_active if row.is_active is not None else True,
        )
