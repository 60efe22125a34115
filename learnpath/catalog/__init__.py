"""Read model of the content catalog (phases, modules, content items)."""

from .models import CATALOG_TABLES_CQL, CatalogModule, ContentItem, ContentType
from .repository import CassandraContentCatalog, ContentCatalog, InMemoryContentCatalog


__all__ = [
    "CATALOG_TABLES_CQL",
    "CassandraContentCatalog",
    "CatalogModule",
    "ContentCatalog",
    "ContentItem",
    "ContentType",
    "InMemoryContentCatalog",
]
