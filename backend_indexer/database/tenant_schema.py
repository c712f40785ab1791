"""
Destination table definitions for tenant databases.

One SQLAlchemy Core table per event category, derived from the record
dataclass: column *keys* are the Python field names, column *names* are the
camelCase names tenants query (blockTime, feePayer, ...). Every table has an
autoincrement id, a unique non-null signature and createdAt/updatedAt.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB

from backend_indexer.core.categories import EventCategory
from backend_indexer.normalizer.models import NormalizedRecord, record_class_for

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Column names that do not follow plain snake -> camel conversion
COLUMN_NAME_OVERRIDES = {"compressed_nft_metadata": "compressedNFTMetadata"}

NUMERIC_OVERRIDES = {"royalties": Numeric(5, 2, asdecimal=False)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def camel_case(name: str) -> str:
    """fee_payer -> feePayer."""
    if name in COLUMN_NAME_OVERRIDES:
        return COLUMN_NAME_OVERRIDES[name]
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _column_type(field_name: str, annotation: str):
    if annotation == "str":
        # scraped text has no length bound
        return Text()
    if annotation == "bool":
        return Boolean()
    if annotation == "int":
        return BigInteger()
    if annotation == "float":
        return NUMERIC_OVERRIDES.get(field_name, Numeric(20, 9, asdecimal=False))
    if annotation.startswith(("list", "dict")):
        return JSONType
    raise TypeError(f"no column type for {field_name}: {annotation}")


def _columns_for(record_cls: type[NormalizedRecord]) -> list[Column]:
    columns = [Column("id", Integer, primary_key=True, autoincrement=True)]
    for f in dataclasses.fields(record_cls):
        # annotations are strings under postponed evaluation
        annotation = f.type if isinstance(f.type, str) else getattr(f.type, "__name__", str(f.type))
        if f.name == "signature":
            columns.append(Column("signature", String(128), key="signature", nullable=False, unique=True))
            continue
        columns.append(
            Column(
                camel_case(f.name),
                _column_type(f.name, annotation),
                key=f.name,
                nullable=True,
            )
        )
    columns.append(Column("createdAt", DateTime(timezone=True), key="created_at", default=_utcnow, nullable=False))
    columns.append(
        Column(
            "updatedAt",
            DateTime(timezone=True),
            key="updated_at",
            default=_utcnow,
            onupdate=_utcnow,
            nullable=False,
        )
    )
    return columns


def build_metadata() -> tuple[MetaData, dict[EventCategory, Table]]:
    metadata = MetaData()
    tables: dict[EventCategory, Table] = {}
    for category in EventCategory:
        record_cls = record_class_for(category)
        tables[category] = Table(category.table_name, metadata, *_columns_for(record_cls))
    return metadata, tables


TENANT_METADATA, TENANT_TABLES = build_metadata()


def table_for(category: EventCategory) -> Table | None:
    return TENANT_TABLES.get(category)
