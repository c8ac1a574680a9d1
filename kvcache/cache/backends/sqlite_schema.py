"""
KV Cache — SQLite Schema

Table declarations for the durable cache backend.

Two independent record spaces:
- scalar entries keyed by `key` (value + optional expiry)
- hash entries keyed by the composite (`key`, `field`), with a secondary
  index on `key` for whole-hash lookups

Table names are configurable so several caches can share one database file,
which is why the tables are built per instance instead of declared once.
"""

from typing import NamedTuple

from sqlalchemy import Column, Float, Index, MetaData, String, Table, Text

# Bump when the table layout changes; stamped into PRAGMA user_version.
SCHEMA_VERSION = 1


class CacheSchema(NamedTuple):
    metadata: MetaData
    entries: Table
    hash_entries: Table


def build_schema(table_name: str = "kv_entries", hash_table_name: str = "kv_hash_entries") -> CacheSchema:
    """Declare the scalar and hash tables on a fresh MetaData."""
    metadata = MetaData()

    entries = Table(
        table_name,
        metadata,
        Column("key", String, primary_key=True),
        Column("value", Text, nullable=False),  # structured-codec JSON
        Column("expires_at", Float, nullable=True),  # POSIX seconds, NULL = never
    )

    hash_entries = Table(
        hash_table_name,
        metadata,
        Column("key", String, primary_key=True),
        Column("field", String, primary_key=True),
        Column("value", Text, nullable=True),
        Index(f"idx_{hash_table_name}_key", "key"),
    )

    return CacheSchema(metadata, entries, hash_entries)
