"""PostgreSQL engine factory and SQL helpers.

Usage:
    >>> from db_copier.adapters import create_async_engine_pooled, quote_identifier
"""

from db_copier.adapters.postgres import (
    create_async_engine_pooled,
    escape_text_sql,
    is_json_type,
    pool_capacity,
    quote_identifier,
    quote_literal,
    quote_qualified,
    to_libpq_url,
    to_sqlalchemy_url,
    wrap_json,
)

__all__ = [
    "create_async_engine_pooled",
    "escape_text_sql",
    "is_json_type",
    "pool_capacity",
    "quote_identifier",
    "quote_literal",
    "quote_qualified",
    "to_libpq_url",
    "to_sqlalchemy_url",
    "wrap_json",
]
