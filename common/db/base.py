from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base
from sqlalchemy import BigInteger, Text
from sqlalchemy.dialects.postgresql import TSVECTOR
from sqlalchemy.types import TypeDecorator, Integer

Base = declarative_base()


class BigIntegerType(TypeDecorator):
    """A type that maps to BigInteger on PostgreSQL/MySQL and Integer on SQLite."""

    impl = Integer
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name in ("postgresql", "mysql"):
            return dialect.type_descriptor(BigInteger())
        else:
            return dialect.type_descriptor(Integer())


class TSVectorType(TypeDecorator):
    """TSVECTOR on PostgreSQL, plain Text elsewhere (SQLite in tests)."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(TSVECTOR())
        else:
            return dialect.type_descriptor(Text())


def utcnow() -> datetime:
    """Python-side timestamp default; populated on the instance at flush."""
    return datetime.now(timezone.utc)
