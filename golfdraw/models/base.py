from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from golfdraw.db.metadata import metadata_obj

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Declarative base sharing the draw schema's naming convention."""

    metadata = metadata_obj
