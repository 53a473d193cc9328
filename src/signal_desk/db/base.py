"""Declarative ORM base shared by all table modules."""

from sqlalchemy.orm import DeclarativeBase

SCHEMA = "signal_desk"


class Base(DeclarativeBase):
    pass
