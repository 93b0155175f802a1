"""Persistence layer: engine, ORM models, repositories and the transaction runner."""

from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.transaction import with_transaction

__all__ = ["Database", "with_transaction"]
