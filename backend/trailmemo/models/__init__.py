"""
TrailMemo Backend — ORM Models
================================

Importing this package registers every table on `Base.metadata`, which is
what Alembic autogenerate and the test fixtures rely on.
"""

from trailmemo.models.memo import Location, Memo
from trailmemo.models.user import User

__all__ = ["Location", "Memo", "User"]
