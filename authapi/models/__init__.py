"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows about every table when create_all() runs
  2. Other modules can import from authapi.models directly
"""

from authapi.models.account import Account, Role  # noqa: F401
