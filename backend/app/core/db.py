"""
Database engine.

Tables are created by Alembic revisions (``app/alembic/versions``), never here.
Import ``app.models`` before touching the engine so every table and
relationship is registered on ``SQLModel.metadata``.
"""
from sqlmodel import create_engine

from app.core.config import settings

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)
