"""
Control Plane Database

A single key -> JSON document table. The control plane stores one versioned
state document per key; older schema keys are kept until migrated.
"""

import logging
import os
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON, String, create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from control import config

logger = logging.getLogger(__name__)

Base = declarative_base()


class StateDocument(Base):
    """Opaque JSON blob addressed by schema key"""
    __tablename__ = "state_documents"

    key = Column(String, primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def create_session_factory(database_url: str):
    """Build engine + sessionmaker for `database_url` (sqlite paths are created on demand)"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        path = database_url.split("///", 1)[-1]
        if path and path != ":memory:" and "///" in database_url:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    engine = create_engine(database_url, connect_args=connect_args)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine, SessionLocal = create_session_factory(config.DATABASE_URL)


def init_db(bind=None):
    """Create schema and apply additive migrations"""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    inspector = inspect(bind)
    if "state_documents" in inspector.get_table_names():
        cols = {col["name"] for col in inspector.get_columns("state_documents")}
        if "updated_at" not in cols:
            with bind.begin() as conn:
                conn.execute(text("ALTER TABLE state_documents ADD COLUMN updated_at DATETIME"))
            logger.info("Added state_documents.updated_at column")
