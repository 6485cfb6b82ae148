"""
Base model utilities for CodeVault

This module contains:
- SQLAlchemy Base class
- UUID generation utility
"""
from sqlalchemy.orm import declarative_base
import uuid

Base = declarative_base()


def generate_uuid() -> str:
    """Generate a new UUID string for codebase identifiers"""
    return str(uuid.uuid4())
