"""
Metadata ledger models

Contains:
- Codebase: one uploaded codebase
- CodebaseFile: one stored file of a codebase

The ledger mirrors what the storage tier holds; the storage tier's
directories remain authoritative.
"""
from sqlalchemy import (
    Column, String, Integer, BigInteger, DateTime, Text,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, generate_uuid


class Codebase(Base):
    __tablename__ = "codebases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    file_count = Column(Integer, default=0, nullable=False)

    # Relationships
    files = relationship(
        "CodebaseFile",
        back_populates="codebase",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "directory_id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "file_count": self.file_count,
        }


class CodebaseFile(Base):
    """A file row; file_size is the byte count the storage tier actually wrote"""
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    codebase_id = Column(String(36), ForeignKey("codebases.id", ondelete="CASCADE"), nullable=False)

    file_path = Column(Text, nullable=False)
    file_name = Column(Text, nullable=False)
    file_size = Column(BigInteger, nullable=False)

    created_at = Column(DateTime, default=func.now(), nullable=False)

    codebase = relationship("Codebase", back_populates="files")

    __table_args__ = (
        Index("idx_files_codebase_id", "codebase_id"),
    )
