"""
CodeVault Database Models

Module Structure:
- base.py: Base class and UUID generator
- codebase.py: Codebase, CodebaseFile

Usage:
    from codevault.models import Codebase, CodebaseFile
"""

from .base import Base, generate_uuid
from .codebase import Codebase, CodebaseFile

__all__ = [
    "Base",
    "generate_uuid",
    "Codebase",
    "CodebaseFile",
]
