"""
Pydantic schemas for API responses
"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


# ============ Upload Schemas ============

class SkippedFile(BaseModel):
    name: str
    path: Optional[str] = None
    reason: str


class UploadResponse(BaseModel):
    success: bool
    message: str
    directory_id: Optional[str] = None
    uploaded_files: List[str] = []
    skipped_files: List[SkippedFile] = []


# ============ Codebase Schemas ============

class CodebaseSummary(BaseModel):
    directory_id: str
    created_at: datetime
    file_count: int


class CodebaseListResponse(BaseModel):
    success: bool = True
    codebases: List[CodebaseSummary]


class FileInfo(BaseModel):
    name: str
    size: int
    path: str


class CodebaseFilesResponse(BaseModel):
    success: bool = True
    directory_id: str
    files: List[FileInfo]


class HealthResponse(BaseModel):
    status: str
    service: Optional[str] = None
    version: Optional[str] = None
