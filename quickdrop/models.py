"""
Pydantic models for API responses.
"""
from pydantic import BaseModel
from typing import List


class UploadResponse(BaseModel):
    """Response model after creating a drop."""
    code: str
    expires_at: str
    files: List[str]
    skipped: List[str] = []


class ItemResponse(BaseModel):
    """Response model for a live drop."""
    code: str
    text: str
    files: List[str]
    expires_at: str
