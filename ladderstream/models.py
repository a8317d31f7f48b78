"""
Caller-facing models for LadderStream
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    
    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED)


class WatermarkPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


class WatermarkOptions(BaseModel):
    enabled: bool = True
    text: Optional[str] = Field(default=None, max_length=200)
    position: WatermarkPosition = WatermarkPosition.BOTTOM_RIGHT
    opacity: float = Field(default=0.7, ge=0.0, le=1.0)
    font_size: int = Field(default=24, ge=6, le=200)
    
    @property
    def active(self) -> bool:
        return self.enabled and bool(self.text)


class ProcessingOptions(BaseModel):
    generate_thumbnails: bool = True
    thumbnail_count: int = Field(default=5, ge=0, le=100)
    generate_preview: bool = False
    preview_duration_seconds: float = Field(default=30.0, gt=0)
    watermark: Optional[WatermarkOptions] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    callback_url: Optional[str] = None
    
    @property
    def wants_thumbnails(self) -> bool:
        return self.generate_thumbnails and self.thumbnail_count > 0


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    progress: float = 0.0
    stage: Optional[str] = None
    source: str
    output_dir: str
    error_detail: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
