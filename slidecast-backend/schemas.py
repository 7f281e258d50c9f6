"""
Pydantic models for data validation in the Slidecast video generator.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import JobState, VideoStatus


class SummarizeRequest(BaseModel):
    """Request model for summarizing pasted text."""
    text: str


class SlideData(BaseModel):
    title: str
    content: str = ""
    duration: int = Field(5, gt=0)


class SummarizeResponse(BaseModel):
    summary: str
    slides: List[SlideData]
    error: Optional[str] = None


class TTSRequest(BaseModel):
    slides: List[SlideData]


class TTSResult(BaseModel):
    slide_index: int
    title: str
    audio_data: Optional[str] = None  # data:audio/mpeg;base64,...
    duration: int
    error: Optional[str] = None


class TTSResponse(BaseModel):
    success: bool
    results: List[TTSResult]
    message: str


class MascotRequest(BaseModel):
    slide_count: int = Field(..., ge=1)
    context: Optional[str] = None


class MascotResult(BaseModel):
    slide_index: int
    image_data: Optional[str] = None
    prompt: Optional[str] = None
    error: Optional[str] = None


class MascotResponse(BaseModel):
    success: bool
    results: List[MascotResult]
    message: str


class MascotImage(BaseModel):
    slide_index: int
    image_data: str


class RenderSlidesRequest(BaseModel):
    slides: List[SlideData]
    mascots: List[MascotImage] = []
    preview: bool = False


class RenderSlidesResponse(BaseModel):
    images: List[str]


class VideoSlide(BaseModel):
    title: str = ""
    content: str = ""
    duration: int = Field(5, gt=0)
    slide_image: str
    audio_data: Optional[str] = None
    mascot_image: Optional[str] = None


class VideoGenerationRequest(BaseModel):
    """Request model for assembling rendered slides into one video."""
    slides: List[VideoSlide]
    mascot_image: Optional[str] = None
    title: Optional[str] = None


class VideoGenerationResponse(BaseModel):
    success: bool
    video_id: Optional[str] = None
    video_url: Optional[str] = None
    video_data: Optional[str] = None
    duration: Optional[float] = None
    message: str
    error: Optional[str] = None


class JobResponse(BaseModel):
    """Response when submitting a background generation job."""
    job_id: str
    status: JobState


class SlideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_idx: int
    title: str
    content: str
    image_path: str
    duration_sec: float


class VideoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    duration_sec: float
    file_size: int
    storage_path: str
    thumbnail_path: Optional[str] = None
    tags: List[str]
    status: VideoStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoDetail(VideoOut):
    slides: List[SlideOut] = []


class SummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_id: str
    content: list
    summary_text: str
    bullet_points: List[str]
    created_at: Optional[datetime] = None


class UploadedFileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    original_filename: str
    file_size: int
    mime_type: str
    storage_path: str
    created_at: Optional[datetime] = None
    summary: Optional[SummaryOut] = None


class JobOut(BaseModel):
    """Response for checking background job status."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_id: Optional[str] = None
    video_id: Optional[str] = None
    state: JobState
    progress_percent: int
    error_message: Optional[str] = None
    job_metadata: dict = {}
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    uploaded_file: Optional[UploadedFileOut] = None
    video: Optional[VideoOut] = None


class StatsResponse(BaseModel):
    total_videos: int
    completed_videos: int
    processing_videos: int
    total_jobs: int
    active_jobs: int
    completed_jobs: int
    failed_jobs: int
    total_files: int
    total_storage_used: int
