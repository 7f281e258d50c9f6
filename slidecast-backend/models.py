# models.py

import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class VideoStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobState(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UploadedFile(Base):
    """Source document uploaded for summarization."""

    __tablename__ = "uploaded_files"

    id = Column(String(36), primary_key=True, index=True, default=_new_id)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(100), nullable=False, default="text/plain")
    storage_path = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    summary = relationship("Summary", back_populates="file", uselist=False, cascade="all, delete-orphan")


class Summary(Base):
    """Six-bullet summary of an uploaded file."""

    __tablename__ = "summaries"

    id = Column(String(36), primary_key=True, index=True, default=_new_id)
    file_id = Column(String(36), ForeignKey("uploaded_files.id", ondelete="CASCADE"), nullable=False, unique=True)
    content = Column(JSON, nullable=False, default=list)  # slide dicts as returned by the summarizer
    summary_text = Column(Text, nullable=False, default="")
    bullet_points = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    file = relationship("UploadedFile", back_populates="summary")


class Video(Base):
    """A finished video and its slide manifest."""

    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, index=True, default=_new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_sec = Column(Float, nullable=False, default=0.0)
    file_size = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(500), nullable=False)
    thumbnail_path = Column(String(500), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    status = Column(SQLEnum(VideoStatus), default=VideoStatus.PROCESSING, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    slides = relationship(
        "Slide",
        back_populates="video",
        cascade="all, delete-orphan",
        order_by="Slide.order_idx",
    )


class Slide(Base):
    __tablename__ = "slides"

    id = Column(String(36), primary_key=True, index=True, default=_new_id)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    order_idx = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    image_path = Column(String(500), nullable=False)
    duration_sec = Column(Float, nullable=False)

    video = relationship("Video", back_populates="slides")


class Job(Base):
    """Job model for tracking summarize-to-video runs."""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, index=True, default=_new_id)
    file_id = Column(String(36), ForeignKey("uploaded_files.id", ondelete="SET NULL"), nullable=True)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="SET NULL"), nullable=True)
    state = Column(SQLEnum(JobState), default=JobState.QUEUED, nullable=False)
    progress_percent = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    job_metadata = Column("metadata", JSON, nullable=False, default=dict)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    uploaded_file = relationship("UploadedFile")
    video = relationship("Video")
