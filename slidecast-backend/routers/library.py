"""
Router for browsing stored videos, uploaded files and jobs.
"""

import os
import logging
from typing import List
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import FileResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from schemas import JobOut, StatsResponse, SummaryOut, UploadedFileOut, VideoDetail, VideoOut
from config import GENERATED_VIDEO_DIR, GENERATED_VIDEO_URL_PREFIX, MEDIA_DIR
from database import get_db
from models import Job, JobState, Summary, UploadedFile, Video, VideoStatus
from persistence import INLINE_STORAGE_PATH


router = APIRouter(prefix="/api", tags=["library"])

ACTIVE_STATES = (JobState.QUEUED, JobState.PROCESSING)


def local_path(stored: str) -> str:
    """Map a stored ``/generated-videos/...`` URL back to its file on disk."""
    if stored and stored.startswith(GENERATED_VIDEO_URL_PREFIX + "/"):
        return os.path.join(GENERATED_VIDEO_DIR, os.path.basename(stored))
    return stored


def _get_or_404(db: Session, model, item_id: str, label: str):
    item = db.query(model).filter(model.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail=f"{label} not found.")
    return item


@router.get("/videos", response_model=List[VideoOut])
async def list_videos(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)):
    videos = db.query(Video).order_by(Video.created_at.desc()).offset(offset).limit(limit).all()
    return [VideoOut.model_validate(v) for v in videos]


@router.get("/videos/{video_id}", response_model=VideoDetail)
async def get_video(video_id: str, db: Session = Depends(get_db)):
    """Returns a video together with its ordered slide manifest."""
    return VideoDetail.model_validate(_get_or_404(db, Video, video_id, "Video"))


@router.get("/videos/{video_id}/file")
async def get_video_file(video_id: str, db: Session = Depends(get_db)):
    """
    Safely serves a stored video file from the server's media directory.
    """
    video = _get_or_404(db, Video, video_id, "Video")
    if video.storage_path == INLINE_STORAGE_PATH:
        raise HTTPException(status_code=404, detail="Video was returned inline and is not stored on the server.")
    path = local_path(video.storage_path)

    if not os.path.abspath(path).startswith(os.path.abspath(MEDIA_DIR)):
        raise HTTPException(status_code=403, detail="Forbidden: Access to this path is not allowed.")

    if not os.path.exists(path):
        raise HTTPException(status_code=404, detail="Video file not found.")

    return FileResponse(path, media_type="video/mp4", filename=os.path.basename(path))


@router.delete("/videos/{video_id}")
async def delete_video(video_id: str, db: Session = Depends(get_db)):
    """Deletes a video row, its slides and the files stored for them."""
    video = _get_or_404(db, Video, video_id, "Video")
    stored = [video.storage_path] + [s.image_path for s in video.slides]
    paths = [local_path(p) for p in stored if p and p != INLINE_STORAGE_PATH]

    db.query(Job).filter(Job.video_id == video_id).update({Job.video_id: None}, synchronize_session=False)
    db.delete(video)
    db.commit()

    for path in paths:
        if os.path.abspath(path).startswith(os.path.abspath(MEDIA_DIR)) and os.path.exists(path):
            os.remove(path)
    logging.info(f"🗑️ Deleted video {video_id}")
    return {"success": True, "video_id": video_id}


@router.get("/files", response_model=List[UploadedFileOut])
async def list_files(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)):
    files = db.query(UploadedFile).order_by(UploadedFile.created_at.desc()).offset(offset).limit(limit).all()
    return [UploadedFileOut.model_validate(f) for f in files]


@router.get("/files/{file_id}/summary", response_model=SummaryOut)
async def get_file_summary(file_id: str, db: Session = Depends(get_db)):
    _get_or_404(db, UploadedFile, file_id, "File")
    summary = db.query(Summary).filter(Summary.file_id == file_id).first()
    if not summary:
        raise HTTPException(status_code=404, detail="Summary not found.")
    return SummaryOut.model_validate(summary)


@router.get("/jobs", response_model=List[JobOut])
async def list_jobs(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)):
    jobs = db.query(Job).order_by(Job.created_at.desc()).offset(offset).limit(limit).all()
    return [JobOut.model_validate(j) for j in jobs]


@router.get("/jobs/active", response_model=List[JobOut])
async def list_active_jobs(db: Session = Depends(get_db)):
    jobs = db.query(Job).filter(Job.state.in_(ACTIVE_STATES)).order_by(Job.created_at.desc()).all()
    return [JobOut.model_validate(j) for j in jobs]


@router.get("/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str, db: Session = Depends(get_db)):
    """
    Checks the status of a job by querying the database.
    """
    return JobOut.model_validate(_get_or_404(db, Job, job_id, "Job"))


@router.post("/jobs/{job_id}/cancel", response_model=JobOut)
async def cancel_job(job_id: str, db: Session = Depends(get_db)):
    """Cancels a job that has not been picked up by a worker yet."""
    job = _get_or_404(db, Job, job_id, "Job")
    if job.state != JobState.QUEUED:
        raise HTTPException(status_code=409, detail=f"Job is {job.state.value} and can no longer be cancelled.")

    job.state = JobState.CANCELLED
    db.commit()
    db.refresh(job)
    logging.info(f"🛑 Cancelled job {job_id}")
    return JobOut.model_validate(job)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(db: Session = Depends(get_db)):
    """Dashboard counters over videos, jobs and uploaded files."""

    def count_videos(*criteria):
        return db.query(func.count(Video.id)).filter(*criteria).scalar() or 0

    def count_jobs(*criteria):
        return db.query(func.count(Job.id)).filter(*criteria).scalar() or 0

    video_bytes = db.query(func.coalesce(func.sum(Video.file_size), 0)).scalar() or 0
    file_bytes = db.query(func.coalesce(func.sum(UploadedFile.file_size), 0)).scalar() or 0

    return StatsResponse(
        total_videos=count_videos(),
        completed_videos=count_videos(Video.status == VideoStatus.COMPLETED),
        processing_videos=count_videos(Video.status == VideoStatus.PROCESSING),
        total_jobs=count_jobs(),
        active_jobs=count_jobs(Job.state.in_(ACTIVE_STATES)),
        completed_jobs=count_jobs(Job.state == JobState.COMPLETED),
        failed_jobs=count_jobs(Job.state == JobState.FAILED),
        total_files=db.query(func.count(UploadedFile.id)).scalar() or 0,
        total_storage_used=int(video_bytes) + int(file_bytes),
    )
