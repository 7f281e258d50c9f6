# tasks.py

import asyncio
import datetime
import logging
import traceback

from celery import Celery

from database import SessionLocal
from models import Job, JobState, Summary
from config import (
    CELERY_BROKER_URL,
    MASCOT_CONCURRENCY,
    NARRATION_CONCURRENCY,
    require_setting,
)
from encoder import get_encoder
from pipeline import assemble_and_record, build_clips, render_slides
from services import AIService, MascotService, NarrationService

celery = Celery('tasks', broker=CELERY_BROKER_URL, backend=CELERY_BROKER_URL)
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")


def _now():
    return datetime.datetime.now(datetime.timezone.utc)


def _update(db, job: Job, **fields):
    for name, value in fields.items():
        setattr(job, name, value)
    db.commit()


def run_job(db, job: Job):
    """Summarize the job's uploaded file and turn the summary into a narrated video."""
    openai_key = require_setting("OPENAI_API_KEY")
    elevenlabs_key = require_setting("ELEVENLABS_API_KEY")
    encoder = get_encoder()

    uploaded = job.uploaded_file
    if uploaded is None:
        raise ValueError("Job has no uploaded file.")
    with open(uploaded.storage_path, "r", encoding="utf-8") as f:
        text = f.read()
    if not text.strip():
        raise ValueError("Uploaded file is empty.")

    summary = AIService(openai_key).summarize(text)
    db.add(Summary(
        file_id=uploaded.id,
        content=[slide.as_dict() for slide in summary.slides],
        summary_text=summary.summary,
        bullet_points=[slide.content for slide in summary.slides],
    ))
    _update(db, job, progress_percent=25)

    mascots = {}
    if job.job_metadata.get("with_mascots"):
        batch = asyncio.run(MascotService(openai_key).generate_batch(
            len(summary.slides), context=summary.summary, concurrency=MASCOT_CONCURRENCY
        ))
        mascots = batch.payloads()
    _update(db, job, progress_percent=40)

    images = render_slides(summary.slides, mascots)
    _update(db, job, progress_percent=55)

    narration = asyncio.run(NarrationService(elevenlabs_key).synthesize_batch(
        summary.slides, concurrency=NARRATION_CONCURRENCY
    ))
    _update(db, job, progress_percent=70, job_metadata={**job.job_metadata, "narration": narration.message})

    clips = build_clips(summary.slides, images, narration.payloads())
    delivered = assemble_and_record(clips, encoder, SessionLocal, ephemeral=False)
    _update(db, job, progress_percent=95)
    return delivered


@celery.task
def generate_video_task(job_id: str):
    """
    Background task that drives one summarize-to-video run and records its
    progress on the job row.
    """
    db = SessionLocal()

    try:
        job = db.query(Job).filter(Job.id == job_id).first()
        if not job:
            logging.error(f"❌ Worker received unknown job {job_id}")
            return
        if job.state != JobState.QUEUED:
            logging.info(f"⏭️ Skipping job {job_id} in state {job.state.value}")
            return

        logging.info(f"📝 Worker received job {job_id}")
        _update(db, job, state=JobState.PROCESSING, progress_percent=10, started_at=_now())

        delivered = run_job(db, job)

        _update(
            db, job,
            state=JobState.COMPLETED,
            progress_percent=100,
            video_id=delivered.video_id if delivered.persisted else None,
            completed_at=_now(),
        )
        logging.info(f"✅ Worker finished job {job_id}. Video at: {delivered.video_url}")

    except Exception as e:
        logging.error(f"❌ Worker failed job {job_id}. Error: {e}")
        traceback.print_exc()

        db.rollback()
        job = db.query(Job).filter(Job.id == job_id).first()
        if job:
            _update(db, job, state=JobState.FAILED, error_message=str(e), completed_at=_now())
    finally:
        db.close()
