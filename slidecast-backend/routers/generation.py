"""
Router for video generation endpoints.
Handles summarization, narration, mascot images, slide rendering,
video assembly and file uploads.
"""

import asyncio
import os
import uuid
import logging
import requests
from fastapi import APIRouter, HTTPException, File, Form, UploadFile, Depends
from sqlalchemy.orm import Session
from tasks import generate_video_task
from schemas import (
    SummarizeRequest, SummarizeResponse, SlideData,
    TTSRequest, TTSResponse, TTSResult,
    MascotRequest, MascotResponse, MascotResult,
    RenderSlidesRequest, RenderSlidesResponse,
    VideoGenerationRequest, VideoGenerationResponse,
    JobResponse,
)
from config import (
    GENERATED_VIDEO_DIR, UPLOAD_DIR,
    NARRATION_CONCURRENCY, MASCOT_CONCURRENCY, ConfigurationError, require_setting,
)
from database import get_db, SessionLocal
from encoder import FFmpegEncoder, get_encoder
from models import Job, JobState, UploadedFile
from pipeline import assemble_and_record
from services import (
    AIService, MascotService, NarrationService, SlideSummary, SummaryError,
    decode_data_url, encode_data_url,
)
from slides import PREVIEW_STYLE, CompositeError, MascotCompositor, RenderError, SlideRenderer, SlideStyle, SlideText
from video import ConcatenationError, SegmentEncodingError, SlideClip


# Create the router
router = APIRouter(prefix="/api", tags=["generation"])

ALLOWED_UPLOAD_TYPES = {".txt": "text/plain", ".md": "text/markdown"}


def _require(name: str) -> str:
    try:
        return require_setting(name)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


def get_openai_key() -> str:
    return _require("OPENAI_API_KEY")


def get_elevenlabs_key() -> str:
    return _require("ELEVENLABS_API_KEY")


def get_video_encoder() -> FFmpegEncoder:
    try:
        return get_encoder()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


def _summaries(slides):
    return [SlideSummary(title=s.title, content=s.content, duration=s.duration) for s in slides]


def _decode(value: str, label: str) -> bytes:
    try:
        return decode_data_url(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{label}: {e}")


@router.post("/summarize", response_model=SummarizeResponse)
async def summarize(request: SummarizeRequest, api_key: str = Depends(get_openai_key)):
    """Summarize pasted text into six slides."""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="No text provided.")

    try:
        result = await asyncio.to_thread(AIService(api_key).summarize, request.text)
    except SummaryError as e:
        logging.error(f"Summarization failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return SummarizeResponse(
        summary=result.summary,
        slides=[SlideData(**slide.as_dict()) for slide in result.slides],
    )


@router.post("/tts", response_model=TTSResponse)
async def text_to_speech(request: TTSRequest, api_key: str = Depends(get_elevenlabs_key)):
    """Synthesize one narration clip per slide. Individual failures are reported per slide."""
    if not request.slides:
        raise HTTPException(status_code=400, detail="Slide data is required.")

    batch = await NarrationService(api_key).synthesize_batch(_summaries(request.slides), NARRATION_CONCURRENCY)
    results = [
        TTSResult(
            slide_index=outcome.slide_index,
            title=outcome.extra["title"],
            audio_data=encode_data_url(outcome.payload, "audio/mpeg") if outcome.ok else None,
            duration=outcome.extra["duration"],
            error=outcome.error,
        )
        for outcome in batch.ordered()
    ]
    return TTSResponse(success=True, results=results, message=f"Narration generated for {batch.message} slides")


@router.get("/tts/voices")
async def list_voices(api_key: str = Depends(get_elevenlabs_key)):
    try:
        voices = await asyncio.to_thread(NarrationService(api_key).list_voices)
    except requests.RequestException as e:
        raise HTTPException(status_code=502, detail=f"Could not fetch voices: {e}")
    return {"success": True, "voices": voices}


@router.post("/mascots", response_model=MascotResponse)
async def generate_mascots(request: MascotRequest, api_key: str = Depends(get_openai_key)):
    """Generate one mascot image per slide."""
    batch = await MascotService(api_key).generate_batch(request.slide_count, request.context, MASCOT_CONCURRENCY)
    results = [
        MascotResult(
            slide_index=outcome.slide_index,
            image_data=encode_data_url(outcome.payload, "image/png") if outcome.ok else None,
            prompt=outcome.extra.get("prompt"),
            error=outcome.error,
        )
        for outcome in batch.ordered()
    ]
    return MascotResponse(success=True, results=results, message=f"Mascot images generated for {batch.message} slides")


@router.post("/slides/render", response_model=RenderSlidesResponse)
async def render_slides(request: RenderSlidesRequest):
    """Render blackboard slides as PNG data URLs, with optional mascots."""
    if not request.slides:
        raise HTTPException(status_code=400, detail="Slide data is required.")

    style = PREVIEW_STYLE if request.preview else SlideStyle()
    mascots = {m.slide_index: _decode(m.image_data, f"Mascot {m.slide_index}") for m in request.mascots}
    texts = [SlideText(s.title, s.content, s.duration) for s in request.slides]

    def work():
        images = SlideRenderer(style).render_all(texts)
        return MascotCompositor(style.frame_width).composite_batch(images, mascots)

    try:
        images = await asyncio.to_thread(work)
    except RenderError as e:
        logging.error(f"Slide rendering failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return RenderSlidesResponse(images=[encode_data_url(image, "image/png") for image in images])


@router.post("/video-generation", response_model=VideoGenerationResponse)
async def generate_video(request: VideoGenerationRequest, encoder: FFmpegEncoder = Depends(get_video_encoder)):
    """
    Assemble rendered slides and optional narration into one video.

    A slide's own ``mascot_image`` wins; otherwise the request-level
    ``mascot_image`` is composited onto every slide.
    """
    if not request.slides:
        raise HTTPException(status_code=400, detail="Slide data is required.")

    compositor = MascotCompositor()
    clips = []
    for i, slide in enumerate(request.slides):
        image = _decode(slide.slide_image, f"Slide {i} image")
        mascot_data = slide.mascot_image or request.mascot_image
        if mascot_data:
            try:
                image = compositor.composite(image, _decode(mascot_data, f"Slide {i} mascot"))
            except CompositeError as e:
                logging.warning(f"⚠️ Slide {i}: keeping the plain slide, mascot compositing failed: {e}")
        audio = None
        if slide.audio_data:
            try:
                audio = decode_data_url(slide.audio_data)
            except ValueError as e:
                logging.warning(f"⚠️ Slide {i}: ignoring unreadable narration: {e}")
        clips.append(SlideClip(index=i, title=slide.title, content=slide.content,
                               duration=slide.duration, image=image, audio=audio))

    try:
        delivered = await asyncio.to_thread(
            assemble_and_record, clips, encoder, SessionLocal, request.title, GENERATED_VIDEO_DIR
        )
    except SegmentEncodingError as e:
        raise HTTPException(status_code=500, detail={"slide_index": e.slide_index, "error": str(e)})
    except ConcatenationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return VideoGenerationResponse(
        success=True,
        video_id=delivered.video_id,
        video_url=delivered.video_url,
        video_data=delivered.video_data,
        duration=delivered.result.total_duration,
        message="Video generated successfully!",
    )


@router.post("/upload", response_model=JobResponse)
async def upload_file(
    file: UploadFile = File(...),
    with_mascots: bool = Form(False),
    db: Session = Depends(get_db),
):
    """
    Stores an uploaded text document, creates a job record in the database,
    sends the job to Celery and immediately returns the job ID.
    """
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail=f"Only {', '.join(sorted(ALLOWED_UPLOAD_TYPES))} files are accepted.")

    content = await file.read()
    try:
        content.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Uploaded file must be UTF-8 text.")

    stored_name = f"{uuid.uuid4()}{ext}"
    file_path = os.path.join(UPLOAD_DIR, stored_name)
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    try:
        with open(file_path, "wb") as buffer:
            buffer.write(content)
    except OSError as e:
        logging.error(f"Failed to save upload: {e}")
        raise HTTPException(status_code=500, detail="Failed to save uploaded file.")

    uploaded = UploadedFile(
        filename=stored_name,
        original_filename=file.filename,
        file_size=len(content),
        mime_type=ALLOWED_UPLOAD_TYPES[ext],
        storage_path=file_path,
    )
    db.add(uploaded)
    db.flush()
    job = Job(file_id=uploaded.id, state=JobState.QUEUED, job_metadata={"with_mascots": with_mascots})
    db.add(job)
    db.commit()

    try:
        generate_video_task.delay(job.id)
    except Exception as e:
        logging.error(f"Failed to submit task to Celery: {e}")
        job.state = JobState.FAILED
        job.error_message = "Failed to start the video generation job."
        db.commit()
        raise HTTPException(status_code=500, detail="Failed to start the video generation job.")

    logging.info(f"✨ Job {job.id} submitted for file '{file.filename}'")
    return JobResponse(job_id=job.id, status=job.state)
