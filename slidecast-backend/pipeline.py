"""
Glue between the slide renderer, the assembler and the database.
Shared by the HTTP routes and the background worker.
"""

import base64
import logging
import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from config import EPHEMERAL_STORAGE, GENERATED_VIDEO_DIR, GENERATED_VIDEO_URL_PREFIX, SEGMENT_WORKERS
from encoder import FFmpegEncoder
from persistence import INLINE_STORAGE_PATH, record_video
from services import SlideSummary
from slides import MascotCompositor, SlideRenderer, SlideText
from video import AssemblyResult, SlideClip, VideoAssembler


@dataclass
class DeliveredVideo:
    video_id: str
    result: AssemblyResult
    persisted: bool
    video_url: Optional[str] = None
    video_data: Optional[str] = None


def render_slides(summaries: Sequence[SlideSummary], mascots: Optional[Dict[int, bytes]] = None,
                  renderer: Optional[SlideRenderer] = None) -> List[bytes]:
    """Render every summary as a blackboard slide, compositing mascots where given."""
    renderer = renderer or SlideRenderer()
    images = renderer.render_all([SlideText(s.title, s.content, s.duration) for s in summaries])
    if mascots:
        images = MascotCompositor(renderer.style.frame_width).composite_batch(images, mascots)
    return images


def build_clips(summaries: Sequence[SlideSummary], images: Sequence[bytes],
                narration: Optional[Dict[int, bytes]] = None) -> List[SlideClip]:
    narration = narration or {}
    return [
        SlideClip(
            index=i,
            title=summary.title,
            content=summary.content,
            duration=summary.duration,
            image=images[i],
            audio=narration.get(i),
        )
        for i, summary in enumerate(summaries)
    ]


def _save_slide_images(clips: Sequence[SlideClip], video_id: str, output_dir: str):
    for clip in clips:
        path = os.path.join(output_dir, f"{video_id}_slide_{clip.index}.png")
        with open(path, "wb") as f:
            f.write(clip.image)


def _record(session_factory, result, clips, storage_path, image_prefix, title) -> Optional[str]:
    saved_id = record_video(session_factory, result, clips, storage_path, image_prefix, title=title)
    if saved_id is None:
        logging.warning(f"⚠️ Video {result.video_id} was produced but its metadata was not saved")
    return saved_id


def assemble_and_record(
    clips: Sequence[SlideClip],
    encoder: FFmpegEncoder,
    session_factory: Callable[[], Session],
    title: Optional[str] = None,
    output_dir: str = GENERATED_VIDEO_DIR,
    ephemeral: bool = EPHEMERAL_STORAGE,
    max_workers: int = SEGMENT_WORKERS,
) -> DeliveredVideo:
    """
    Assemble ``clips`` into one video, store it and record its metadata.

    With local storage the video is served from ``GENERATED_VIDEO_URL_PREFIX``;
    with ephemeral storage it is encoded in a private temp dir, returned inline
    and deleted; its row then carries ``INLINE_STORAGE_PATH`` and no slide images.
    """
    video_id = str(uuid.uuid4())
    if not ephemeral:
        result = VideoAssembler(encoder, output_dir, max_workers=max_workers).assemble(clips, video_id=video_id)
        _save_slide_images(clips, video_id, output_dir)
        video_url = f"{GENERATED_VIDEO_URL_PREFIX}/{video_id}.mp4"
        saved_id = _record(session_factory, result, clips, video_url, GENERATED_VIDEO_URL_PREFIX, title)
        return DeliveredVideo(video_id=video_id, result=result, persisted=saved_id is not None, video_url=video_url)

    temp_dir = tempfile.mkdtemp(prefix=f"slidecast_inline_{video_id}_")
    try:
        result = VideoAssembler(encoder, temp_dir, max_workers=max_workers).assemble(clips, video_id=video_id)
        saved_id = _record(session_factory, result, clips, INLINE_STORAGE_PATH, None, title)
        with open(result.output_path, "rb") as f:
            video_data = base64.b64encode(f.read()).decode("ascii")
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
    return DeliveredVideo(video_id=video_id, result=result, persisted=saved_id is not None, video_data=video_data)
