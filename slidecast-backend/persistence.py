"""
Records finished videos and their slide manifests in the database.
"""

import logging
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Slide, Video, VideoStatus
from video import AssemblyResult, SlideClip

DEFAULT_VIDEO_TITLE = "Generated video"

# Stored in place of a path for videos returned inline and never kept on disk
INLINE_STORAGE_PATH = "inline"


def slide_image_path(url_prefix: Optional[str], video_id: str, index: int) -> str:
    if not url_prefix:
        return ""
    return f"{url_prefix}/{video_id}_slide_{index}.png"


def build_video(result: AssemblyResult, clips: Sequence[SlideClip], storage_path: str,
                image_prefix: Optional[str], title: Optional[str] = None) -> Video:
    """
    Build (without saving) the Video row and its Slide rows for an assembly result.

    Without an ``image_prefix`` no slide images were kept and ``image_path`` is blank.
    """
    durations = {segment.index: segment.duration for segment in result.segments}
    video = Video(
        id=result.video_id,
        title=title or (clips[0].title if clips and clips[0].title else DEFAULT_VIDEO_TITLE),
        description=f"{len(clips)} slides",
        duration_sec=result.total_duration,
        file_size=result.file_size,
        storage_path=storage_path,
        tags=[clip.title for clip in clips if clip.title],
        status=VideoStatus.COMPLETED,
    )
    for clip in clips:
        title_text = clip.title or f"Slide {clip.index + 1}"
        video.slides.append(
            Slide(
                order_idx=clip.index,
                title=title_text,
                content=clip.content or title_text,
                image_path=slide_image_path(image_prefix, result.video_id, clip.index),
                duration_sec=durations[clip.index],
            )
        )
    return video


def record_video(session_factory: Callable[[], Session], result: AssemblyResult, clips: Sequence[SlideClip],
                 storage_path: str, image_prefix: Optional[str], title: Optional[str] = None) -> Optional[str]:
    """
    Save the video and slide rows and return the video id.

    Database failures are logged and ``None`` is returned; the video file on
    disk is left untouched.
    """
    db = session_factory()
    try:
        video = build_video(result, clips, storage_path, image_prefix, title=title)
        db.add(video)
        db.commit()
        logging.info(f"💾 Saved video {video.id} with {len(clips)} slides")
        return video.id
    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"❌ Could not save metadata for video {result.video_id}: {e}")
        return None
    finally:
        db.close()
