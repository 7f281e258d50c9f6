"""
Slide-to-video assembly: one still-image segment per slide, then a
stream-copy concat of all segments.
"""

import logging
import os
import shutil
import tempfile
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from config import FALLBACK_NARRATION_SECONDS, SEGMENT_PAD_SECONDS
from encoder import EncoderError, FFmpegEncoder


class SegmentEncodingError(RuntimeError):
    """Raised when ffmpeg fails to produce the segment for one slide."""

    def __init__(self, slide_index: int, diagnostic: str):
        super().__init__(f"Failed to encode video segment for slide {slide_index}: {diagnostic}")
        self.slide_index = slide_index
        self.diagnostic = diagnostic


class ConcatenationError(RuntimeError):
    """Raised when ffmpeg fails to join the segments."""

    def __init__(self, diagnostic: str):
        super().__init__(f"Failed to concatenate video segments: {diagnostic}")
        self.diagnostic = diagnostic


@dataclass
class SlideClip:
    """Everything needed to encode one slide."""
    index: int
    title: str
    content: str
    duration: int
    image: bytes
    audio: Optional[bytes] = None


@dataclass
class VideoSegment:
    index: int
    path: str
    duration: float
    narrated: bool


@dataclass
class AssemblyResult:
    video_id: str
    output_path: str
    segments: List[VideoSegment] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return sum(segment.duration for segment in self.segments)

    @property
    def file_size(self) -> int:
        return os.path.getsize(self.output_path)


def _remove(path: str):
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logging.warning(f"Could not delete temporary file {path}: {e}")


def _output_ok(path: str) -> bool:
    return os.path.exists(path) and os.path.getsize(path) > 0


class SegmentBuilder:
    """
    Encodes one slide image (and optional narration) into a fixed-length segment.

    With ``audio_track`` set, slides without narration get a silent track.
    """

    def __init__(self, encoder: FFmpegEncoder, work_dir: str,
                 pad_seconds: float = SEGMENT_PAD_SECONDS,
                 fallback_seconds: float = FALLBACK_NARRATION_SECONDS,
                 audio_track: bool = False):
        self.encoder = encoder
        self.work_dir = work_dir
        self.pad_seconds = pad_seconds
        self.fallback_seconds = fallback_seconds
        self.audio_track = audio_track

    def segment_duration(self, clip: SlideClip, audio_path: Optional[str]) -> float:
        if audio_path is None:
            return float(clip.duration) + self.pad_seconds

        measured = self.encoder.probe_duration(audio_path)
        if measured is None:
            logging.warning(
                f"⚠️ Could not measure narration for slide {clip.index}; assuming {self.fallback_seconds}s"
            )
            measured = self.fallback_seconds
        return measured + self.pad_seconds

    def build(self, clip: SlideClip) -> VideoSegment:
        prefix = os.path.join(self.work_dir, f"segment_{clip.index}")
        image_path = f"{prefix}_slide.png"
        audio_path = f"{prefix}_audio.mp3" if clip.audio else None
        output_path = f"{prefix}.mp4"

        try:
            with open(image_path, "wb") as f:
                f.write(clip.image)
            if audio_path:
                with open(audio_path, "wb") as f:
                    f.write(clip.audio)

            duration = self.segment_duration(clip, audio_path)
            logging.info(f"🎬 Encoding slide {clip.index}: {duration:.2f}s, narrated={audio_path is not None}")

            try:
                self.encoder.encode_still(image_path, audio_path, duration, output_path,
                                          silent_audio=self.audio_track and audio_path is None)
            except EncoderError as e:
                logging.error(f"❌ Segment {clip.index} failed. Stderr:\n{e.stderr}")
                raise SegmentEncodingError(clip.index, e.stderr or str(e)) from e

            if not _output_ok(output_path):
                raise SegmentEncodingError(clip.index, "encoder finished but produced no output file")
        finally:
            _remove(image_path)
            if audio_path:
                _remove(audio_path)

        return VideoSegment(index=clip.index, path=output_path, duration=duration, narrated=audio_path is not None)


class SegmentConcatenator:
    """Joins segments in order with ffmpeg's concat demuxer."""

    MANIFEST_NAME = "concat_list.txt"

    def __init__(self, encoder: FFmpegEncoder, work_dir: str):
        self.encoder = encoder
        self.work_dir = work_dir

    @staticmethod
    def manifest_line(path: str) -> str:
        escaped = os.path.abspath(path).replace("'", "'\\''")
        return f"file '{escaped}'"

    def concat(self, segments: Sequence[VideoSegment], output_path: str) -> str:
        manifest_path = os.path.join(self.work_dir, self.MANIFEST_NAME)
        try:
            with open(manifest_path, "w", encoding="utf-8") as f:
                f.write("\n".join(self.manifest_line(s.path) for s in segments) + "\n")

            logging.info(f"🧵 Concatenating {len(segments)} segments into {output_path}")
            try:
                self.encoder.concat(manifest_path, output_path)
            except EncoderError as e:
                logging.error(f"❌ Concatenation failed. Stderr:\n{e.stderr}")
                raise ConcatenationError(e.stderr or str(e)) from e

            if not _output_ok(output_path):
                raise ConcatenationError("encoder finished but produced no output file")
        finally:
            _remove(manifest_path)
            for segment in segments:
                _remove(segment.path)

        return output_path


class VideoAssembler:
    """
    Runs the full assembly for a list of slides.

    Segments are built one after another unless ``max_workers`` is greater
    than one; either way they are concatenated in slide order.
    """

    def __init__(self, encoder: FFmpegEncoder, output_dir: str, max_workers: int = 1):
        self.encoder = encoder
        self.output_dir = output_dir
        self.max_workers = max(1, max_workers)

    def _build_segments(self, builder: SegmentBuilder, clips: Sequence[SlideClip]) -> List[VideoSegment]:
        if self.max_workers == 1:
            return [builder.build(clip) for clip in clips]

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(builder.build, clip) for clip in clips]
            by_index = {}
            for future in futures:
                segment = future.result()
                by_index[segment.index] = segment
        return [by_index[clip.index] for clip in clips]

    def assemble(self, clips: Sequence[SlideClip], video_id: Optional[str] = None) -> AssemblyResult:
        if not clips:
            raise ValueError("At least one slide is required to assemble a video.")
        indices = [clip.index for clip in clips]
        if sorted(indices) != list(range(len(clips))):
            raise ValueError(f"Slide indices must be unique and contiguous from 0, got {indices}")

        clips = sorted(clips, key=lambda clip: clip.index)
        video_id = video_id or str(uuid.uuid4())
        os.makedirs(self.output_dir, exist_ok=True)
        output_path = os.path.join(self.output_dir, f"{video_id}.mp4")

        work_dir = tempfile.mkdtemp(prefix=f"slidecast_{video_id}_")
        try:
            narrated = any(clip.audio for clip in clips)
            builder = SegmentBuilder(self.encoder, work_dir, audio_track=narrated)
            segments = self._build_segments(builder, clips)
            logging.info(f"✅ Built {len(segments)} segments for video {video_id}")
            SegmentConcatenator(self.encoder, work_dir).concat(segments, output_path)
        except Exception:
            _remove(output_path)
            raise
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        result = AssemblyResult(video_id=video_id, output_path=output_path, segments=segments)
        logging.info(f"🎥 Video {video_id} assembled: {result.total_duration:.2f}s, {result.file_size} bytes")
        return result
