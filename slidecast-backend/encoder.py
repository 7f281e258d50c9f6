"""
Process-wide handle to the ffmpeg/ffprobe binaries.
"""

import logging
import shutil
import threading
from typing import List, Optional

import ffmpeg

from config import FFMPEG_BINARY, FFPROBE_BINARY, ConfigurationError


class EncoderUnavailableError(ConfigurationError):
    """Raised when the ffmpeg or ffprobe binary cannot be found."""


class EncoderError(RuntimeError):
    """Raised when an ffmpeg invocation exits with an error."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


def _stderr_text(error: ffmpeg.Error) -> str:
    return error.stderr.decode("utf8", errors="replace").strip() if error.stderr else "Unknown FFmpeg error"


class FFmpegEncoder:
    """Builds and runs the ffmpeg commands used by the video pipeline."""

    VIDEO_CODEC = "libx264"
    AUDIO_CODEC = "aac"
    PIXEL_FORMAT = "yuv420p"
    AUDIO_RATE = 44100
    AUDIO_CHANNELS = 2
    SILENCE_SOURCE = f"anullsrc=r={AUDIO_RATE}:cl=stereo"

    def __init__(self, binary: str = "ffmpeg", probe_binary: str = "ffprobe"):
        self.binary = binary
        self.probe_binary = probe_binary

    @classmethod
    def locate(cls, binary: str = FFMPEG_BINARY, probe_binary: str = FFPROBE_BINARY) -> "FFmpegEncoder":
        """Resolve both binaries on ``PATH`` or raise ``EncoderUnavailableError``."""
        resolved = shutil.which(binary)
        resolved_probe = shutil.which(probe_binary)
        if not resolved:
            raise EncoderUnavailableError(f"FFmpeg binary '{binary}' was not found on PATH.")
        if not resolved_probe:
            raise EncoderUnavailableError(f"FFprobe binary '{probe_binary}' was not found on PATH.")
        logging.info(f"🎞️ Using encoder {resolved} (probe: {resolved_probe})")
        return cls(resolved, resolved_probe)

    def still_segment(self, image_path: str, audio_path: Optional[str], duration: float, output_path: str,
                      silent_audio: bool = False):
        """
        Return the ffmpeg-python stream that loops ``image_path`` for ``duration`` seconds.

        Narration is padded with silence so ``-t`` sets the length even when the
        audio is shorter. With ``silent_audio`` a slide without narration still
        gets an audio track, keeping every segment of a narrated video in the
        same stream layout for the stream-copy concat.
        """
        video = ffmpeg.input(image_path, loop=1, t=duration).video
        options = {
            "vcodec": self.VIDEO_CODEC,
            "pix_fmt": self.PIXEL_FORMAT,
            "t": duration,
        }
        if audio_path:
            audio = ffmpeg.input(audio_path).audio.filter("apad")
        elif silent_audio:
            audio = ffmpeg.input(self.SILENCE_SOURCE, f="lavfi").audio
        else:
            return ffmpeg.output(video, output_path, **options)

        options.update({
            "acodec": self.AUDIO_CODEC,
            "ar": self.AUDIO_RATE,
            "ac": self.AUDIO_CHANNELS,
            "shortest": None,
        })
        return ffmpeg.output(video, audio, output_path, **options)

    def concat_stream(self, manifest_path: str, output_path: str):
        return ffmpeg.input(manifest_path, format="concat", safe=0).output(output_path, c="copy")

    def compile(self, stream) -> List[str]:
        return ffmpeg.compile(stream, cmd=self.binary, overwrite_output=True)

    def _run(self, stream):
        try:
            ffmpeg.run(stream, cmd=self.binary, capture_stdout=True, capture_stderr=True, overwrite_output=True)
        except ffmpeg.Error as e:
            stderr = _stderr_text(e)
            raise EncoderError(f"FFmpeg exited with an error: {stderr.splitlines()[-1] if stderr else ''}", stderr) from e
        except OSError as e:
            raise EncoderError(f"Could not start FFmpeg: {e}", str(e)) from e

    def encode_still(self, image_path: str, audio_path: Optional[str], duration: float, output_path: str,
                     silent_audio: bool = False):
        self._run(self.still_segment(image_path, audio_path, duration, output_path, silent_audio=silent_audio))

    def concat(self, manifest_path: str, output_path: str):
        self._run(self.concat_stream(manifest_path, output_path))

    def probe_duration(self, path: str) -> Optional[float]:
        """Return the container duration of ``path`` in seconds, or ``None`` if it can't be measured."""
        try:
            info = ffmpeg.probe(path, cmd=self.probe_binary)
            return float(info["format"]["duration"])
        except ffmpeg.Error as e:
            logging.warning(f"FFprobe could not read {path}: {_stderr_text(e)}")
        except (OSError, KeyError, TypeError, ValueError) as e:
            logging.warning(f"Could not measure duration of {path}: {e}")
        return None


_encoder: Optional[FFmpegEncoder] = None
_encoder_lock = threading.Lock()


def get_encoder() -> FFmpegEncoder:
    """Return the shared encoder, locating the binaries on first use."""
    global _encoder
    if _encoder is None:
        with _encoder_lock:
            if _encoder is None:
                _encoder = FFmpegEncoder.locate()
    return _encoder
