# slidecast-backend/tests/conftest.py

import io
import os
import sys
import tempfile

import pytest
import requests

# Keep generated media and the default database out of the working tree
os.environ["MEDIA_DIR"] = tempfile.mkdtemp(prefix="slidecast-test-media-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(os.environ['MEDIA_DIR'], 'test.db')}"
os.environ["EPHEMERAL_STORAGE"] = "false"

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from encoder import EncoderError


def png_bytes(size=(10, 10), color=(255, 0, 0, 255), mode="RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeEncoder:
    """Stands in for FFmpegEncoder: writes marker bytes instead of running ffmpeg."""

    binary = "ffmpeg"

    def __init__(self, narration_seconds=None, fail_segment=None, fail_concat=False, write_output=True):
        self.narration_seconds = narration_seconds
        self.fail_segment = fail_segment
        self.fail_concat = fail_concat
        self.write_output = write_output
        self.encoded = []
        self.silent_tracks = []
        self.manifests = []

    def probe_duration(self, path):
        return self.narration_seconds

    def encode_still(self, image_path, audio_path, duration, output_path, silent_audio=False):
        index = int(os.path.basename(output_path).split("_")[1].split(".")[0])
        self.encoded.append((index, audio_path is not None, duration))
        if silent_audio:
            self.silent_tracks.append(index)
        if index == self.fail_segment:
            raise EncoderError("FFmpeg exited with an error", f"segment {index}: Invalid data found")
        if self.write_output:
            with open(output_path, "wb") as f:
                f.write(f"[segment {index}]".encode())

    def concat(self, manifest_path, output_path):
        with open(manifest_path, encoding="utf-8") as f:
            lines = f.read().splitlines()
        self.manifests.append(lines)
        if self.fail_concat:
            raise EncoderError("FFmpeg exited with an error", "concat: Impossible to open segment")
        with open(output_path, "wb") as out:
            for line in lines:
                with open(line[len("file '"):-1], "rb") as segment:
                    out.write(segment.read())


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b""):
        self.status_code = status_code
        self._json = json_data or {}
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def json(self):
        return self._json


@pytest.fixture
def api_keys(monkeypatch):
    import config

    monkeypatch.setattr(config, "OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setattr(config, "ELEVENLABS_API_KEY", "test-elevenlabs-key")
