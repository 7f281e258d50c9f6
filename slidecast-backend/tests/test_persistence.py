# slidecast-backend/tests/test_persistence.py

import base64
import os

from sqlalchemy.exc import SQLAlchemyError

from conftest import FakeEncoder, png_bytes
from models import Slide, Video, VideoStatus
from persistence import DEFAULT_VIDEO_TITLE, INLINE_STORAGE_PATH, build_video, record_video
from pipeline import assemble_and_record, build_clips, render_slides
from services import SlideSummary
from slides import PREVIEW_STYLE, SlideRenderer
from video import AssemblyResult, SlideClip, VideoSegment


def make_result(tmp_path, durations):
    output = os.path.join(str(tmp_path), "vid.mp4")
    with open(output, "wb") as f:
        f.write(b"x" * 128)
    segments = [VideoSegment(index=i, path="", duration=d, narrated=False) for i, d in enumerate(durations)]
    return AssemblyResult(video_id="vid", output_path=output, segments=segments)


def make_clips(titles):
    return [SlideClip(index=i, title=t, content=f"Body {i}", duration=5, image=b"") for i, t in enumerate(titles)]


class BrokenSession:
    def __init__(self):
        self.rolled_back = False
        self.closed = False

    def add(self, obj):
        pass

    def commit(self):
        raise SQLAlchemyError("database is locked")

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


def test_build_video_describes_slides(tmp_path):
    video = build_video(make_result(tmp_path, [6.0, 4.5]), make_clips(["Intro", ""]), "/generated-videos/vid.mp4",
                        "/generated-videos")

    assert video.title == "Intro"
    assert video.description == "2 slides"
    assert video.tags == ["Intro"]
    assert video.duration_sec == 10.5
    assert video.file_size == 128
    assert video.status == VideoStatus.COMPLETED
    assert [s.title for s in video.slides] == ["Intro", "Slide 2"]
    assert [s.duration_sec for s in video.slides] == [6.0, 4.5]
    assert video.slides[1].image_path == "/generated-videos/vid_slide_1.png"


def test_build_video_without_image_prefix_leaves_image_paths_blank(tmp_path):
    video = build_video(make_result(tmp_path, [6.0, 6.0]), make_clips(["A", "B"]), INLINE_STORAGE_PATH, None)

    assert video.storage_path == INLINE_STORAGE_PATH
    assert [s.image_path for s in video.slides] == ["", ""]


def test_build_video_uses_default_title(tmp_path):
    video = build_video(make_result(tmp_path, [6.0]), make_clips([""]), "path", "/generated-videos")

    assert video.title == DEFAULT_VIDEO_TITLE


def test_record_video_saves_rows(tmp_path, session_factory):
    saved = record_video(session_factory, make_result(tmp_path, [6.0, 6.0, 6.0]), make_clips(["A", "B", "C"]),
                         "/generated-videos/vid.mp4", "/generated-videos", title="My deck")

    assert saved == "vid"
    db = session_factory()
    try:
        video = db.query(Video).filter(Video.id == "vid").one()
        assert video.title == "My deck"
        assert [s.order_idx for s in video.slides] == [0, 1, 2]
        assert db.query(Slide).count() == 3
    finally:
        db.close()


def test_record_video_failure_is_not_fatal(tmp_path):
    session = BrokenSession()

    saved = record_video(lambda: session, make_result(tmp_path, [6.0]), make_clips(["A"]), "p", "/generated-videos")

    assert saved is None
    assert session.rolled_back and session.closed
    assert os.path.exists(os.path.join(str(tmp_path), "vid.mp4"))


def test_render_slides_composites_only_given_mascots():
    summaries = [SlideSummary("One", "First"), SlideSummary("Two", "Second")]
    renderer = SlideRenderer(PREVIEW_STYLE)

    plain = render_slides(summaries, renderer=renderer)
    with_mascot = render_slides(summaries, {1: png_bytes()}, renderer=renderer)

    assert with_mascot[0] == plain[0]
    assert with_mascot[1] != plain[1]


def test_build_clips_attaches_narration_by_index():
    summaries = [SlideSummary("One", "First", 4), SlideSummary("Two", "Second", 7)]

    clips = build_clips(summaries, [b"img0", b"img1"], {1: b"mp3"})

    assert [(c.index, c.duration, c.audio) for c in clips] == [(0, 4, None), (1, 7, b"mp3")]


def test_assemble_and_record_local_storage(tmp_path, session_factory):
    clips = build_clips([SlideSummary(f"T{i}", f"C{i}") for i in range(6)], [png_bytes()] * 6)

    delivered = assemble_and_record(clips, FakeEncoder(), session_factory, output_dir=str(tmp_path), ephemeral=False)

    assert delivered.persisted
    assert delivered.video_url == f"/generated-videos/{delivered.video_id}.mp4"
    assert delivered.video_data is None
    assert delivered.result.total_duration == 36.0
    assert os.path.exists(os.path.join(str(tmp_path), f"{delivered.video_id}.mp4"))
    assert os.path.exists(os.path.join(str(tmp_path), f"{delivered.video_id}_slide_5.png"))

    db = session_factory()
    try:
        video = db.query(Video).filter(Video.id == delivered.video_id).one()
        assert video.storage_path == delivered.video_url
        assert video.title == "T0"
    finally:
        db.close()


def test_assemble_and_record_ephemeral_storage_returns_inline_video(tmp_path, session_factory):
    clips = build_clips([SlideSummary("Only", "Slide")], [png_bytes()])

    delivered = assemble_and_record(clips, FakeEncoder(), session_factory, output_dir=str(tmp_path), ephemeral=True)

    assert delivered.video_url is None
    assert base64.b64decode(delivered.video_data) == b"[segment 0]"
    assert os.listdir(str(tmp_path)) == []
    assert not os.path.exists(delivered.result.output_path)
    assert not os.path.exists(os.path.dirname(delivered.result.output_path))

    db = session_factory()
    try:
        video = db.query(Video).filter(Video.id == delivered.video_id).one()
        assert video.storage_path == INLINE_STORAGE_PATH
        assert video.file_size == len(b"[segment 0]")
        assert [s.image_path for s in video.slides] == [""]
    finally:
        db.close()
