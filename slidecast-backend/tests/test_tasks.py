# slidecast-backend/tests/test_tasks.py

import base64
import json
import os

import pytest

import config
import services
import tasks
from conftest import FakeEncoder, FakeResponse, png_bytes
from models import Job, JobState, Summary, UploadedFile, Video


SUMMARY = {
    "summary": "How cells make energy",
    "slides": [{"title": f"Step {i + 1}", "content": f"Detail {i + 1}", "duration": 5} for i in range(6)],
}
SUMMARY_TEXT = json.dumps(SUMMARY)


@pytest.fixture
def worker(session_factory, monkeypatch, api_keys):
    fake = FakeEncoder(narration_seconds=2.0)
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(tasks, "get_encoder", lambda: fake)
    return fake


@pytest.fixture
def fake_apis(monkeypatch):
    mascot = base64.b64encode(png_bytes()).decode()
    calls = []

    def fake_post(url, headers=None, json=None, timeout=None):
        calls.append(url)
        if url.endswith("/chat/completions"):
            content = SUMMARY_TEXT if json["max_tokens"] == 1500 else "A cute cartoon mascot"
            return FakeResponse(json_data={"choices": [{"message": {"content": content}}]})
        if url.endswith("/images/generations"):
            return FakeResponse(json_data={"data": [{"b64_json": mascot}]})
        if json["text"].startswith("slide 4."):
            return FakeResponse(status_code=500)
        return FakeResponse(content=b"mp3")

    monkeypatch.setattr(services.requests, "post", fake_post)
    return calls


def queue_job(session_factory, tmp_path, text="Cells turn glucose into ATP.", metadata=None):
    path = os.path.join(str(tmp_path), "notes.txt")
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)

    db = session_factory()
    try:
        uploaded = UploadedFile(filename="notes.txt", original_filename="notes.txt", file_size=len(text),
                                storage_path=path)
        db.add(uploaded)
        db.flush()
        job = Job(file_id=uploaded.id, state=JobState.QUEUED, job_metadata=metadata or {})
        db.add(job)
        db.commit()
        return job.id
    finally:
        db.close()


def load_job(session_factory, job_id):
    db = session_factory()
    try:
        job = db.query(Job).filter(Job.id == job_id).one()
        db.expunge(job)
        return job
    finally:
        db.close()


def test_job_runs_to_completion(worker, fake_apis, session_factory, tmp_path):
    job_id = queue_job(session_factory, tmp_path)

    tasks.generate_video_task(job_id)

    job = load_job(session_factory, job_id)
    assert job.state == JobState.COMPLETED
    assert job.progress_percent == 100
    assert job.error_message is None
    assert job.started_at is not None and job.completed_at is not None
    assert job.job_metadata["narration"] == "5/6 succeeded"

    db = session_factory()
    try:
        video = db.query(Video).filter(Video.id == job.video_id).one()
        assert video.title == "Step 1"
        assert len(video.slides) == 6
        # narrated slides last 2s + 1s; the slide without audio falls back to 5s + 1s
        assert [s.duration_sec for s in video.slides] == [3.0, 3.0, 3.0, 6.0, 3.0, 3.0]
        summary = db.query(Summary).filter(Summary.file_id == job.file_id).one()
        assert summary.summary_text == "How cells make energy"
        assert len(summary.content) == 6
    finally:
        db.close()
    assert not any(url.endswith("/images/generations") for url in fake_apis)


def test_job_with_mascots_generates_images(worker, fake_apis, session_factory, tmp_path):
    job_id = queue_job(session_factory, tmp_path, metadata={"with_mascots": True})

    tasks.generate_video_task(job_id)

    assert load_job(session_factory, job_id).state == JobState.COMPLETED
    assert sum(url.endswith("/images/generations") for url in fake_apis) == 6


def test_job_fails_on_malformed_summary(worker, session_factory, tmp_path, monkeypatch):
    monkeypatch.setattr(services.requests, "post", lambda *a, **k: FakeResponse(
        json_data={"choices": [{"message": {"content": "not json"}}]}
    ))
    job_id = queue_job(session_factory, tmp_path)

    tasks.generate_video_task(job_id)

    job = load_job(session_factory, job_id)
    assert job.state == JobState.FAILED
    assert "parse" in job.error_message
    assert job.video_id is None


def test_job_fails_when_segment_encoding_fails(session_factory, fake_apis, tmp_path, monkeypatch, api_keys):
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(tasks, "get_encoder", lambda: FakeEncoder(fail_segment=3))
    job_id = queue_job(session_factory, tmp_path)

    tasks.generate_video_task(job_id)

    job = load_job(session_factory, job_id)
    assert job.state == JobState.FAILED
    assert "slide 3" in job.error_message


def test_job_fails_without_api_keys(worker, session_factory, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "ELEVENLABS_API_KEY", "")
    job_id = queue_job(session_factory, tmp_path)

    tasks.generate_video_task(job_id)

    job = load_job(session_factory, job_id)
    assert job.state == JobState.FAILED
    assert "ELEVENLABS_API_KEY" in job.error_message


def test_cancelled_job_is_skipped(worker, fake_apis, session_factory, tmp_path):
    job_id = queue_job(session_factory, tmp_path)
    db = session_factory()
    try:
        db.query(Job).filter(Job.id == job_id).update({Job.state: JobState.CANCELLED})
        db.commit()
    finally:
        db.close()

    tasks.generate_video_task(job_id)

    assert load_job(session_factory, job_id).state == JobState.CANCELLED
    assert fake_apis == []


def test_unknown_job_is_ignored(worker, fake_apis):
    tasks.generate_video_task("does-not-exist")

    assert fake_apis == []
