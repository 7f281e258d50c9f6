"""
Configuration file for the Slidecast video generator.
Contains all global constants and prompt engineering templates.
"""

import os

# --- Constants ---
PROJECT_ROOT = os.getcwd()
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(PROJECT_ROOT, 'slidecast.db')}")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")

MEDIA_DIR = os.getenv("MEDIA_DIR", os.path.join(PROJECT_ROOT, "media"))
UPLOAD_DIR = os.path.join(MEDIA_DIR, "uploads")
GENERATED_VIDEO_DIR = os.path.join(MEDIA_DIR, "generated-videos")
GENERATED_VIDEO_URL_PREFIX = "/generated-videos"

# When set, only ephemeral storage is available and finished videos are
# returned inline as base64 instead of by URL.
EPHEMERAL_STORAGE = os.getenv("EPHEMERAL_STORAGE", "").lower() in ("1", "true", "yes")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# --- External services ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_API_URL = os.getenv("OPENAI_API_URL", "https://api.openai.com/v1")
SUMMARY_MODEL = os.getenv("SUMMARY_MODEL", "gpt-3.5-turbo")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "dall-e-3")

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_API_URL = os.getenv("ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "WzMnDIgiICcj1oXbUBO0")
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
ELEVENLABS_VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}

REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "120"))
NARRATION_CONCURRENCY = int(os.getenv("NARRATION_CONCURRENCY", "1"))
MASCOT_CONCURRENCY = int(os.getenv("MASCOT_CONCURRENCY", "1"))

# --- Encoder ---
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.getenv("FFPROBE_BINARY", "ffprobe")
SEGMENT_WORKERS = int(os.getenv("SEGMENT_WORKERS", "1"))
SEGMENT_PAD_SECONDS = 1.0
FALLBACK_NARRATION_SECONDS = 5.0
DEFAULT_SLIDE_SECONDS = 5

# --- Slides ---
SLIDE_COUNT = 6
SLIDE_WIDTH = 1080
SLIDE_HEIGHT = 1920
SLIDE_FONT_PATH = os.getenv("SLIDE_FONT_PATH", "")
SLIDE_TEXTURE_SEED = 0

# --- Prompt Engineering Section ---

SUMMARY_SYSTEM_PROMPT = """You are a summarization expert producing short educational videos.
Summarize the given text into EXACTLY 6 key points.
Each point becomes a slide that is shown for 5 seconds.

VERY IMPORTANT RULES:
1.  Produce exactly 6 bullet points, no more and no less.
2.  Each point must be readable within 5 seconds (30-50 characters of content).
3.  Prefer content with high educational value.
4.  Order the points logically.
5.  Use a polite, explanatory teaching tone.
6.  Respond ONLY with JSON in the following shape, no markdown:

{
  "summary": "overall summary of the text (under 100 characters)",
  "slides": [
    {"title": "slide title", "content": "slide content (30-50 characters)", "duration": 5}
  ]
}
"""

SUMMARY_USER_TEMPLATE = "Summarize the following text into 6 slides of 5 seconds each:\n\n{text}"

MASCOT_PROMPTS = [
    "A cute cartoon mascot wearing a business suit with glasses, friendly smile, simple minimalist style, PNG transparent background",
    "A cute cartoon mascot wearing casual clothes with a cap, thumbs up pose, simple minimalist style, PNG transparent background",
    "A cute cartoon mascot wearing a lab coat with safety goggles, holding a clipboard, simple minimalist style, PNG transparent background",
    "A cute cartoon mascot wearing a chef's hat and apron, holding a wooden spoon, simple minimalist style, PNG transparent background",
    "A cute cartoon mascot wearing a graduation cap and gown, holding a diploma, simple minimalist style, PNG transparent background",
    "A cute cartoon mascot wearing a superhero cape and mask, heroic pose, simple minimalist style, PNG transparent background",
]

MASCOT_REFINE_SYSTEM_PROMPT = (
    "You are a creative assistant that generates image prompts for a cute cartoon mascot "
    "based on educational content context. Always include "
    "\"simple minimalist style, PNG transparent background\" in your response."
)

MASCOT_REFINE_USER_TEMPLATE = (
    "Based on this educational context: \"{context}\", create a single image prompt for the "
    "mascot character that would fit this topic. Keep it simple and professional. "
    "Start with \"A cute cartoon mascot\""
)


class ConfigurationError(RuntimeError):
    """Raised when a credential or binary required by a request is missing."""


def require_setting(name: str) -> str:
    """Return the named setting or raise ``ConfigurationError`` if it is empty."""
    value = globals().get(name)
    if not value:
        raise ConfigurationError(f"{name} is not configured. Check your environment variables.")
    return value


def ensure_directories():
    for path in (MEDIA_DIR, UPLOAD_DIR, GENERATED_VIDEO_DIR):
        os.makedirs(path, exist_ok=True)
