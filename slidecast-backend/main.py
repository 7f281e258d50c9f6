import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import ALLOWED_ORIGINS, GENERATED_VIDEO_DIR, GENERATED_VIDEO_URL_PREFIX, ConfigurationError, ensure_directories
from database import init_db
from encoder import get_encoder
from routers import generation, library

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

ensure_directories()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    try:
        encoder = get_encoder()
        logging.info(f"🎬 Using encoder at {encoder.binary}")
    except ConfigurationError as e:
        logging.warning(f"⚠️ {e} Video generation will be unavailable.")
    yield


app = FastAPI(
    title="Slidecast Video Generator",
    description="Turns text into narrated blackboard-style slide videos.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(generation.router)
app.include_router(library.router)

app.mount(GENERATED_VIDEO_URL_PREFIX, StaticFiles(directory=GENERATED_VIDEO_DIR, check_dir=False), name="generated-videos")


# --------------------------------------------------------------------------
# --- API Endpoints ---
# --------------------------------------------------------------------------

@app.get("/")
def read_root():
    return {"status": "🚀 Slidecast Video Generator is running!"}


@app.get("/health")
def health():
    try:
        get_encoder()
        encoder_ready = True
    except ConfigurationError:
        encoder_ready = False
    return {"status": "ok", "encoder": encoder_ready}
