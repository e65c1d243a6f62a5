from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from preset_store import init_preset_store
from print_queue import init_print_queue, close_print_queue, get_print_queue
from routes_combine import router as combine_router


logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    init_preset_store(settings.presets_path)
    init_print_queue(max_copies=settings.max_copies)
    logger.info(f"PlateRunner API started (max copies {settings.max_copies}, presets {settings.presets_path})")
    yield
    # Shutdown
    close_print_queue()


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow web UI to access API
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(combine_router)


@app.get("/")
def root():
    return {
        "name": "PlateRunner API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/healthz",
            "upload": "POST /queue/upload",
            "queue": "GET /queue",
            "stats": "GET /queue/stats",
            "combine": "POST /combine",
            "presets": "GET /presets",
            "sequence": "GET /sequence",
        }
    }


@app.get("/healthz")
def health():
    queue = get_print_queue()
    return {"status": "ok", "queued_jobs": len(queue) if queue is not None else 0}
