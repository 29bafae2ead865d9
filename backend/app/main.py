from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .config import config
from .dependencies import get_trip_scheduler
from .routers import editor, routes, trips

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Route Trip Simulator API with {config.get_config_dict()}")
    yield
    scheduler = get_trip_scheduler()
    scheduler.shutdown()
    await scheduler.drain()


app = FastAPI(title="Route Trip Simulator API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)
app.include_router(editor.router)
app.include_router(trips.router)

@app.get("/healthz")
async def healthz():
    return {"status": "ok"}

@app.get("/")
async def root():
    return {
        "message": "Route Trip Simulator API",
        "docs": "/docs",
        "endpoints": [
            "/api/routes",
            "/api/editor/sessions",
            "/api/trips"
        ]
    }
