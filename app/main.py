import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.dependencies.store import close_room_store, get_room_store
from app.routers import rooms, ws
from app.services.identity import close_token_verifier
from app.services.profile import close_profiles_client
from app.services.websocket import get_connection_manager

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_room_store()
    manager = get_connection_manager()
    await manager.start_cleanup_task()
    logger.info("Room Lobby API started (%s store)", type(store).__name__)

    yield

    # Sockets go first so no watcher outlives the store's subscriptions
    await manager.stop_cleanup_task()
    await manager.close_all_connections()
    await close_room_store()
    await close_token_verifier()
    await close_profiles_client()
    logger.info("Room Lobby API stopped")


app = FastAPI(title="Room Lobby API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms.router, prefix="/api/v1")
app.include_router(ws.router, prefix="/api/v1")


@app.get("/")
def root():
    return {"message": "Room Lobby API"}


@app.get("/health")
def health():
    return {
        "status": "healthy",
        "store": settings.ROOM_STORE_BACKEND,
        "connections": get_connection_manager().get_total_connection_count(),
    }
