import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from presencebot import __version__
from presencebot.db import ensure_db

from .routes import presence

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("presencebot.web")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ensure_db()
    log.info("web: database ready")
    yield


app = FastAPI(title="Presence Panel", version=__version__, lifespan=lifespan)
app.include_router(presence.router)


@app.get("/health")
def health():
    return {
        "ok": True,
        "service": "web",
        "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }
