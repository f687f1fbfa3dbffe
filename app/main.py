import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.db import connect, disconnect
from app.routers import auth, games, leaderboard, profiles, vouches

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect()
    yield
    await disconnect()


app = FastAPI(title="Vouchboard", lifespan=lifespan)
app.include_router(auth.router)
app.include_router(profiles.router)
app.include_router(games.router)
app.include_router(vouches.router)
app.include_router(leaderboard.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
