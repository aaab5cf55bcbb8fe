import os
from contextlib import asynccontextmanager
from collections.abc import Callable, Awaitable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from lootcase.api.case import case_app
from lootcase.api.feed import feed_app
from lootcase.api.functions import functions_app
from lootcase.api.inventory import inventory_app
from lootcase.api.profile import profile_app
from lootcase.helper.db_helper import init_pool, close_pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_pool(app)
    yield
    await close_pool(app)


app = FastAPI(lifespan=lifespan)
app.mount("/functions/v1", functions_app)
app.mount("/cases", case_app)
app.mount("/inventory", inventory_app)
app.mount("/feed", feed_app)
app.mount("/profile", profile_app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("LOOTCASE_CORS_ORIGINS", "*").split(",")],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Client-Info", "Apikey"],
)


@app.middleware("http")
async def attach_parent(request: Request, call_next: Callable[[Request], Awaitable[Response]]):
    request.state.parent = app
    response = await call_next(request)
    return response


@app.get("/health")
async def health():
    return {"status": "ok"}
