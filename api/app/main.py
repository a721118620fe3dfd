import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .ai_client import build_ai_client
from .classification.engine import ClassificationEngine
from .config import get_settings
from .jira import JiraClient
from .rate_limit import limiter
from .routes import api_router
from .state import AI_CALL_TIMEOUT, AI_RETRIES, AI_SEMAPHORE_LIMIT, API_SEMAPHORE_LIMIT
from .storage import build_blob_store

_init_settings = get_settings()
logging.basicConfig(
    level=_init_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("bugsort.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    jira_http = httpx.AsyncClient()
    ai_http = httpx.AsyncClient()
    app.state.jira_client = JiraClient(jira_http, asyncio.Semaphore(API_SEMAPHORE_LIMIT), settings)
    ai_client = build_ai_client(settings, ai_http, asyncio.Semaphore(AI_SEMAPHORE_LIMIT))
    app.state.engine = ClassificationEngine(
        ai_client,
        ai_retries=AI_RETRIES,
        call_timeout=AI_CALL_TIMEOUT or None,
    )
    app.state.blob_store = build_blob_store(settings)
    try:
        yield
    finally:
        await jira_http.aclose()
        await ai_http.aclose()


app = FastAPI(title="BugSort API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

origins: List[str] = [origin.strip() for origin in _init_settings.cors_origins.split(",") if origin.strip()]
allow_credentials = True
if not origins or "*" in origins:
    allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"]
)

app.include_router(api_router)
