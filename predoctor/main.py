from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from predoctor.config import Settings
from predoctor.controllers import api
from predoctor.db import init_db
from predoctor.logger import setup_logging
from predoctor.middleware.tenant import TenantMiddleware
from predoctor.services.ai_client import AiClient

settings = Settings()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await asyncio.to_thread(init_db, settings)
    # tests may inject their own client before startup
    if getattr(app.state, "ai_client", None) is None:
        app.state.ai_client = AiClient.from_settings(settings)
    yield
    app.state.ai_client.close()
    app.state.ai_client = None


app = FastAPI(
    title="Pre-Doctor AI API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(TenantMiddleware)
app.include_router(api.router)

Instrumentator().instrument(app).expose(app)
