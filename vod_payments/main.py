import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vod_payments.api import monitoring
from vod_payments.api.middlewares import register_exception_handlers
from vod_payments.api.v1 import api_router
from vod_payments.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    debug=settings.api_debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(monitoring.router)
app.include_router(api_router, prefix="/v1")
