from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from teamchat.core.config import settings
from teamchat.core.errors import ChatError, RateLimited
from teamchat.core.logging_config import get_logger, setup_logging

from teamchat.api.health import router as health_router
from teamchat.api.auth import router as auth_router
from teamchat.api.users import router as users_router
from teamchat.api.workspaces import router as workspaces_router
from teamchat.api.channels import router as channels_router
from teamchat.api.direct_messages import router as direct_messages_router
from teamchat.api.messages import router as messages_router
from teamchat.api.notifications import router as notifications_router
from teamchat.api.files import router as files_router
from teamchat.api.link_previews import router as link_previews_router

setup_logging()
logger = get_logger(__name__)

app = FastAPI(title="TeamChat API", version="0.0.1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    headers = {}
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    logger.info("request failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "internal_error"})


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(workspaces_router)
app.include_router(channels_router)
app.include_router(direct_messages_router)
app.include_router(messages_router)
app.include_router(notifications_router)
app.include_router(files_router)
app.include_router(link_previews_router)
