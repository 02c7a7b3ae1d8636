import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from schoolcrm.core.config import settings
from schoolcrm.core.exceptions import LookupFailed, SchoolCRMError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)
from schoolcrm.domains.calendar.router import router as calendar_router
from schoolcrm.domains.chat.router import router as chat_router
from schoolcrm.domains.discussions.router import router as discussions_router
from schoolcrm.domains.files.router import router as files_router
from schoolcrm.domains.reports.router import router as reports_router
from schoolcrm.domains.requests.router import router as requests_router
from schoolcrm.domains.tasks.review_router import router as reviews_router
from schoolcrm.domains.tasks.router import router as tasks_router
from schoolcrm.domains.users.group_router import router as groups_router
from schoolcrm.domains.users.router import router as users_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SchoolCRMError)
async def schoolcrm_error_handler(request: Request, exc: SchoolCRMError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"{request.method} {request.url.path} hit a database error: {exc}")
    return JSONResponse(
        status_code=LookupFailed.status_code,
        content={"detail": "Data store unavailable", "code": LookupFailed.code},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Domain routers
app.include_router(
    users_router,
    prefix=f"{settings.API_V1_PREFIX}/users",
    tags=["users"],
)
app.include_router(
    groups_router,
    prefix=f"{settings.API_V1_PREFIX}/groups",
    tags=["groups"],
)
app.include_router(
    tasks_router,
    prefix=f"{settings.API_V1_PREFIX}/tasks",
    tags=["tasks"],
)
app.include_router(
    reviews_router,
    prefix=f"{settings.API_V1_PREFIX}/reviews",
    tags=["reviews"],
)
app.include_router(
    files_router,
    prefix=f"{settings.API_V1_PREFIX}/files",
    tags=["files"],
)
app.include_router(
    reports_router,
    prefix=f"{settings.API_V1_PREFIX}/reports",
    tags=["reports"],
)
app.include_router(
    chat_router,
    prefix=f"{settings.API_V1_PREFIX}/chat",
    tags=["chat"],
)
app.include_router(
    requests_router,
    prefix=f"{settings.API_V1_PREFIX}/requests",
    tags=["requests"],
)
app.include_router(
    calendar_router,
    prefix=f"{settings.API_V1_PREFIX}/calendar",
    tags=["calendar"],
)
app.include_router(
    discussions_router,
    prefix=f"{settings.API_V1_PREFIX}/discussions",
    tags=["discussions"],
)
