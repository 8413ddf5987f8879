from fastapi import FastAPI, APIRouter, Request, status
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

from bootstrap import run_bootstrap
from errors import (
    AggregationInconsistency,
    DuplicateEntry,
    Forbidden,
    InvalidOperation,
    InvalidScore,
    NotFound,
    PortalError,
)
from routers.announcements import router as announcements_router
from routers.attendance import router as attendance_router
from routers.auth_portal import router as auth_router
from routers.exports import router as exports_router
from routers.leaderboard import router as leaderboard_router
from routers.submissions import router as submissions_router
from routers.superadmin import router as superadmin_router
from routers.tasks import router as tasks_router
from routers.users import router as users_router

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

app = FastAPI(title="Hackathon Portal API", version="1.0.0")
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    DuplicateEntry: status.HTTP_409_CONFLICT,
    InvalidScore: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    Forbidden: status.HTTP_403_FORBIDDEN,
    InvalidOperation: status.HTTP_400_BAD_REQUEST,
    AggregationInconsistency: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: PortalError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    code = status_for(exc)
    if code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message, "kind": exc.kind})


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    run_bootstrap()
    logger.info("Startup complete.")


@api_router.get("/health")
def health():
    return {"status": "ok"}


api_router.include_router(auth_router)
api_router.include_router(users_router)
api_router.include_router(tasks_router)
api_router.include_router(submissions_router)
api_router.include_router(attendance_router)
api_router.include_router(announcements_router)
api_router.include_router(leaderboard_router)
api_router.include_router(exports_router)
api_router.include_router(superadmin_router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
