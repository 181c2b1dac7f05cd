from fastapi import FastAPI, APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
import os
import logging
from pathlib import Path

from bootstrap import run_bootstrap
from routers.admin import router as admin_router
from routers.admin_invites import router as admin_invites_router
from routers.events import router as events_router
from routers.payments import router as payments_router
from routers.registration import router as registration_router
from routers.teams import router as teams_router
from routers.users import router as users_router

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

app = FastAPI(title="Fest Registration API", version="1.0.0")
api_router = APIRouter(prefix="/api/v1")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    if os.environ.get("SKIP_BOOTSTRAP", "false").lower() == "true":
        return
    run_bootstrap()


# ==================== ERRORS ====================
def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return _error_response(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(status.HTTP_400_BAD_REQUEST, "Duplicate value entered")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


# ==================== ROUTES ====================
@api_router.get("/health")
async def health():
    return {"status": "healthy"}


api_router.include_router(users_router)
api_router.include_router(events_router)
api_router.include_router(registration_router)
api_router.include_router(registration_router, prefix="/registration")
api_router.include_router(teams_router, prefix="/teams")
api_router.include_router(admin_router, prefix="/admin")
api_router.include_router(admin_invites_router, prefix="/admin")
api_router.include_router(payments_router, prefix="/payment")

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
