from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

import models
import schemas
import logic
from database import create_db_and_tables, get_db
from auth import get_current_user
from settings import get_settings, Settings
from middleware import RequestIdMiddleware, RequestTimeoutMiddleware
from observability import init_observability


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The store is opened once per process and shared through get_db
    create_db_and_tables()
    logger.info("Database ready")
    yield


app = FastAPI(
    title="Job Tracker",
    description="Backend API for tracking job applications and sharing interview questions",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Middleware --- (last added runs first)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimeoutMiddleware, timeout_seconds=get_settings().request_timeout_seconds)
app.add_middleware(RequestIdMiddleware)


# --- Error shaping --- every failure is {"message": ...}
def _describe_validation_errors(errors) -> str:
    parts = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location)
        parts.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = _describe_validation_errors(exc.errors())
    logger.info("Request validation failed", detail=message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Server error"},
    )


# --- Auth Endpoints ---
@app.post(
    "/api/auth/register",
    response_model=schemas.RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Auth"],
)
def register_endpoint(payload: schemas.UserCreate, db: Session = Depends(get_db)):
    user = logic.register_user(db, payload)
    return schemas.RegisterResponse(message="User registered successfully", user=schemas.User.model_validate(user))


@app.post("/api/auth/login", response_model=schemas.LoginResponse, tags=["Auth"])
def login_endpoint(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    user, token = logic.authenticate(db, payload)
    return schemas.LoginResponse(message="Login successful", token=token, user=schemas.User.model_validate(user))


# --- Authenticated current user endpoints ---
@app.get("/api/auth/me", response_model=schemas.User, tags=["Auth"])
def get_me(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Returns the authenticated user's profile."""
    return logic.get_self(db, current_user)


@app.put("/api/auth/me", response_model=schemas.ProfileUpdateResponse, tags=["Auth"])
def update_me(
    payload: schemas.UserUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user, synced = logic.update_self(db, current_user, payload)
    return schemas.ProfileUpdateResponse(
        message="Profile updated successfully", user=schemas.User.model_validate(user), questions_synced=synced
    )


@app.put("/api/auth/me/password", response_model=schemas.MessageResponse, tags=["Auth"])
def update_my_password(
    payload: schemas.PasswordUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logic.update_password(db, current_user, payload)
    return {"message": "Password updated successfully"}


# --- Application Endpoints ---
@app.post(
    "/api/applications",
    response_model=schemas.Application,
    status_code=status.HTTP_201_CREATED,
    tags=["Applications"],
)
def create_application_endpoint(
    payload: schemas.ApplicationCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.create_application(db, current_user, payload)


@app.get("/api/applications", response_model=List[schemas.Application], tags=["Applications"])
def get_applications_endpoint(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.list_applications(db, current_user)


@app.get("/api/applications/{application_id}", response_model=schemas.Application, tags=["Applications"])
def get_application_endpoint(
    application_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.get_application(db, current_user, application_id)


@app.put("/api/applications/{application_id}", response_model=schemas.Application, tags=["Applications"])
def update_application_endpoint(
    application_id: str,
    payload: schemas.ApplicationUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.update_application(db, current_user, application_id, payload)


@app.delete("/api/applications/{application_id}", response_model=schemas.MessageResponse, tags=["Applications"])
def delete_application_endpoint(
    application_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logic.delete_application(db, current_user, application_id)
    return {"message": "Application deleted successfully"}


# --- Interview Hub: Question Endpoints ---
@app.post(
    "/api/questions",
    response_model=schemas.Question,
    status_code=status.HTTP_201_CREATED,
    tags=["Questions"],
)
def create_question_endpoint(
    payload: schemas.QuestionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.create_question(db, current_user, payload)


@app.get("/api/questions", response_model=schemas.QuestionPage, tags=["Questions"])
def list_questions_endpoint(
    company: Optional[str] = None,
    role: Optional[str] = None,
    sort: str = "recent",
    page: int = Query(1, ge=1, le=logic.MAX_PAGE),
    limit: int = Query(10, ge=1, le=logic.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Public, paginated question list with live author usernames."""
    return logic.list_questions(db, company=company, role=role, sort=sort, page=page, limit=limit)


@app.get("/api/questions/{question_id}", response_model=schemas.Question, tags=["Questions"])
def get_question_endpoint(question_id: str, db: Session = Depends(get_db)):
    return logic.get_question(db, question_id)


@app.put("/api/questions/{question_id}", response_model=schemas.Question, tags=["Questions"])
def update_question_endpoint(
    question_id: str,
    payload: schemas.QuestionUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.update_question(db, current_user, question_id, payload)


@app.delete("/api/questions/{question_id}", response_model=schemas.MessageResponse, tags=["Questions"])
def delete_question_endpoint(
    question_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logic.delete_question(db, current_user, question_id)
    return {"message": "Question deleted successfully"}


# --- Company Endpoints ---
@app.get("/api/companies", response_model=List[schemas.Company], tags=["Companies"])
def list_companies_endpoint(search: Optional[str] = None, db: Session = Depends(get_db)):
    return logic.list_companies(db, search=search)


# --- Fallbacks --- must stay registered after every API route
@app.api_route(
    "/api/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def api_not_found(path: str):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Route not found")


@app.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str, settings: Settings = Depends(get_settings)):
    """Serve the built single-page app; unknown paths get its index.html."""
    dist_dir = Path(settings.frontend_dist_dir).resolve()
    if full_path:
        candidate = (dist_dir / full_path).resolve()
        if candidate.is_relative_to(dist_dir) and candidate.is_file():
            return FileResponse(candidate)
    index_file = dist_dir / "index.html"
    if index_file.is_file():
        return FileResponse(index_file)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Frontend build not found")


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3000)
