import math
import re
from typing import List, Optional, Tuple

import structlog
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import auth
import crud
import models
import schemas

# Set up logging
logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_PAGE_SIZE = 100
MAX_PAGE = 10_000
LOGO_URL_TEMPLATE = "https://logo.clearbit.com/{slug}.com"

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def parse_id(value: str) -> str:
    """Reject path ids that cannot have been issued by the store."""
    if not _ID_PATTERN.match(value or ""):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid id format")
    return value


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


# ---------------------------------------------------------------------------
# Users / Auth
# ---------------------------------------------------------------------------
def register_user(db: Session, payload: schemas.UserCreate) -> models.User:
    fields = (payload.first_name, payload.last_name, payload.username, payload.email, payload.password)
    if any(_blank(value) for value in fields):
        raise _bad_request("All fields are required")

    email = payload.email.strip()
    username = payload.username.strip()

    # Email collisions are reported before username collisions
    if crud.get_user_by_email(db, email):
        raise _conflict("Email already exists")
    if crud.get_user_by_username(db, username):
        raise _conflict("Username already exists")

    user = crud.create_user(
        db,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        username=username,
        email=email,
        password_hash=auth.hash_password(payload.password),
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _conflict("Email or username already exists")
    db.refresh(user)
    logger.info("User registered", user_id=user.id)
    return user


def authenticate(db: Session, payload: schemas.LoginRequest) -> Tuple[models.User, str]:
    """Check credentials and issue a token.

    Unknown identifiers and wrong passwords produce the same response so the
    endpoint cannot be used to probe for registered accounts.
    """
    if _blank(payload.identifier) or not payload.password:
        raise _bad_request("Identifier and password are required")

    user = crud.get_user_by_identifier(db, payload.identifier.strip())
    if not user or not auth.verify_password(payload.password, user.password_hash):
        logger.info("Login rejected")
        raise _bad_request("Invalid credentials")

    token = auth.create_access_token(user)
    logger.info("Login succeeded", user_id=user.id)
    return user, token


def get_self(db: Session, current_user: models.User) -> models.User:
    user = crud.get_user_by_id(db, current_user.id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def update_self(
    db: Session, current_user: models.User, payload: schemas.UserUpdate
) -> Tuple[models.User, Optional[int]]:
    """Update the caller's profile, then re-sync their authored questions.

    The question re-sync runs in its own transaction after the profile commit.
    If it fails the profile change stands and the synced count is ``None``.
    """
    fields = (payload.first_name, payload.last_name, payload.username, payload.email)
    if any(_blank(value) for value in fields):
        raise _bad_request("All fields are required")

    email = payload.email.strip()
    username = payload.username.strip()

    if crud.find_conflicting_user(db, "email", email, exclude_user_id=current_user.id):
        raise _conflict("Email already taken")
    if crud.find_conflicting_user(db, "username", username, exclude_user_id=current_user.id):
        raise _conflict("Username already taken")

    user = get_self(db, current_user)
    previous_email = user.email
    user.first_name = payload.first_name.strip()
    user.last_name = payload.last_name.strip()
    user.username = username
    user.email = email
    user.updated_at = models.utcnow()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _conflict("Email or username already taken")
    db.refresh(user)
    logger.info("Profile updated", user_id=user.id)

    synced: Optional[int]
    try:
        synced = crud.resync_question_authors(
            db,
            user_id=user.id,
            previous_email=previous_email,
            email=user.email,
            username=user.username,
        )
        db.commit()
        logger.info("Questions re-synced to profile", user_id=user.id, count=synced)
    except SQLAlchemyError:
        db.rollback()
        synced = None
        logger.exception("Question re-sync failed", user_id=user.id)
    return user, synced


def update_password(db: Session, current_user: models.User, payload: schemas.PasswordUpdate) -> None:
    if not payload.current_password or not payload.new_password:
        raise _bad_request("Both passwords are required")
    if len(payload.new_password) < MIN_PASSWORD_LENGTH:
        raise _bad_request(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")

    user = get_self(db, current_user)
    if not auth.verify_password(payload.current_password, user.password_hash):
        raise _bad_request("Incorrect current password")

    user.password_hash = auth.hash_password(payload.new_password)
    user.updated_at = models.utcnow()
    db.commit()
    logger.info("Password updated", user_id=user.id)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------
def _application_fields(payload: schemas.ApplicationCreate) -> dict:
    # Omitted values fall back to the create-time defaults on update as well
    return {
        "company": payload.company or "unknown",
        "role": payload.role or "",
        "submitted_at": payload.submitted_at or models.utcnow(),
        "url": payload.url,
        "notes": payload.notes,
    }


def _application_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")


def create_application(
    db: Session, owner: models.User, payload: schemas.ApplicationCreate
) -> models.Application:
    application = crud.create_application(
        db, owner_id=owner.id, status="applied", **_application_fields(payload)
    )
    db.commit()
    db.refresh(application)
    logger.info("Application created", application_id=application.id, user_id=owner.id)
    return application


def list_applications(db: Session, owner: models.User) -> List[models.Application]:
    return crud.get_applications_for_user(db, owner_id=owner.id)


def get_application(db: Session, owner: models.User, application_id: str) -> models.Application:
    # Someone else's application is indistinguishable from a missing one
    application = crud.get_application(db, parse_id(application_id), owner.id)
    if application is None:
        raise _application_not_found()
    return application


def update_application(
    db: Session, owner: models.User, application_id: str, payload: schemas.ApplicationUpdate
) -> models.Application:
    application = get_application(db, owner, application_id)
    for key, value in _application_fields(payload).items():
        setattr(application, key, value)
    application.status = payload.status or "applied"
    application.updated_at = models.utcnow()
    db.commit()
    db.refresh(application)
    logger.info("Application updated", application_id=application.id, user_id=owner.id)
    return application


def delete_application(db: Session, owner: models.User, application_id: str) -> None:
    if not crud.delete_application(db, parse_id(application_id), owner.id):
        raise _application_not_found()
    db.commit()
    logger.info("Application deleted", application_id=application_id, user_id=owner.id)


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------
def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _question_out(question: models.Question, username: Optional[str] = None) -> schemas.Question:
    return schemas.Question(
        id=question.id,
        company=question.company,
        role=question.role,
        question_title=question.question_title,
        question_detail=question.question_detail or "",
        difficulty=question.difficulty,
        tips=question.tips,
        author_id=question.author_id,
        author_email=question.author_email,
        username=username or question.author_username,
        created_at=question.created_at,
        updated_at=question.updated_at,
    )


def _question_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Question not found")


def is_question_author(db: Session, question: models.Question, user: models.User) -> bool:
    """Ownership is keyed on the author id.

    The stored author email is consulted only for rows whose author id does
    not resolve to an existing user (seeded or legacy rows).
    """
    if question.author_id == user.id:
        return True
    if question.author_id and crud.get_user_by_id(db, question.author_id):
        return False
    return question.author_email == user.email


def create_question(
    db: Session, author: models.User, payload: schemas.QuestionCreate
) -> schemas.Question:
    if _blank(payload.company) or _blank(payload.question_title):
        raise _bad_request("company and questionTitle are required")

    # Author fields always come from the verified identity, never the body
    question = crud.create_question(
        db,
        company=payload.company.strip(),
        role=_strip_or_none(payload.role),
        question_title=payload.question_title.strip(),
        question_detail=(payload.question_detail or "").strip(),
        difficulty=payload.difficulty,
        tips=_strip_or_none(payload.tips),
        author_id=author.id,
        author_email=author.email,
        author_username=author.username,
    )
    db.commit()
    db.refresh(question)
    logger.info("Question created", question_id=question.id, user_id=author.id)
    return _question_out(question)


def list_questions(
    db: Session,
    company: Optional[str] = None,
    role: Optional[str] = None,
    sort: str = "recent",
    page: int = 1,
    limit: int = 10,
) -> schemas.QuestionPage:
    total = crud.count_questions(db, company=company, role=role)
    total_pages = math.ceil(total / limit)
    skip = (page - 1) * limit
    questions = []
    if skip < total:
        questions = crud.list_questions(
            db,
            company=company,
            role=role,
            newest_first=sort != "oldest",
            skip=skip,
            limit=limit,
        )

    # Stored usernames are point-in-time copies; prefer the live value
    usernames = crud.get_usernames(db, (q.author_id for q in questions))
    return schemas.QuestionPage(
        questions=[_question_out(q, usernames.get(q.author_id)) for q in questions],
        total_questions=total,
        total_pages=total_pages,
        current_page=page,
        limit=limit,
    )


def get_question(db: Session, question_id: str) -> schemas.Question:
    question = crud.get_question(db, parse_id(question_id))
    if question is None:
        raise _question_not_found()

    username = None
    try:
        username = crud.get_usernames(db, [question.author_id]).get(question.author_id)
    except SQLAlchemyError:
        logger.warning("Live username lookup failed", question_id=question.id, exc_info=True)
    return _question_out(question, username)


def _owned_question(db: Session, requester: models.User, question_id: str, action: str) -> models.Question:
    question = crud.get_question(db, parse_id(question_id))
    if question is None:
        raise _question_not_found()
    if not is_question_author(db, question, requester):
        logger.warning("Question ownership check failed", question_id=question.id, user_id=requester.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not authorized to {action} this question",
        )
    return question


def update_question(
    db: Session, requester: models.User, question_id: str, payload: schemas.QuestionUpdate
) -> schemas.Question:
    question = _owned_question(db, requester, question_id, "update")

    # Only fields in the update model can be set; author and timestamps never are
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise _bad_request("No valid fields to update")
    for key in ("company", "question_title"):
        if key in changes and _blank(changes[key]):
            raise _bad_request("company and questionTitle cannot be empty")

    for key, value in changes.items():
        if isinstance(value, str):
            value = value.strip()
        if key in ("role", "tips"):
            value = value or None
        if key == "question_detail":
            value = value or ""
        setattr(question, key, value)
    question.updated_at = models.utcnow()
    db.commit()
    db.refresh(question)
    logger.info("Question updated", question_id=question.id, user_id=requester.id)
    return get_question(db, question.id)


def delete_question(db: Session, requester: models.User, question_id: str) -> None:
    question = _owned_question(db, requester, question_id, "delete")
    crud.delete_question(db, question)
    db.commit()
    logger.info("Question deleted", question_id=question_id, user_id=requester.id)


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------
def company_logo(name: str) -> str:
    slug = re.sub(r"\s+", "", name.lower())
    return LOGO_URL_TEMPLATE.format(slug=slug)


def list_companies(db: Session, search: Optional[str] = None) -> List[schemas.Company]:
    """Companies with question counts, grouped in the store, busiest first.

    The display name is the spelling of the oldest question in the group.
    """
    rows = crud.list_company_groups(db, search=(search or "").strip() or None)
    return [
        schemas.Company(name=row.name, resources_count=row.resources_count, logo=company_logo(row.name))
        for row in rows
    ]
