from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased

import models


# --- User CRUD ---
def get_user_by_id(db: Session, user_id: str):
    """Get a user by their primary key ID."""
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def get_user_by_username(db: Session, username: str):
    return db.query(models.User).filter(models.User.username == username).first()


def get_user_by_identifier(db: Session, identifier: str):
    """Match a login identifier against email or username."""
    return (
        db.query(models.User)
        .filter(or_(models.User.email == identifier, models.User.username == identifier))
        .first()
    )


def find_conflicting_user(
    db: Session, field: str, value: str, exclude_user_id: Optional[str] = None
):
    column = getattr(models.User, field)
    query = db.query(models.User).filter(column == value)
    if exclude_user_id is not None:
        query = query.filter(models.User.id != exclude_user_id)
    return query.first()


def get_usernames(db: Session, user_ids: Iterable[str]) -> dict[str, str]:
    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    rows = (
        db.query(models.User.id, models.User.username)
        .filter(models.User.id.in_(ids))
        .all()
    )
    return {row.id: row.username for row in rows}


def create_user(
    db: Session,
    first_name: str,
    last_name: str,
    username: str,
    email: str,
    password_hash: str,
):
    db_user = models.User(
        first_name=first_name,
        last_name=last_name,
        username=username,
        email=email,
        password_hash=password_hash,
    )
    db.add(db_user)
    db.flush()  # Assign ID without committing
    db.refresh(db_user)
    return db_user


# --- Application CRUD ---
def create_application(db: Session, owner_id: str, **fields):
    db_application = models.Application(owner_id=owner_id, **fields)
    db.add(db_application)
    db.flush()
    db.refresh(db_application)
    return db_application


def get_applications_for_user(db: Session, owner_id: str) -> List[models.Application]:
    """Retrieves all applications for a specific user, newest first."""
    return (
        db.query(models.Application)
        .filter(models.Application.owner_id == owner_id)
        .order_by(models.Application.created_at.desc())
        .all()
    )


def get_application(db: Session, application_id: str, owner_id: str):
    return (
        db.query(models.Application)
        .filter(
            models.Application.id == application_id,
            models.Application.owner_id == owner_id,
        )
        .first()
    )


def delete_application(db: Session, application_id: str, owner_id: str) -> bool:
    """Delete an application for a specific user"""
    deleted = (
        db.query(models.Application)
        .filter(
            models.Application.id == application_id,
            models.Application.owner_id == owner_id,
        )
        .delete(synchronize_session=False)
    )
    return deleted > 0


# --- Question CRUD ---
def _question_filters(query, company: Optional[str], role: Optional[str]):
    if company:
        query = query.filter(
            models.Question.company.icontains(company, autoescape=True)
        )
    if role:
        query = query.filter(
            models.Question.role.icontains(role, autoescape=True)
        )
    return query


def count_questions(
    db: Session, company: Optional[str] = None, role: Optional[str] = None
) -> int:
    return _question_filters(db.query(models.Question), company, role).count()


def list_questions(
    db: Session,
    company: Optional[str] = None,
    role: Optional[str] = None,
    newest_first: bool = True,
    skip: int = 0,
    limit: int = 10,
) -> List[models.Question]:
    query = _question_filters(db.query(models.Question), company, role)
    if newest_first:
        query = query.order_by(models.Question.created_at.desc(), models.Question.id.desc())
    else:
        query = query.order_by(models.Question.created_at.asc(), models.Question.id.asc())
    return query.offset(skip).limit(limit).all()


def get_question(db: Session, question_id: str):
    return db.query(models.Question).filter(models.Question.id == question_id).first()


def create_question(db: Session, **fields):
    db_question = models.Question(**fields)
    db.add(db_question)
    db.flush()
    db.refresh(db_question)
    return db_question


def delete_question(db: Session, question: models.Question) -> None:
    db.delete(question)


def resync_question_authors(
    db: Session,
    user_id: str,
    previous_email: str,
    email: str,
    username: str,
) -> int:
    """Rewrite the denormalised author copies on every question owned by a user.

    Rows are matched by author id or by the email the user had before the edit.
    """
    return (
        db.query(models.Question)
        .filter(
            or_(
                models.Question.author_id == user_id,
                models.Question.author_email == previous_email,
            )
        )
        .update(
            {
                models.Question.author_email: email,
                models.Question.author_username: username,
            },
            synchronize_session=False,
        )
    )


def list_company_groups(db: Session, search: Optional[str] = None):
    """Question counts per case-insensitive company name, busiest first.

    Each row carries ``name`` (the spelling of the oldest question in the
    group) and ``resources_count``. Ties keep first-seen order.
    """
    lowered = func.lower(models.Question.company)
    earliest = aliased(models.Question)
    first_spelling = (
        select(earliest.company)
        .where(func.lower(earliest.company) == lowered)
        .order_by(earliest.created_at.asc(), earliest.id.asc())
        .limit(1)
        .scalar_subquery()
    )
    resources = func.count(models.Question.id)

    query = db.query(
        first_spelling.label("name"), resources.label("resources_count")
    ).select_from(models.Question)
    if search:
        query = query.filter(
            models.Question.company.icontains(search, autoescape=True)
        )
    return (
        query.group_by(lowered)
        .order_by(resources.desc(), func.min(models.Question.created_at).asc())
        .all()
    )
