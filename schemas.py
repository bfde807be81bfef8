from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ApplicationStatus = Literal["applied", "interview", "offer", "rejected", "pending"]
Difficulty = Literal["Easy", "Medium", "Hard"]


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


# --- Users / Auth ---
class UserCreate(CamelModel):
    # Presence is checked by the controller so every missing field yields the
    # same "All fields are required" message.
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None


class PasswordUpdate(CamelModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class LoginRequest(CamelModel):
    # The bundled SPA posts the misspelt "identifer" key
    identifier: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("identifier", "identifer")
    )
    password: Optional[str] = None


class User(CamelModel):
    """Safe projection of a user; never carries the password hash."""

    id: str
    first_name: str
    last_name: str
    username: str
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterResponse(CamelModel):
    message: str
    user: User


class LoginResponse(CamelModel):
    message: str
    token: str
    user: User


class ProfileUpdateResponse(CamelModel):
    message: str
    user: User
    questions_synced: Optional[int] = None


# --- Applications ---
class ApplicationCreate(CamelModel):
    company: Optional[str] = None
    role: Optional[str] = None
    submitted_at: Optional[datetime] = None
    url: Optional[str] = None
    notes: Optional[str] = None


class ApplicationUpdate(ApplicationCreate):
    status: Optional[ApplicationStatus] = None


class Application(CamelModel):
    id: str
    owner_id: str
    company: str
    role: str
    status: ApplicationStatus
    submitted_at: datetime
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# --- Questions ---
class _QuestionFields(CamelModel):
    company: Optional[str] = None
    role: Optional[str] = None
    question_title: Optional[str] = None
    question_detail: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "questionDetail", "questionDescription", "question_detail"
        ),
    )
    difficulty: Optional[Difficulty] = None
    tips: Optional[str] = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalise_difficulty(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value.capitalize() if value else None
        return value


class QuestionCreate(_QuestionFields):
    pass


class QuestionUpdate(_QuestionFields):
    pass


class Question(CamelModel):
    id: str
    company: str
    role: Optional[str] = None
    question_title: str
    question_detail: str = ""
    difficulty: Optional[Difficulty] = None
    tips: Optional[str] = None
    author_id: Optional[str] = None
    author_email: str
    username: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class QuestionPage(CamelModel):
    questions: List[Question]
    total_questions: int
    total_pages: int
    current_page: int
    limit: int


# --- Companies ---
class Company(CamelModel):
    name: str
    resources_count: int
    logo: str
