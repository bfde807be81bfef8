"""Populate the Interview Hub with synthetic questions for local testing.

Usage:
    python seed.py --email you@example.com [--count 1050] [--clear]

Questions are attributed to ``--email``. When that email belongs to a
registered user the rows are linked to the account, otherwise they are
stored as legacy rows that the owner of the email can still edit.
"""
import argparse
import random
from datetime import timedelta
from typing import Optional

import structlog

import crud
import models
from database import SessionLocal, create_db_and_tables
from observability import init_observability

logger = structlog.get_logger(__name__)

COMPANIES = ["Google", "Apple", "Meta", "Amazon", "Netflix", "Tesla", "Microsoft", "Spotify", "Adobe", "Twitter", "Uber", "Airbnb"]
ROLES = ["Software Engineer", "Frontend Developer", "Backend Developer", "Product Manager", "Data Scientist", "DevOps Engineer", "Mobile Developer", "QA Engineer"]
DIFFICULTIES = ["Easy", "Medium", "Hard"]
TOPICS = [
    "Reverse a Linked List", "Design a cache system", "Explain the event loop",
    "Center a div", "SQL Joins", "REST vs GraphQL", "Binary Search Tree",
    "System Design: Twitter", "Reduce array method", "Python Decorators",
    "Kubernetes Pods", "CI/CD Pipelines", "Behavioral: Conflict resolution",
]

# Spread created_at over roughly the last 11 days
MAX_AGE_SECONDS = 1_000_000


def build_questions(
    count: int, email: str, author: Optional[models.User] = None, rng: Optional[random.Random] = None
):
    rng = rng or random.Random()
    now = models.utcnow()
    questions = []
    for index in range(count):
        company = rng.choice(COMPANIES)
        role = rng.choice(ROLES)
        created_at = now - timedelta(seconds=rng.randrange(MAX_AGE_SECONDS))
        questions.append(
            models.Question(
                company=company,
                role=role,
                question_title=f"{rng.choice(TOPICS)} - Variation {index + 1}",
                question_detail=(
                    "This is a synthetic question generated for testing purposes.\n\n"
                    f"Context: Asked during the {role} interview at {company}."
                ),
                difficulty=rng.choice(DIFFICULTIES),
                tips=f"Focus on fundamentals. This is question #{index + 1}.",
                author_id=author.id if author else None,
                author_email=email,
                author_username=author.username if author else "SeedBot",
                created_at=created_at,
                updated_at=created_at,
            )
        )
    return questions


def seed(email: str, count: int, clear: bool = False) -> int:
    create_db_and_tables()
    with SessionLocal() as db:
        if clear:
            removed = db.query(models.Question).delete()
            logger.info("Cleared existing questions", count=removed)

        author = crud.get_user_by_email(db, email)
        if author is None:
            logger.warning("No registered user for email; seeding legacy rows", email=email)

        db.add_all(build_questions(count, email, author))
        db.commit()
    logger.info("Seeded questions", count=count, email=email)
    return count


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Seed the Interview Hub with synthetic questions.")
    parser.add_argument("--email", required=True, help="Author email for the generated questions")
    parser.add_argument("--count", type=int, default=1050, help="Number of questions to generate")
    parser.add_argument("--clear", action="store_true", help="Delete existing questions first")
    args = parser.parse_args(argv)

    init_observability()
    seed(args.email, args.count, clear=args.clear)


if __name__ == "__main__":
    main()
