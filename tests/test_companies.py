from datetime import timedelta

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import crud
import logic
import models


def post_question(client: TestClient, headers: dict, company: str) -> None:
    response = client.post(
        "/api/questions", json={"company": company, "questionTitle": "Tell me about yourself"}, headers=headers
    )
    assert response.status_code == status.HTTP_201_CREATED


def test_two_authors_same_company_collapse_into_one_entry(test_client: TestClient, alice, bob):
    post_question(test_client, alice["headers"], "Acme")
    post_question(test_client, bob["headers"], "Acme")

    response = test_client.get("/api/companies")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == [
        {"name": "Acme", "resourcesCount": 2, "logo": "https://logo.clearbit.com/acme.com"}
    ]


def test_grouping_ignores_case_and_keeps_first_spelling(test_client: TestClient, alice):
    for company in ("Initech", "INITECH", "initech", "Globex"):
        post_question(test_client, alice["headers"], company)

    companies = test_client.get("/api/companies").json()

    assert [(c["name"], c["resourcesCount"]) for c in companies] == [("Initech", 3), ("Globex", 1)]


def test_companies_sorted_by_count(test_client: TestClient, alice):
    for company in ("Umbrella", "Hooli", "Hooli", "Stark Industries", "Hooli", "Umbrella"):
        post_question(test_client, alice["headers"], company)

    companies = test_client.get("/api/companies").json()
    assert [c["resourcesCount"] for c in companies] == [3, 2, 1]
    assert companies[-1]["logo"] == "https://logo.clearbit.com/starkindustries.com"


def test_company_search_is_case_insensitive_substring(test_client: TestClient, alice):
    for company in ("Google", "Googleplex", "Meta"):
        post_question(test_client, alice["headers"], company)

    names = [c["name"] for c in test_client.get("/api/companies", params={"search": "GOOG"}).json()]
    assert sorted(names) == ["Google", "Googleplex"]


def test_companies_empty(test_client: TestClient):
    assert test_client.get("/api/companies").json() == []


def test_company_logo_slug():
    assert logic.company_logo("Jane Street") == "https://logo.clearbit.com/janestreet.com"


def test_ties_keep_first_seen_order(test_client: TestClient, alice):
    for company in ("Wayne", "Oscorp", "Oscorp", "Wayne", "Cyberdyne"):
        post_question(test_client, alice["headers"], company)

    names = [c["name"] for c in test_client.get("/api/companies").json()]
    assert names == ["Wayne", "Oscorp", "Cyberdyne"]


def test_group_name_is_oldest_spelling_in_store(db_session: Session):
    now = models.utcnow()
    for offset, company in ((0, "PIED PIPER"), (60, "pied piper"), (30, "Pied Piper")):
        db_session.add(
            models.Question(
                company=company,
                question_title="Compression",
                author_email="seed@example.com",
                author_username="SeedBot",
                created_at=now - timedelta(seconds=offset),
            )
        )
    db_session.commit()

    groups = crud.list_company_groups(db_session, search="PIPER")

    assert [(row.name, row.resources_count) for row in groups] == [("pied piper", 3)]
