"""Shared fixtures: settings for tests, a seeded in-memory provider, app client."""

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from occmetrics.config import Settings  # noqa: E402
from occmetrics.provider import InMemoryDataProvider  # noqa: E402
from occmetrics.queries import QueryStrategyFactory  # noqa: E402


NOW = datetime(2025, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    """Settings with fast retries so failure paths do not sleep."""
    return Settings(
        environment="testing",
        query_retries=2,
        query_retry_base_delay_seconds=0.0,
        query_timeout_seconds=2.0,
        analytics_timeout_seconds=2.0,
    )


def make_users() -> list[dict[str, Any]]:
    return [
        {
            "id": "u1",
            "name": "Ana",
            "department": "production",
            "shift": "morning",
            "position": "operator",
            "gender": "female",
            "age": 24,
            "seniority_years": 0.5,
            "uses_ppe": True,
            "safety_training": True,
            "reports_near_misses": True,
            "prior_accidents": False,
            "safety_motivation": 4,
            "management_trust": 4,
            "job_satisfaction": 5,
            "created_at": NOW - timedelta(days=40),
        },
        {
            "id": "u2",
            "name": "Luis",
            "department": "production",
            "shift": "night",
            "position": "driver",
            "gender": "male",
            "age": 38,
            "seniority_years": 4,
            "uses_ppe": False,
            "safety_training": True,
            "reports_near_misses": False,
            "prior_accidents": True,
            "safety_motivation": 2,
            "management_trust": 2,
            "job_satisfaction": 2,
            "created_at": NOW - timedelta(days=30),
        },
        {
            "id": "u3",
            "name": "Marta",
            "department": "quality",
            "shift": "morning",
            "position": "inspector",
            "gender": "female",
            "age": 51,
            "seniority_years": 10,
            "uses_ppe": True,
            "safety_training": False,
            "reports_near_misses": True,
            "prior_accidents": False,
            "safety_motivation": 5,
            "management_trust": 3,
            "job_satisfaction": 4,
            "created_at": NOW - timedelta(days=20),
        },
    ]


def make_assessments() -> list[dict[str, Any]]:
    return [
        {
            "id": "a1",
            "user_id": "u1",
            "session_id": "s1",
            "answered_at": NOW - timedelta(days=10),
            "normalized_score": 1,
            "risk_percentage": 10,
        },
        {
            "id": "a2",
            "user_id": "u2",
            "session_id": "s2",
            "answered_at": NOW - timedelta(days=9),
            "normalized_score": 8,
            "risk_percentage": 85,
        },
        {
            "id": "a3",
            "user_id": "u2",
            "session_id": "s3",
            "answered_at": NOW - timedelta(days=2),
            "normalized_score": 5,
            "risk_percentage": 55,
        },
    ]


def _answer(
    row_id: int, person_id: str, question_id: str, value: int, days_ago: int
) -> dict[str, Any]:
    return {
        "id": row_id,
        "person_id": person_id,
        "question_id": question_id,
        "value": value,
        "created_at": NOW - timedelta(days=days_ago),
    }


def make_survey_tables() -> dict[str, list[dict[str, Any]]]:
    persons = [
        {
            "id": "p1",
            "age": 24,
            "gender": "female",
            "education_level": "technical",
            "driving_experience": 3,
        },
        {
            "id": "p2",
            "age": 38,
            "gender": "male",
            "education_level": "secondary",
            "driving_experience": 15,
        },
    ]
    questions = [
        {"id": "q1", "category": "health", "subcategory": "sleep", "text": "Sleep"},
        {"id": "q2", "category": "health", "subcategory": "stress", "text": "Strain"},
        {"id": "q3", "category": "safety", "subcategory": "ppe", "text": "PPE"},
    ]
    responses = [
        _answer(1, "p1", "q1", 1, days_ago=3),
        _answer(2, "p1", "q2", 2, days_ago=3),
        _answer(3, "p1", "q3", 0, days_ago=3),
        _answer(4, "p2", "q1", 3, days_ago=1),
        _answer(5, "p2", "q2", 2, days_ago=1),
        _answer(6, "p2", "q3", 1, days_ago=1),
    ]
    return {
        "responses": responses,
        "persons": persons,
        "questions": questions,
        "assessments": make_assessments(),
        "users": make_users(),
    }


@pytest.fixture
def survey_tables() -> dict[str, list[dict[str, Any]]]:
    """Raw survey rows: 3 users, 3 assessments, 2 persons, 6 answers."""
    return make_survey_tables()


@pytest.fixture
def joined_assessments(survey_tables) -> list[dict[str, Any]]:
    """Assessments with their user embedded under ``user``."""
    users = {user["id"]: user for user in survey_tables["users"]}
    return [
        {**row, "user": users[row["user_id"]]} for row in survey_tables["assessments"]
    ]


@pytest.fixture
def joined_responses(survey_tables) -> list[dict[str, Any]]:
    """Answers with ``person`` and ``question`` embedded."""
    persons = {person["id"]: person for person in survey_tables["persons"]}
    questions = {question["id"]: question for question in survey_tables["questions"]}
    return [
        {
            **row,
            "person": persons[row["person_id"]],
            "question": questions[row["question_id"]],
        }
        for row in survey_tables["responses"]
    ]


@pytest.fixture
def survey_provider(survey_tables) -> InMemoryDataProvider:
    """In-memory provider seeded with a small survey."""
    return InMemoryDataProvider(survey_tables)


@pytest.fixture
def factory(survey_provider, settings) -> QueryStrategyFactory:
    return QueryStrategyFactory(survey_provider, settings)


@pytest.fixture
def client(survey_provider) -> Iterator[TestClient]:
    """Test client over the full app, lifespan included."""
    from occmetrics.main import create_app

    with TestClient(create_app(survey_provider)) as test_client:
        yield test_client
