import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["GENERATOR_WEBHOOK_URL"] = "http://generator.test/webhook"
os.environ["GENERATOR_ACK_BACKOFF_SECONDS"] = "0"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["PUBLIC_BASE_URL"] = "http://quiz.test"

from quizgen.core.security import create_access_token
from quizgen.db.base import Base
from quizgen.db.session import SessionLocal, engine
from quizgen.main import create_app
from quizgen.services.generation.client import GeneratorClient, get_generator_client
from quizgen.services.jobs.registry import get_job_registry

SAMPLE_QUESTIONS = [
    {
        "id": 1,
        "question": "What does love not do, according to Paul?",
        "options": {"A": "Envy", "B": "Hope", "C": "Endure", "D": "Rejoice"},
        "correct_answer": "A",
        "explanation": "Love does not envy.",
        "biblical_reference": "1 Corinthians 13:4-7",
        "difficulty": "easy",
        "question_type": "knowledge",
    },
    {
        "id": 2,
        "question": "What was created in the beginning?",
        "options": [{"id": "a", "text": "The heavens and the earth"}, {"id": "b", "text": "The ark"}],
        "correct_answer": "a",
        "explanation": "Genesis opens with creation.",
        "biblical_reference": "Genesis 1:1",
    },
]


class FakeGenerator:
    """Scripted stand-in for the external question generator."""

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self.headers: list[httpx.Headers] = []
        self.outcomes: list = []
        self.default = (200, {"status": "processing"})

    def queue(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        status_code, body = outcome
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, content=(body or "").encode("utf-8"))

    def client(self, **kwargs) -> GeneratorClient:
        return GeneratorClient(
            "http://generator.test/webhook",
            ack_backoff=0,
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    path = Path("test.db")
    if path.exists():
        path.unlink()


@pytest.fixture(autouse=True)
def reset_registry():
    registry = get_job_registry()
    for job_id in list(registry._jobs):
        registry.delete(job_id)
    yield registry
    for job_id in list(registry._jobs):
        registry.delete(job_id)


@pytest.fixture()
def generator():
    return FakeGenerator()


@pytest.fixture()
def app(generator):
    application = create_app()
    application.dependency_overrides[get_generator_client] = lambda: generator.client()
    return application


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def auth_headers(educator_id: str = "educator-1", role: str = "educator") -> dict:
    return {"Authorization": f"Bearer {create_access_token(educator_id, role=role)}"}


def quiz_request(**overrides) -> dict:
    body = {
        "title": "Love Chapter Review",
        "description": "Questions on 1 Corinthians 13",
        "document_ids": [],
        "difficulty": "easy",
        "blooms_levels": ["knowledge", "comprehension"],
        "books": ["1 Corinthians"],
        "chapters": ["13"],
        "question_count": 2,
        "start_time": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.fixture()
def headers():
    return auth_headers()


@pytest.fixture()
def make_headers():
    return auth_headers


@pytest.fixture()
def quiz_body():
    return quiz_request


@pytest.fixture()
def sample_questions():
    return [dict(question) for question in SAMPLE_QUESTIONS]
