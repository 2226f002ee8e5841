"""Pytest fixtures for testing"""

import json
import re
import pytest
from datetime import date
from typing import Callable, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from merchant_discovery.api.dependencies import get_inference_engine, get_session_factory
from merchant_discovery.api.main import create_app
from merchant_discovery.domain.models import SearchResult, Transaction, WebSearchResponse
from merchant_discovery.infrastructure.database.models import Base
from merchant_discovery.infrastructure.database.session import get_db
from merchant_discovery.services.inference import InferenceEngine


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_CODE_LINE = re.compile(r'^CODE: "(.*)"$', re.MULTILINE)


def inference_json(
    name: str,
    confidence: float = 0.9,
    merchant_type: str = "service",
    needs_web_search: bool = False,
    search_terms: Optional[List[str]] = None,
) -> str:
    """Well-formed reasoning-service answer"""
    return json.dumps(
        {
            "structural_analysis": "structure",
            "value_analysis": "values",
            "temporal_analysis": "timing",
            "hypotheses": [{"name": name, "confidence": confidence}],
            "needs_web_search": needs_web_search,
            "search_terms": search_terms or [],
            "final_inference": {
                "name": name,
                "confidence": confidence,
                "type": merchant_type,
                "reasoning_summary": f"Looks like {name}",
            },
        }
    )


def prompt_code(prompt: str) -> str:
    match = _CODE_LINE.search(prompt)
    return match.group(1) if match else ""


class FakeReasoningClient:
    """Reasoning client answering through a handler, recording every prompt"""

    def __init__(self, handler: Callable[[str], str]):
        self.handler = handler
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.handler(prompt)


class FakeSearchClient:
    """Search client returning canned results, recording every query"""

    def __init__(self, results: Optional[List[SearchResult]] = None):
        self.results = results or []
        self.queries: List[str] = []

    async def search(self, query: str, max_results: int = 5) -> WebSearchResponse:
        self.queries.append(query)
        return WebSearchResponse(query=query, results=list(self.results[:max_results]))


@pytest.fixture
def make_reasoning_client() -> Callable[[Callable[[str], str]], FakeReasoningClient]:
    return FakeReasoningClient


@pytest.fixture
def make_search_client() -> Callable[..., FakeSearchClient]:
    return FakeSearchClient


@pytest.fixture
def answer() -> Callable[..., str]:
    """Builder for reasoning-service JSON answers"""
    return inference_json


@pytest.fixture
def code_of() -> Callable[[str], str]:
    """Extract the canonical code a prompt is about"""
    return prompt_code


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def reasoning_client() -> FakeReasoningClient:
    """Answers every prompt with a confident inference named after its code"""
    return FakeReasoningClient(lambda prompt: inference_json(f"{prompt_code(prompt).title()} Ltda", 0.9))


@pytest.fixture
def inference_engine(reasoning_client: FakeReasoningClient) -> InferenceEngine:
    return InferenceEngine(reasoning_client, FakeSearchClient())


@pytest.fixture
def client(db: Session, inference_engine: InferenceEngine) -> TestClient:
    """Create FastAPI test client with test database and fake clients"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inference_engine] = lambda: inference_engine
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    return TestClient(app)


def _txn(txn_id: str, day: date, amount: float, description: str, type: str = "debit") -> Transaction:
    return Transaction(
        id=txn_id,
        date=day,
        amount=amount,
        description=description,
        raw_description=description.lower(),
        type=type,
    )


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    return _txn


@pytest.fixture
def sample_transactions() -> List[Transaction]:
    """
    Statement with four merchants:
    NETFLIX (monthly subscription), UBER (rides), DROGASIL (pharmacy), PIX TRANSF JOAO
    """
    return [
        # Monthly subscription on day 5, variable reference number
        _txn("t1", date(2025, 1, 5), -55.90, "NETFLIX 12345678"),
        _txn("t2", date(2025, 2, 5), -55.90, "NETFLIX 87654321"),
        _txn("t3", date(2025, 3, 5), -55.90, "NETFLIX 11223344"),
        # Rides with trip ids after the asterisk
        _txn("t4", date(2025, 1, 12), -23.50, "UBER *TRIP 111111"),
        _txn("t5", date(2025, 2, 5), -41.00, "UBER *TRIP 222222"),
        # Store number fused or separated
        _txn("t6", date(2025, 1, 20), -89.90, "DROGASIL1984"),
        _txn("t7", date(2025, 2, 22), -12.40, "DROGASIL 2001"),
        # Incoming transfer
        _txn("t8", date(2025, 3, 1), 200.00, "PIX TRANSF JOAO", type="pix"),
    ]
