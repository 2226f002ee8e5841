"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.orm import sessionmaker

from merchant_discovery.config import settings
from merchant_discovery.infrastructure.clients.reasoning import ChatCompletionReasoningClient, ReasoningClient
from merchant_discovery.infrastructure.clients.web_search import BraveSearchClient, WebSearchClient
from merchant_discovery.infrastructure.database.session import SessionLocal
from merchant_discovery.services.inference import InferenceEngine


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache
def get_reasoning_client() -> ReasoningClient:
    """Shared reasoning client (one concurrency bound for the process)"""
    return ChatCompletionReasoningClient()


@lru_cache
def get_search_client() -> WebSearchClient:
    """Shared search client (one rate limiter for the process)"""
    return BraveSearchClient()


def get_inference_engine(
    reasoning_client: ReasoningClient = Depends(get_reasoning_client),
    search_client: WebSearchClient = Depends(get_search_client),
) -> InferenceEngine:
    return InferenceEngine(
        reasoning_client,
        search_client,
        search_confidence_threshold=settings.web_search_confidence_threshold,
        forced_confirmed_confidence=settings.forced_confirmed_confidence,
        forced_corrected_confidence=settings.forced_corrected_confidence,
        max_search_results=settings.web_search_max_results,
    )


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request scope (streaming)"""
    return SessionLocal
