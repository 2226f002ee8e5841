"""POST /v1/discovery - merchant discovery runs (blocking and streamed)"""

import asyncio
import json
import logging
from contextlib import suppress
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from merchant_discovery.api.dependencies import get_inference_engine, get_request_id, get_session_factory
from merchant_discovery.api.v1.schemas import DiscoveryRunResponse, DiscoveryStatsResponse
from merchant_discovery.domain.exceptions import DiscoveryRunError, DomainException, NoTransactionsError
from merchant_discovery.domain.models import DiscoveryProgress, DiscoveryResult
from merchant_discovery.infrastructure.database.session import get_db
from merchant_discovery.services.discovery import DiscoveryWorkflow
from merchant_discovery.services.inference import InferenceEngine
from merchant_discovery.services.validation import ValidationService

router = APIRouter()


def _sse(event: str, payload: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


@router.post("/discovery", response_model=DiscoveryRunResponse)
async def run_discovery(
    request: Request,
    db: Session = Depends(get_db),
    engine: InferenceEngine = Depends(get_inference_engine),
):
    """
    Run merchant discovery over every stored transaction.

    Flow:
    1. Group transactions by canonical code and build contexts
    2. Keep codes with no discovery or a weak unconfirmed one
    3. Infer merchants concurrently (learning history, web search)
    4. Persist new pending discoveries ranked by impact
    """
    request_id = get_request_id(request)

    try:
        result = await DiscoveryWorkflow(db, engine).run(request_id=request_id)
    except NoTransactionsError as e:
        logging.warning(f"Discovery requested without transactions: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))
    except DiscoveryRunError as e:
        logging.error(f"Discovery run failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail=str(e))

    return DiscoveryRunResponse(
        discoveries_count=result.discoveries_count,
        total_codes=result.total_codes,
        discovery_ids=result.discovery_ids,
    )


@router.post("/discovery/stream")
async def stream_discovery(
    request: Request,
    engine: InferenceEngine = Depends(get_inference_engine),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Run merchant discovery, streaming progress as Server-Sent Events.

    Events: ``progress`` per stage update, then ``result`` with the run
    counts or ``error`` with the failure message.
    """
    request_id = get_request_id(request)

    async def event_stream():
        queue: asyncio.Queue = asyncio.Queue()
        db = session_factory()

        async def run():
            try:
                await queue.put(await DiscoveryWorkflow(db, engine).run(progress=queue.put, request_id=request_id))
            except DomainException as e:
                logging.error(f"Streamed discovery run failed: {e}", extra={"request_id": request_id})
                await queue.put(e)
            finally:
                await queue.put(None)

        task = asyncio.create_task(run())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                if isinstance(item, DiscoveryProgress):
                    yield _sse("progress", {**asdict(item), "stage": item.stage.value})
                elif isinstance(item, DiscoveryResult):
                    yield _sse("result", asdict(item))
                else:
                    yield _sse("error", {"detail": str(item)})
        finally:
            if not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            db.close()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get("/discovery/stats", response_model=DiscoveryStatsResponse)
def get_discovery_stats(db: Session = Depends(get_db)):
    """Discovery counts per status and AI accuracy over validated discoveries"""
    return DiscoveryStatsResponse(**ValidationService(db).stats())
