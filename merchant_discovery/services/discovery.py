"""Discovery workflow - analyze transactions, infer unknown merchants, persist pending discoveries"""

import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Union

from sqlalchemy.orm import Session

from merchant_discovery.config import Settings, settings as default_settings
from merchant_discovery.domain.context import analyze_all_transactions
from merchant_discovery.domain.exceptions import DiscoveryRunError, NoTransactionsError
from merchant_discovery.domain.inference import filter_contexts_needing_inference
from merchant_discovery.domain.models import (
    DiscoveryProgress,
    DiscoveryResult,
    DiscoveryStage,
    MerchantInference,
)
from merchant_discovery.domain.normalization import DEFAULT_RULES, NormalizationRules
from merchant_discovery.domain.scoring import calculate_impact_score
from merchant_discovery.infrastructure.database.repositories import (
    DiscoveryRepository,
    LearningRepository,
    TransactionRepository,
)
from merchant_discovery.infrastructure.observability.logging import log_discovery_run
from merchant_discovery.infrastructure.observability.metrics import record_discovery_run
from merchant_discovery.services.inference import InferenceEngine

logger = logging.getLogger(__name__)

ProgressSink = Callable[[DiscoveryProgress], Union[None, Awaitable[Any]]]


class DiscoveryWorkflow:
    """
    One discovery run: idle -> analyzing -> inferring -> saving -> complete.

    Any failure moves the run to the error stage. Discoveries saved before
    the failure stay committed.
    """

    def __init__(
        self,
        db: Session,
        engine: InferenceEngine,
        settings: Optional[Settings] = None,
        rules: NormalizationRules = DEFAULT_RULES,
    ):
        self.db = db
        self.engine = engine
        self.settings = settings or default_settings
        self.rules = rules
        self.transactions = TransactionRepository(db)
        self.discoveries = DiscoveryRepository(db)
        self.learning = LearningRepository(db)
        self.stage = DiscoveryStage.IDLE

    async def run(
        self,
        progress: Optional[ProgressSink] = None,
        request_id: Optional[str] = None,
    ) -> DiscoveryResult:
        """
        Run the workflow end to end.

        Raises:
            NoTransactionsError: No transactions to analyze
            DiscoveryRunError: Any other failure (original exception chained)
        """
        start_time = time.perf_counter()
        total_codes = 0
        created_ids: List[int] = []

        try:
            await self._emit(progress, DiscoveryStage.ANALYZING, 0, 0, "Loading transactions...")
            transactions = self.transactions.get_all_transactions()
            if not transactions:
                raise NoTransactionsError("No transactions found. Upload a statement first.")

            contexts = analyze_all_transactions(transactions, self.rules)
            total_codes = len(contexts)
            await self._emit(
                progress, DiscoveryStage.ANALYZING, total_codes, total_codes,
                f"Found {total_codes} unique codes in {len(transactions)} transactions",
            )

            pending = filter_contexts_needing_inference(
                list(contexts.values()),
                self.discoveries.get_existing_discovery_map(),
                self.settings.reinference_confidence_threshold,
            )
            if not pending:
                await self._emit(
                    progress, DiscoveryStage.COMPLETE, total_codes, total_codes,
                    "All codes are already known",
                )
                self._finish(start_time, total_codes, created_ids, request_id, outcome="empty")
                return DiscoveryResult(discoveries_count=0, total_codes=total_codes)

            history = self.learning.get_learning_signals()
            inferences = await self._infer(pending, history, progress)

            for index, inference in enumerate(inferences, start=1):
                discovery_id = self._save(contexts[inference.code], inference)
                if discovery_id is not None:
                    created_ids.append(discovery_id)
                    await self._emit(
                        progress, DiscoveryStage.SAVING, index, len(inferences),
                        f"Saved {inference.inferred_name}", code=inference.code,
                    )

            await self._emit(
                progress, DiscoveryStage.COMPLETE, len(created_ids), total_codes,
                f"{len(created_ids)} new merchants discovered",
            )
        except Exception as e:
            self.db.rollback()
            await self._emit(progress, DiscoveryStage.ERROR, 0, 0, str(e))
            record_discovery_run("error")
            log_discovery_run(
                total_codes, len(created_ids), self._elapsed_ms(start_time),
                request_id=request_id, error=str(e),
            )
            if isinstance(e, NoTransactionsError):
                raise
            raise DiscoveryRunError(f"Discovery run failed: {e}") from e

        self._finish(start_time, total_codes, created_ids, request_id, outcome="complete")
        return DiscoveryResult(
            discoveries_count=len(created_ids),
            total_codes=total_codes,
            discovery_ids=created_ids,
        )

    async def _infer(self, contexts, history, progress) -> List[MerchantInference]:
        total = len(contexts)
        await self._emit(progress, DiscoveryStage.INFERRING, 0, total, f"Inferring {total} merchants...")

        inferences: List[MerchantInference] = []
        async for event in self.engine.stream_batch(contexts, history):
            if event.type in ("result", "error"):
                await self._emit(
                    progress, DiscoveryStage.INFERRING, event.current, event.total,
                    event.message, code=event.code,
                )
            elif event.type == "complete":
                inferences = event.results

        await self._emit(
            progress, DiscoveryStage.SAVING, 0, len(inferences),
            f"Saving {len(inferences)} discoveries...",
        )
        return inferences

    def _save(self, context, inference: MerchantInference) -> Optional[int]:
        """Persist one pending discovery; existing codes are left untouched"""
        if self.discoveries.get_discovery_by_code(inference.code) is not None:
            logger.info("Discovery already exists, skipping", extra={"code": inference.code})
            return None

        impact_score = calculate_impact_score(context, inference.confidence)
        discovery_id = self.discoveries.add_merchant_discovery(context, inference, impact_score)
        self.db.commit()
        return discovery_id

    async def _emit(
        self,
        progress: Optional[ProgressSink],
        stage: DiscoveryStage,
        current: int,
        total: int,
        message: str,
        code: Optional[str] = None,
    ) -> None:
        self.stage = stage
        if progress is None:
            return
        result = progress(DiscoveryProgress(stage=stage, current=current, total=total, message=message, code=code))
        if inspect.isawaitable(result):
            await result

    def _finish(self, start_time, total_codes, created_ids, request_id, outcome: str) -> None:
        record_discovery_run(outcome, len(created_ids))
        log_discovery_run(total_codes, len(created_ids), self._elapsed_ms(start_time), request_id=request_id)

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000
