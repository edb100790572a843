"""
Search telemetry - query log, stats backfill and suggestion aggregates

Each step is best-effort: failures are logged and never reach the caller.
"""
from typing import Optional
import logging

from ..domain.models import SearchFilters
from ..domain.repositories import ISearchLogRepository

logger = logging.getLogger(__name__)


class SearchTelemetry:
    """Records completed searches"""

    def __init__(self, log_repository: ISearchLogRepository, backfill_window_seconds: int = 60):
        self.log_repo = log_repository
        self.backfill_window_seconds = backfill_window_seconds

    async def record_search(
        self,
        user_id: Optional[int],
        filters: SearchFilters,
        result_count: int,
        execution_time_ms: int,
    ) -> None:
        """
        Log the query, backfill its stats and bump the suggestion aggregate

        Anonymous searches are not logged, but still feed suggestions.
        """
        text = filters.text

        if user_id is not None:
            try:
                await self.log_repo.log_query(
                    user_id, text, filters.snapshot(), filters.city, filters.state
                )
            except Exception as e:
                logger.warning(f"Search telemetry step log_query failed for {text!r}: {e}")

        if not text:
            return

        if user_id is not None:
            try:
                matched = await self.log_repo.backfill_stats(
                    user_id,
                    text,
                    result_count,
                    execution_time_ms,
                    self.backfill_window_seconds,
                )
                if not matched:
                    logger.debug(f"No recent search_queries row to backfill for {text!r}")
            except Exception as e:
                logger.warning(f"Search telemetry step backfill_stats failed for {text!r}: {e}")

        try:
            await self.log_repo.upsert_suggestion(text, result_count)
        except Exception as e:
            logger.warning(f"Search telemetry step upsert_suggestion failed for {text!r}: {e}")
