"""
candidate_cache.py — Read-through cache of every incident report.

Duplicate detection compares a draft against the whole corpus, not just the
caller's own reports. Instead of querying per check, the corpus is held here
and replaced wholesale whenever the store subscription delivers a new result
set (see DocumentStore.subscribe). Nothing else writes to it: new reports
show up once the store reports them back.

If no delivery has arrived yet (e.g. the first request races the startup
subscription), get_candidates() loads once through the injected loader.
"""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from greenguardian.models.incident import ReportSummary

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[list[dict]]]


class ReportCandidateCache:
    def __init__(self, loader: Optional[Loader] = None):
        self._loader = loader
        self._candidates: list[ReportSummary] = []
        self._loaded = False
        self.refreshed_at: Optional[datetime] = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    def set_loader(self, loader: Optional[Loader]) -> None:
        self._loader = loader

    def replace(self, docs: list[dict]) -> None:
        """Swap in a full snapshot. Malformed documents are skipped."""
        candidates: list[ReportSummary] = []
        for doc in docs:
            try:
                candidates.append(ReportSummary.from_doc(doc))
            except (KeyError, ValidationError) as exc:
                logger.warning("Skipping malformed report doc %s: %s", doc.get("id"), exc)
        self._candidates = candidates
        self._loaded = True
        self.refreshed_at = datetime.now(tz=timezone.utc)
        logger.debug("Candidate cache refreshed: %d reports", len(candidates))

    def snapshot(self) -> list[ReportSummary]:
        return list(self._candidates)

    async def get_candidates(self) -> list[ReportSummary]:
        if not self._loaded and self._loader is not None:
            try:
                self.replace(await self._loader())
            except Exception as exc:
                # An empty pool means "no duplicates found", never a failed submission.
                logger.warning("Candidate load failed: %s", exc)
        return self.snapshot()

    def clear(self) -> None:
        self._candidates = []
        self._loaded = False
        self.refreshed_at = None


# Module-level singleton fed by the subscription started in main.py's lifespan
report_candidates = ReportCandidateCache()


def get_candidate_cache() -> ReportCandidateCache:
    return report_candidates
