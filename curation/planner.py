"""Search query planning: least-covered techniques first."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from storage.base import CurationStore
from .catalog import Catalog


logger = logging.getLogger(__name__)

QUERY_TEMPLATES = (
    "{technique} bjj technique",
    "{technique} jiu jitsu tutorial",
    "{technique} instructional",
)


class QueryPlanner:
    def __init__(
        self,
        catalog: Catalog,
        store: CurationStore,
        *,
        templates: Sequence[str] = QUERY_TEMPLATES,
        fixed_queries: Optional[Sequence[str]] = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.templates = tuple(templates)
        self.fixed_queries = [q.strip() for q in (fixed_queries or []) if q and q.strip()]

    def coverage_ratio(self, technique_name: str) -> float:
        target = max(1, self.catalog.target_for(technique_name))
        return self.store.count_knowledge_records(technique_name=technique_name) / target

    def plan(self, max_queries: int = 10) -> List[str]:
        """
        Build up to ``max_queries`` search strings.

        Configured queries are used verbatim when present. Otherwise techniques
        are ordered by coverage ratio and each gets one query, cycling through
        the templates.
        """
        limit = max(0, int(max_queries))
        if self.fixed_queries:
            return self.fixed_queries[:limit]

        ranked = sorted(
            self.catalog.techniques,
            key=lambda entry: (self.coverage_ratio(entry.name), not entry.fundamental, entry.name),
        )
        queries: List[str] = []
        for index, entry in enumerate(ranked[:limit]):
            template = self.templates[index % len(self.templates)] if self.templates else "{technique}"
            queries.append(template.format(technique=entry.name.lower()))
        logger.info(f"[Planner] Planned {len(queries)} queries")
        return queries
