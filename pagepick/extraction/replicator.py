"""Template replication — apply a bound template to every sibling card.

Fast, deterministic, no AI cost. The operator binds a few fields on one
exemplar card; each sibling container is then searched for the element
playing the same role and run through the same value heuristics.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from bs4 import Tag
from soupsieve import SelectorSyntaxError

from pagepick.config.settings import PagePickConfig
from pagepick.dom.document import PageDocument, contains
from pagepick.dom.highlights import SIMILAR_CLASS, HighlightRegistry
from pagepick.extraction.containers import find_container
from pagepick.extraction.models import (
    RECORD_FIELD_BY_KIND,
    ContainerStrategy,
    Record,
    TemplateBinding,
    is_blank,
    is_duplicate,
)
from pagepick.extraction.selectors import last_segment
from pagepick.extraction.similarity import is_similar
from pagepick.extraction.values import extract_value
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def template_record(bindings: Iterable[TemplateBinding], url: str = "") -> Record:
    """The record the exemplar card itself stands for."""
    values = {
        RECORD_FIELD_BY_KIND[binding.field_kind]: binding.last_value
        for binding in bindings
        if not is_blank(binding.last_value)
    }
    return Record(url=url, **values)


class TemplateReplicator:
    """Produces one draft record per sibling container of a bound template."""

    def __init__(
        self,
        config: PagePickConfig | None = None,
        registry: HighlightRegistry | None = None,
    ) -> None:
        self.config = config or PagePickConfig()
        self.registry = registry or HighlightRegistry()

    def find_similar(
        self,
        bindings: Sequence[TemplateBinding],
        page: PageDocument,
        history: Sequence[Record] = (),
    ) -> list[Record]:
        """Extract a draft record from every container similar to the exemplar's.

        Args:
            bindings: Template bindings, in the order the operator made them.
                The first live binding decides which container is the exemplar.
            page: The page the bindings point into.
            history: Records already produced this session; new drafts that
                duplicate any of them are dropped.

        Returns:
            New draft records, in sibling order. Never includes the exemplar.
        """
        live = [
            (binding, element)
            for binding in bindings
            if (element := binding.element.resolve()) is not None
        ]
        if not live:
            logger.info("No live template bindings; nothing to replicate")
            return []

        exemplars = [element for _, element in live]
        candidate = find_container(exemplars[0], page, self.config.containers)
        if candidate.strategy is ContainerStrategy.FALLBACK:
            emit_structured_error(
                logger,
                code=ErrorCode.CONTAINER_NOT_FOUND,
                message="No repeating container around the template exemplar",
                suppressed=True,
                page_url=page.url,
                field_kind=live[0][0].field_kind.value,
            )

        seen: list[Record] = [template_record(bindings, page.url), *history]
        generated_at = datetime.now(timezone.utc)
        records: list[Record] = []

        for sibling_ref in candidate.siblings:
            container = sibling_ref.resolve()
            if container is None:
                continue
            if any(contains(container, exemplar) for exemplar in exemplars):
                continue

            values: dict[str, str] = {}
            matched: list[Tag] = []
            for binding, exemplar in live:
                element = self._locate(container, binding, exemplar, page)
                if element is None:
                    continue
                value = extract_value(element, binding.field_kind, page=page).strip()
                if not value:
                    continue
                values[RECORD_FIELD_BY_KIND[binding.field_kind]] = value
                matched.append(element)

            if not values:
                continue

            draft = Record(url=page.url, created_at=generated_at, verified=False, **values)
            if any(is_duplicate(draft, existing) for existing in (*seen, *records)):
                logger.debug("Skipping duplicate draft %r", draft.title or draft.image)
                continue

            records.append(draft)
            for element in matched:
                self.registry.add_class(element, SIMILAR_CLASS)

        logger.info(
            "Replicated template over %d containers (%s): %d new records",
            len(candidate.siblings),
            candidate.strategy.value,
            len(records),
        )
        return records

    def _locate(
        self,
        container: Tag,
        binding: TemplateBinding,
        exemplar: Tag,
        page: PageDocument,
    ) -> Tag | None:
        segment = last_segment(binding.selector)
        if segment:
            try:
                match = container.select_one(segment)
            except (SelectorSyntaxError, ValueError, NotImplementedError) as exc:
                emit_structured_error(
                    logger,
                    code=ErrorCode.SELECTOR_QUERY_FAILED,
                    message=str(exc),
                    suppressed=True,
                    page_url=page.url,
                    field_kind=binding.field_kind.value,
                    details={"selector": segment},
                )
                match = None
            if match is not None:
                return match

        for element in container.find_all(exemplar.name):
            if is_similar(element, exemplar, self.config.similarity):
                return element
        return None
