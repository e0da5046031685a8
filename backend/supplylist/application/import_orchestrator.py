"""Turns extracted document rows into a new list version: match, classify, persist once."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from supplylist.domain.common.errors import ConflictError, InfrastructureError, NotFoundError
from supplylist.domain.common.result import Result
from supplylist.domain.materials.matching import SimilarityMatcher
from supplylist.domain.materials.models import CatalogEntry, ListVersion, MatchResult, MaterialItem
from supplylist.domain.materials.rules import validate_item_content
from supplylist.domain.materials.service import ListVersionEngine, build_item, next_item_id
from supplylist.persistence.interfaces.version_store import VersionStore
from supplylist.persistence.mappers import draft_from_extracted

logger = logging.getLogger(__name__)


@dataclass
class ItemOutcome:
    id: str
    name: str
    catalog_link_state: str
    match_score: Optional[float] = None
    catalog_ref: Optional[str] = None
    classified: bool = False
    notes: List[str] = field(default_factory=list)


@dataclass
class ImportReport:
    course_id: str
    source_document_ref: Optional[str]
    items: List[ItemOutcome] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    catalog_available: bool = True
    classification_error: Optional[str] = None

    @property
    def counts(self) -> Dict[str, int]:
        states: Dict[str, int] = {}
        for outcome in self.items:
            states[outcome.catalog_link_state] = states.get(outcome.catalog_link_state, 0) + 1
        return {
            "total": len(self.items),
            "skipped": len(self.skipped),
            "classified": sum(1 for o in self.items if o.classified),
            **states,
        }


@dataclass
class ImportResult:
    version: ListVersion
    report: ImportReport


def _ordered_drafts(extracted_items: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Extraction order, unless every row carries an explicit integer ``ordinal``."""
    drafts = [draft_from_extracted(dict(d)) for d in extracted_items if isinstance(d, Mapping)]
    explicit = drafts and all(
        isinstance(d.get("ordinal"), int) and not isinstance(d.get("ordinal"), bool) for d in drafts
    )
    if explicit:
        return sorted(drafts, key=lambda d: d["ordinal"])
    return drafts


class ImportOrchestrator:

    def __init__(
        self,
        store: VersionStore,
        catalog: Any,
        classifier: Any,
        matcher: Optional[SimilarityMatcher] = None,
        engine: Optional[ListVersionEngine] = None,
        max_conflict_retries: int = 3,
    ):
        self._store = store
        self._catalog = catalog
        self._classifier = classifier
        self._matcher = matcher or SimilarityMatcher()
        self._engine = engine or ListVersionEngine()
        self._max_conflict_retries = max_conflict_retries

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _build_items(self, drafts: Sequence[Mapping[str, Any]], report: ImportReport) -> List[MaterialItem]:
        now = self._engine.now_iso()
        items: List[MaterialItem] = []
        for row, draft in enumerate(drafts, start=1):
            validation = validate_item_content(dict(draft))
            if not validation.is_success:
                report.skipped.append({"row": row, "name": draft.get("name"), "reason": validation.error})
                continue
            items.append(build_item(draft, next_item_id(items), len(items) + 1, now))
        return items

    def _snapshot_catalog(self, report: ImportReport) -> Optional[List[CatalogEntry]]:
        try:
            return self._catalog.fetch_products()
        except InfrastructureError as exc:
            logger.warning("Catalog unavailable during import of %s: %s", report.course_id, exc)
            report.catalog_available = False
            return None

    def _match_items(
        self, items: Sequence[MaterialItem], catalog: Optional[List[CatalogEntry]], notes: Dict[str, List[str]]
    ) -> Dict[str, MatchResult]:
        matches: Dict[str, MatchResult] = {}
        for item in items:
            if catalog is None:
                notes[item.id].append("catalog unavailable")
                continue
            try:
                matches[item.id] = self._matcher.match(item.name, catalog, isbn=item.isbn)
            except Exception as exc:
                logger.exception("Matching failed for item %s (%s)", item.id, item.name)
                notes[item.id].append(f"matching failed: {exc}")
        return matches

    def _classify(
        self, version: ListVersion, report: ImportReport, notes: Dict[str, List[str]]
    ) -> tuple[ListVersion, List[str]]:
        pending = [
            {"id": item.id, "name": item.name}
            for item in version.items
            if not item.category or not item.subject
        ]
        if not pending:
            return version, []
        try:
            suggestions = self._classifier.classify(pending)
        except InfrastructureError as exc:
            logger.warning("Classification unavailable during import of %s: %s", report.course_id, exc)
            report.classification_error = str(exc)
            for entry in pending:
                notes[entry["id"]].append("left unclassified")
            return version, []
        result = self._engine.apply_classification_suggestions(version, suggestions)
        return result.value

    def _persist(self, course_id: str, version: ListVersion) -> ListVersion:
        attempt = 0
        while True:
            course = self._store.load_course(course_id)
            appended = self._engine.replace_version(course, version).value
            try:
                self._store.save_versions(course_id, appended.versions, course.revision)
                return appended.versions[-1]
            except ConflictError:
                attempt += 1
                if attempt > self._max_conflict_retries:
                    raise
                logger.info("Import for course %s hit a concurrent edit; retrying", course_id)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def import_version(
        self,
        course_id: str,
        extracted_items: Sequence[Mapping[str, Any]],
        source_document_ref: Optional[str] = None,
    ) -> Result[ImportResult]:
        """
        Builds and appends a new version for ``course_id``. Catalog and
        classification outages only degrade items; a store failure aborts
        the import with nothing written.
        """
        if not isinstance(extracted_items, (list, tuple)):
            return Result.fail("'items' must be a list of extracted rows.")
        try:
            self._store.load_course(course_id)
        except NotFoundError as exc:
            return Result.not_found(str(exc))

        report = ImportReport(course_id=course_id, source_document_ref=source_document_ref)
        items = self._build_items(_ordered_drafts(extracted_items), report)
        notes: Dict[str, List[str]] = {item.id: [] for item in items}

        draft_version = ListVersion(
            version_timestamp="",
            source_document_ref=source_document_ref,
            items=items,
        )
        catalog = self._snapshot_catalog(report)
        matches = self._match_items(items, catalog, notes)
        draft_version = self._engine.apply_matches(draft_version, matches).value
        draft_version, classified = self._classify(draft_version, report, notes)

        try:
            version = self._persist(course_id, draft_version)
        except NotFoundError as exc:
            return Result.not_found(str(exc))

        classified_ids = set(classified)
        for item in version.items:
            report.items.append(
                ItemOutcome(
                    id=item.id,
                    name=item.name,
                    catalog_link_state=item.catalog_link_state,
                    match_score=item.match_score,
                    catalog_ref=item.catalog_ref,
                    classified=item.id in classified_ids or bool(item.category and item.subject),
                    notes=notes.get(item.id, []),
                )
            )
        logger.info(
            "Imported version %s for course %s from %s: %s",
            version.version_timestamp, course_id, source_document_ref, report.counts,
        )
        return Result.ok(ImportResult(version=version, report=report))
