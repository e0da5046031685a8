"""Application service: orchestrates load → domain op → save for every interactive edit."""
from __future__ import annotations
import logging
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from supplylist.application.import_orchestrator import ImportOrchestrator, ImportResult
from supplylist.domain.common.errors import ConflictError, NotFoundError
from supplylist.domain.common.result import Result
from supplylist.domain.materials.comparison import compare_versions
from supplylist.domain.materials.matching import SimilarityMatcher
from supplylist.domain.materials.models import Course, ListVersion, MaterialItem
from supplylist.domain.materials.selection import (
    effective_timestamp,
    find_version_index,
    select_current_index,
    select_current_version,
)
from supplylist.domain.materials.service import ListVersionEngine
from supplylist.persistence.interfaces.version_store import VersionStore

logger = logging.getLogger(__name__)

# An engine call: takes the target version, returns Result[(new_version, payload)]
VersionOp = Callable[[ListVersion], Result]


class ListAppService:
    def __init__(
        self,
        store: VersionStore,
        catalog: Any = None,
        classifier: Any = None,
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
        self._importer = ImportOrchestrator(
            store=store,
            catalog=catalog,
            classifier=classifier,
            matcher=self._matcher,
            engine=self._engine,
            max_conflict_retries=max_conflict_retries,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load(self, course_id: str) -> Result[Course]:
        try:
            return Result.ok(self._store.load_course(course_id))
        except NotFoundError as exc:
            return Result.not_found(str(exc))

    @staticmethod
    def _resolve_index(course: Course, version_timestamp: Optional[str]) -> Result[int]:
        current = select_current_index(course.versions)
        if current is None:
            return Result.not_found(f"Course '{course.id}' has no material list versions yet.")
        if version_timestamp is None:
            return Result.ok(current)
        index = find_version_index(course.versions, version_timestamp)
        if index is None:
            return Result.not_found(f"Version '{version_timestamp}' not found for course '{course.id}'.")
        if index != current:
            return Result.fail(
                f"Version '{version_timestamp}' has been superseded and is read-only; "
                f"edit the current version '{course.versions[current].version_timestamp}'."
            )
        return Result.ok(index)

    def _mutate(self, course_id: str, op: VersionOp, version_timestamp: Optional[str] = None) -> Result:
        """Read-modify-write on one version, retried on fresh state when a concurrent save wins."""
        attempt = 0
        while True:
            loaded = self._load(course_id)
            if not loaded.is_success:
                return loaded
            course = loaded.value
            resolved = self._resolve_index(course, version_timestamp)
            if not resolved.is_success:
                return resolved

            index = resolved.value
            outcome = op(course.versions[index])
            if not outcome.is_success:
                return outcome
            new_version, payload = outcome.value

            versions = list(course.versions)
            versions[index] = new_version
            try:
                self._store.save_versions(course_id, versions, course.revision)
                return Result.ok(payload)
            except ConflictError:
                attempt += 1
                if attempt > self._max_conflict_retries:
                    raise
                logger.info("Concurrent edit on course %s; retrying (%d)", course_id, attempt)
            except NotFoundError as exc:
                return Result.not_found(str(exc))

    # ------------------------------------------------------------------
    # COURSES
    # ------------------------------------------------------------------
    def create_course(self, data: Mapping[str, Any]) -> Result[Course]:
        name = (data.get("name") or "").strip()
        if not name:
            return Result.fail("Course 'name' is required and cannot be empty.")
        course = Course(
            id=str(data.get("id") or uuid.uuid4()),
            name=name,
            level=data.get("level"),
            grade=data.get("grade"),
            year=data.get("year"),
            school_id=data.get("school_id"),
        )
        try:
            created = self._store.create_course(course)
        except ConflictError:
            return Result.fail(f"Course '{course.id}' already exists.")
        logger.info("Created course %s (%s)", created.id, created.name)
        return Result.ok(created)

    def get_course(self, course_id: str) -> Result[Course]:
        return self._load(course_id)

    def deactivate_course(self, course_id: str) -> Result[Course]:
        try:
            return Result.ok(self._store.set_course_active(course_id, False))
        except NotFoundError as exc:
            return Result.not_found(str(exc))

    def duplicate_course(
        self,
        course_id: str,
        data: Mapping[str, Any],
        copy_materials: bool = True,
        copy_source_document: bool = False,
    ) -> Result[Course]:
        """New course seeded from ``course_id``; only its current version is carried over, freshly stamped."""
        loaded = self._load(course_id)
        if not loaded.is_success:
            return loaded
        source = loaded.value

        name = (data.get("name") or source.name or "").strip()
        if not name:
            return Result.fail("Course 'name' is required and cannot be empty.")
        course = Course(
            id=str(data.get("id") or uuid.uuid4()),
            name=name,
            level=data.get("level") or source.level,
            grade=data.get("grade") or source.grade,
            year=data.get("year") or source.year,
            school_id=data.get("school_id") or source.school_id,
        )
        current = select_current_version(source.versions)
        if copy_materials and current is not None:
            course.versions = [self._engine.copy_version(current, keep_source_document=copy_source_document).value]

        try:
            created = self._store.create_course(course)
        except ConflictError:
            return Result.fail(f"Course '{course.id}' already exists.")
        logger.info("Duplicated course %s into %s (%d versions)", course_id, created.id, len(created.versions))
        return Result.ok(created)

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def list_versions(self, course_id: str) -> Result[List[ListVersion]]:
        loaded = self._load(course_id)
        if not loaded.is_success:
            return loaded
        return Result.ok(loaded.value.versions)

    def get_current_version(self, course_id: str) -> Result[ListVersion]:
        loaded = self._load(course_id)
        if not loaded.is_success:
            return loaded
        course = loaded.value
        index = select_current_index(course.versions)
        if index is None:
            return Result.not_found(f"Course '{course_id}' has no material list versions yet.")
        return Result.ok(course.versions[index])

    def compare_versions(
        self,
        course_id: str,
        base_timestamp: Optional[str] = None,
        target_timestamp: Optional[str] = None,
    ) -> Result[Dict[str, Any]]:
        """Defaults to the current version against the one before it in timestamp order."""
        loaded = self._load(course_id)
        if not loaded.is_success:
            return loaded
        versions = loaded.value.versions
        if not versions:
            return Result.not_found(f"Course '{course_id}' has no material list versions yet.")

        chronological = sorted(range(len(versions)), key=lambda i: (effective_timestamp(versions[i]), i))
        picked: Dict[str, ListVersion] = {}
        for label, stamp in (("target", target_timestamp), ("base", base_timestamp)):
            if stamp is None:
                continue
            index = find_version_index(versions, stamp)
            if index is None:
                return Result.not_found(f"Version '{stamp}' not found for course '{course_id}'.")
            picked[label] = versions[index]

        if "target" not in picked:
            picked["target"] = versions[chronological[-1]]
        if "base" not in picked:
            older = [versions[i] for i in chronological if versions[i] is not picked["target"]]
            if not older:
                return Result.fail("At least two versions are needed for a comparison.")
            picked["base"] = older[-1]
        return Result.ok(compare_versions(picked["base"], picked["target"]))

    # ------------------------------------------------------------------
    # ITEM EDITS
    # ------------------------------------------------------------------
    def add_item(
        self,
        course_id: str,
        draft: Mapping[str, Any],
        ordinal: Optional[int] = None,
        version_timestamp: Optional[str] = None,
    ) -> Result[MaterialItem]:
        return self._mutate(
            course_id,
            lambda version: self._engine.add_item(version, draft, ordinal),
            version_timestamp,
        )

    def update_item(
        self,
        course_id: str,
        item_id: str,
        changes: Mapping[str, Any],
        version_timestamp: Optional[str] = None,
    ) -> Result[MaterialItem]:
        return self._mutate(
            course_id,
            lambda version: self._engine.update_item(version, item_id, changes),
            version_timestamp,
        )

    def remove_item(
        self, course_id: str, item_id: str, version_timestamp: Optional[str] = None
    ) -> Result[MaterialItem]:
        return self._mutate(
            course_id,
            lambda version: self._engine.remove_item(version, item_id),
            version_timestamp,
        )

    def set_approval(
        self, course_id: str, item_id: str, approved: bool, version_timestamp: Optional[str] = None
    ) -> Result[MaterialItem]:
        return self._mutate(
            course_id,
            lambda version: self._engine.set_approval(version, item_id, approved),
            version_timestamp,
        )

    def approve_all(self, course_id: str, version_timestamp: Optional[str] = None) -> Result[ListVersion]:
        def op(version: ListVersion) -> Result:
            result = self._engine.approve_all(version)
            return Result.ok((result.value, result.value)) if result.is_success else result

        return self._mutate(course_id, op, version_timestamp)

    def reorder(
        self,
        course_id: str,
        ordered_ids: Sequence[str],
        overrides: Optional[Dict[str, Dict[str, Optional[str]]]] = None,
        version_timestamp: Optional[str] = None,
    ) -> Result[ListVersion]:
        def op(version: ListVersion) -> Result:
            result = self._engine.reorder(version, ordered_ids, overrides)
            return Result.ok((result.value, result.value)) if result.is_success else result

        return self._mutate(course_id, op, version_timestamp)

    # ------------------------------------------------------------------
    # ENRICHMENT
    # ------------------------------------------------------------------
    def suggest_classification(
        self,
        course_id: str,
        item_ids: Optional[Sequence[str]] = None,
        apply: bool = False,
    ) -> Result[Dict[str, Any]]:
        """Asks the classifier about the current version; optionally writes the suggestions back."""
        current = self.get_current_version(course_id)
        if not current.is_success:
            return current
        wanted = set(item_ids) if item_ids else None
        batch = [
            {"id": item.id, "name": item.name}
            for item in current.value.items
            if wanted is None or item.id in wanted
        ]
        if wanted is not None:
            missing = wanted - {entry["id"] for entry in batch}
            if missing:
                return Result.not_found(f"Items not found in the current version: {sorted(missing)}.")
        if not batch:
            return Result.ok({"suggestions": {}, "applied": []})

        suggestions = self._classifier.classify(batch)
        if not apply:
            return Result.ok({"suggestions": suggestions, "applied": []})

        # Item ids are per version; write only to the version that was classified.
        applied = self._mutate(
            course_id,
            lambda version: self._engine.apply_classification_suggestions(version, suggestions),
            current.value.version_timestamp,
        )
        if not applied.is_success:
            return applied
        return Result.ok({"suggestions": suggestions, "applied": applied.value})

    def relink_catalog(self, course_id: str) -> Result[ListVersion]:
        """Re-runs catalog matching for every item of the current version that is not approved."""
        current = self.get_current_version(course_id)
        if not current.is_success:
            return current
        catalog = self._catalog.fetch_products()

        def op(version: ListVersion) -> Result:
            matches = {
                item.id: self._matcher.match(item.name, catalog, isbn=item.isbn)
                for item in version.items
                if not item.approved
            }
            result = self._engine.apply_matches(version, matches)
            return Result.ok((result.value, result.value))

        return self._mutate(course_id, op)

    # ------------------------------------------------------------------
    # IMPORT
    # ------------------------------------------------------------------
    def import_version(
        self,
        course_id: str,
        extracted_items: Sequence[Mapping[str, Any]],
        source_document_ref: Optional[str] = None,
    ) -> Result[ImportResult]:
        return self._importer.import_version(course_id, extracted_items, source_document_ref)
