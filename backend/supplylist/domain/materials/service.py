"""Domain service: item-level operations on a list version, keeping ids and ordinals consistent."""
from __future__ import annotations
import copy
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from supplylist.domain.common.result import Result
from supplylist.domain.materials.models import (
    LINK_STATES,
    MATCHED,
    UNMATCHED,
    Course,
    ListVersion,
    MatchResult,
    MaterialItem,
)
from supplylist.domain.materials.rules import (
    CLASSIFICATION_FIELDS,
    EDITABLE_FIELDS,
    NON_NULLABLE_FIELDS,
    validate_item_content,
    validate_reorder_payload,
    validate_requested_ordinal,
)

DEFAULT_ID_PREFIX = "item-"
_ID_SUFFIX = re.compile(r"^(.*?)(\d+)$")

Suggestions = Mapping[str, Mapping[str, Optional[str]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _renumber(items: List[MaterialItem]) -> None:
    for position, item in enumerate(items, start=1):
        item.ordinal = position


def _clamp(ordinal: Optional[int], upper: int) -> int:
    if ordinal is None:
        return upper
    return min(max(ordinal, 1), upper)


def next_item_id(items: Iterable[MaterialItem]) -> str:
    """``max(numeric suffix) + 1``, reusing the prefix of the item holding the max."""
    best = 0
    prefix = DEFAULT_ID_PREFIX
    for item in items:
        match = _ID_SUFFIX.match(str(item.id or ""))
        if not match:
            continue
        number = int(match.group(2))
        if number > best:
            best, prefix = number, match.group(1)
    return f"{prefix}{best + 1}"


def build_item(draft: Mapping[str, Any], item_id: str, ordinal: int, created_at: str) -> MaterialItem:
    """Material item from a validated draft, with engine defaults for lifecycle flags."""
    quantity = draft.get("quantity")
    return MaterialItem(
        id=item_id,
        name=str(draft["name"]).strip(),
        ordinal=ordinal,
        quantity=quantity if quantity is not None else 1,
        isbn=_clean_text(draft.get("isbn")),
        brand=_clean_text(draft.get("brand")),
        price=draft.get("price"),
        category=_clean_text(draft.get("category")),
        subject=_clean_text(draft.get("subject")),
        description=_clean_text(draft.get("description")),
        mandatory=draft.get("mandatory", True) is not False,
        purchasable=draft.get("purchasable", True) is not False,
        validated=False,
        approved=False,
        catalog_link_state=UNMATCHED,
        created_at=created_at,
    )


def _find(items: List[MaterialItem], item_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return None


class ListVersionEngine:
    """
    Pure operations on a ListVersion, no I/O. Every method works on a copy
    and returns Result[...]; the caller persists the returned version.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or _utcnow

    def now_iso(self) -> str:
        return self._clock().isoformat()

    def _touch(self, version: ListVersion) -> str:
        now = self.now_iso()
        version.last_modified = now
        return now

    # ------------------------------------------------------------------
    # INSERT / EDIT / REMOVE
    # ------------------------------------------------------------------
    def add_item(
        self,
        version: ListVersion,
        draft: Mapping[str, Any],
        requested_ordinal: Optional[int] = None,
    ) -> Result[Tuple[ListVersion, MaterialItem]]:
        validation = validate_item_content(dict(draft))
        if not validation.is_success:
            return Result.fail(validation.error)
        ordinal_check = validate_requested_ordinal(requested_ordinal)
        if not ordinal_check.is_success:
            return Result.fail(ordinal_check.error)

        updated = copy.deepcopy(version)
        items = updated.items
        now = self._touch(updated)
        position = _clamp(requested_ordinal, len(items) + 1)
        item = build_item(draft, next_item_id(items), position, now)
        items.insert(position - 1, item)
        _renumber(items)
        return Result.ok((updated, item))

    def update_item(
        self,
        version: ListVersion,
        item_id: str,
        changes: Mapping[str, Any],
    ) -> Result[Tuple[ListVersion, MaterialItem]]:
        validation = validate_item_content(dict(changes), require_name=False)
        if not validation.is_success:
            return Result.fail(validation.error)
        ordinal_check = validate_requested_ordinal(changes.get("ordinal"))
        if not ordinal_check.is_success:
            return Result.fail(ordinal_check.error)
        link_state = changes.get("catalog_link_state")
        if link_state is not None and link_state not in LINK_STATES:
            return Result.fail(f"'{link_state}' is not a valid catalog link state. Must be one of {sorted(LINK_STATES)}.")

        updated = copy.deepcopy(version)
        items = updated.items
        index = _find(items, item_id)
        if index is None:
            return Result.not_found(f"Item '{item_id}' not found in version '{version.version_timestamp}'.")

        now = self._touch(updated)
        item = items[index]
        for field_name in EDITABLE_FIELDS & set(changes):
            value = changes[field_name]
            if value is None and field_name in NON_NULLABLE_FIELDS:
                continue
            if field_name == "name":
                value = value.strip()
            elif field_name in ("isbn", "brand", "category", "subject", "description", "catalog_ref"):
                value = _clean_text(value)
            setattr(item, field_name, value)
        if changes.get("approved") is not None:
            item.approved_at = now if item.approved else None
        item.updated_at = now

        if changes.get("ordinal") is not None:
            items.pop(index)
            items.insert(_clamp(changes["ordinal"], len(items) + 1) - 1, item)
        _renumber(items)
        return Result.ok((updated, item))

    def remove_item(self, version: ListVersion, item_id: str) -> Result[Tuple[ListVersion, MaterialItem]]:
        updated = copy.deepcopy(version)
        index = _find(updated.items, item_id)
        if index is None:
            return Result.not_found(f"Item '{item_id}' not found in version '{version.version_timestamp}'.")
        removed = updated.items.pop(index)
        _renumber(updated.items)
        self._touch(updated)
        return Result.ok((updated, removed))

    # ------------------------------------------------------------------
    # BULK REORDER / RECLASSIFY
    # ------------------------------------------------------------------
    def reorder(
        self,
        version: ListVersion,
        ordered_ids: List[str],
        overrides: Optional[Dict[str, Dict[str, Optional[str]]]] = None,
    ) -> Result[ListVersion]:
        """
        Lays items out in ``ordered_ids`` order. Items the caller left out are
        kept, after the listed ones, in their previous relative order. Ids that
        do not exist are ignored; a repeated id counts once. A reorder that
        changes nothing leaves ``last_modified`` alone.
        """
        validation = validate_reorder_payload(ordered_ids, overrides)
        if not validation.is_success:
            return Result.fail(validation.error)
        ordered_ids, overrides = validation.value

        updated = copy.deepcopy(version)
        now = self.now_iso()
        layout_before = [(item.id, item.ordinal) for item in updated.items]
        by_id = {item.id: item for item in updated.items}

        placed: List[MaterialItem] = []
        seen = set()
        for item_id in ordered_ids:
            if item_id in by_id and item_id not in seen:
                placed.append(by_id[item_id])
                seen.add(item_id)
        placed.extend(item for item in updated.items if item.id not in seen)

        reclassified = False
        for item in placed:
            change = overrides.get(item.id) or {}
            touched = False
            for field_name in CLASSIFICATION_FIELDS:
                if field_name not in change:
                    continue
                value = _clean_text(change[field_name])
                if getattr(item, field_name) != value:
                    setattr(item, field_name, value)
                    touched = True
            if touched:
                item.updated_at = now
                reclassified = True

        _renumber(placed)
        updated.items = placed
        if reclassified or [(item.id, item.ordinal) for item in placed] != layout_before:
            updated.last_modified = now
        return Result.ok(updated)

    def copy_version(self, version: ListVersion, keep_source_document: bool = False) -> Result[ListVersion]:
        """Fresh-timestamped copy of ``version`` to seed another course's history."""
        copied = copy.deepcopy(version)
        copied.version_timestamp = copied.last_modified = self.now_iso()
        if not keep_source_document:
            copied.source_document_ref = None
        _renumber(copied.items)
        return Result.ok(copied)

    def apply_classification_suggestions(
        self,
        version: ListVersion,
        suggestions: Suggestions,
    ) -> Result[Tuple[ListVersion, List[str]]]:
        """Fills category/subject from automated suggestions.

        Items a human has validated or approved are never touched. Returns the
        ids that actually changed.
        """
        updated = copy.deepcopy(version)
        changed: List[str] = []
        now = self.now_iso()
        for item in updated.items:
            suggestion = suggestions.get(item.id)
            if not suggestion or item.validated or item.approved:
                continue
            touched = False
            for field_name in CLASSIFICATION_FIELDS:
                value = _clean_text(suggestion.get(field_name))
                if value is not None and getattr(item, field_name) != value:
                    setattr(item, field_name, value)
                    touched = True
            if touched:
                item.updated_at = now
                changed.append(item.id)
        if changed:
            updated.last_modified = now
        return Result.ok((updated, changed))

    # ------------------------------------------------------------------
    # APPROVAL / CATALOG LINKS
    # ------------------------------------------------------------------
    def set_approval(
        self, version: ListVersion, item_id: str, approved: bool
    ) -> Result[Tuple[ListVersion, MaterialItem]]:
        updated = copy.deepcopy(version)
        index = _find(updated.items, item_id)
        if index is None:
            return Result.not_found(f"Item '{item_id}' not found in version '{version.version_timestamp}'.")
        now = self._touch(updated)
        item = updated.items[index]
        item.approved = bool(approved)
        item.approved_at = now if item.approved else None
        item.updated_at = now
        return Result.ok((updated, item))

    def approve_all(self, version: ListVersion) -> Result[ListVersion]:
        if not version.items:
            return Result.fail("The list has no items to approve.")
        updated = copy.deepcopy(version)
        now = self._touch(updated)
        for item in updated.items:
            if not item.approved:
                item.approved = True
                item.approved_at = now
                item.updated_at = now
        return Result.ok(updated)

    def apply_matches(
        self, version: ListVersion, matches: Mapping[str, MatchResult]
    ) -> Result[ListVersion]:
        """Records catalog link outcomes; approved items keep their link."""
        updated = copy.deepcopy(version)
        now = self._touch(updated)
        for item in updated.items:
            match = matches.get(item.id)
            if match is None or item.approved:
                continue
            item.catalog_link_state = match.state
            item.catalog_ref = match.catalog_ref if match.state == MATCHED else None
            item.match_score = match.score
            item.updated_at = now
        return Result.ok(updated)

    # ------------------------------------------------------------------
    # VERSION HISTORY
    # ------------------------------------------------------------------
    def replace_version(self, course: Course, new_version: ListVersion) -> Result[Course]:
        """Appends ``new_version`` as the newest entry; earlier versions stay as they were."""
        updated = copy.deepcopy(course)
        version = copy.deepcopy(new_version)

        moment = self._clock()
        taken = {v.version_timestamp for v in updated.versions}
        while moment.isoformat() in taken:
            moment += timedelta(microseconds=1)
        version.version_timestamp = version.last_modified = moment.isoformat()

        _renumber(version.items)
        updated.versions.append(version)
        return Result.ok(updated)
