"""Unit tests for the list version engine: no DB, no HTTP."""
from datetime import datetime, timezone

import pytest

from supplylist.domain.common.result import NOT_FOUND, VALIDATION
from supplylist.domain.materials.models import (
    AMBIGUOUS,
    MATCHED,
    UNMATCHED,
    Course,
    ListVersion,
    MatchResult,
    MaterialItem,
)
from supplylist.domain.materials.service import ListVersionEngine, next_item_id

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _engine():
    return ListVersionEngine(clock=lambda: NOW)


def _version(*ids, **kwargs):
    items = [MaterialItem(id=item_id, name=f"Material {item_id}", ordinal=i) for i, item_id in enumerate(ids, start=1)]
    return ListVersion(version_timestamp="2024-03-01T10:00:00+00:00", items=items, **kwargs)


def _ids(version):
    return [item.id for item in version.items]


def _ordinals(version):
    return [item.ordinal for item in version.items]


# ------------------------------------------------------------------
# Identifiers
# ------------------------------------------------------------------
def test_next_item_id_uses_max_suffix_and_its_prefix():
    items = [
        MaterialItem(id="producto-3", name="a", ordinal=1),
        MaterialItem(id="producto-10", name="b", ordinal=2),
        MaterialItem(id="legacy", name="c", ordinal=3),
    ]
    assert next_item_id(items) == "producto-11"


def test_next_item_id_on_empty_list():
    assert next_item_id([]) == "item-1"


# ------------------------------------------------------------------
# Insertion
# ------------------------------------------------------------------
def test_add_item_at_front_shifts_existing_items():
    v = _version("m1", "m2")
    result = _engine().add_item(v, {"name": "Cuaderno"}, requested_ordinal=1)

    assert result.is_success
    updated, item = result.value
    assert item.ordinal == 1
    assert item.id == "m3"
    assert _ids(updated) == ["m3", "m1", "m2"]
    assert _ordinals(updated) == [1, 2, 3]


def test_add_item_without_ordinal_appends():
    updated, item = _engine().add_item(_version("m1", "m2"), {"name": "Regla 30 cm", "quantity": 2}).value
    assert item.ordinal == 3
    assert item.quantity == 2
    assert item.created_at == NOW.isoformat()
    assert updated.last_modified == NOW.isoformat()


@pytest.mark.parametrize("requested, expected_position", [(0, 1), (-4, 1), (99, 3)])
def test_add_item_clamps_out_of_range_ordinals(requested, expected_position):
    updated, item = _engine().add_item(_version("m1", "m2"), {"name": "Goma"}, requested).value
    assert item.ordinal == expected_position
    assert _ordinals(updated) == [1, 2, 3]


@pytest.mark.parametrize("draft", [{"name": ""}, {"name": "   "}, {}, {"name": None}])
def test_add_item_rejects_empty_name(draft):
    result = _engine().add_item(_version("m1"), draft)
    assert not result.is_success
    assert result.code == VALIDATION


def test_add_item_rejects_negative_quantity():
    result = _engine().add_item(_version("m1"), {"name": "Lápiz", "quantity": -1})
    assert not result.is_success


def test_add_item_defaults_lifecycle_flags():
    _, item = _engine().add_item(_version(), {"name": "Tijeras", "validated": True, "approved": True}).value
    assert item.validated is False
    assert item.approved is False
    assert item.catalog_link_state == UNMATCHED


def test_add_item_does_not_mutate_input():
    v = _version("m1", "m2")
    _engine().add_item(v, {"name": "Cuaderno"}, requested_ordinal=1)
    assert _ids(v) == ["m1", "m2"]
    assert v.last_modified is None


# ------------------------------------------------------------------
# Edit / remove
# ------------------------------------------------------------------
def test_update_item_changes_fields_and_keeps_id():
    updated, item = _engine().update_item(_version("m1", "m2"), "m2", {"quantity": 4, "brand": " Faber "}).value
    assert item.id == "m2"
    assert item.quantity == 4
    assert item.brand == "Faber"
    assert item.updated_at == NOW.isoformat()


def test_update_item_ignores_null_for_required_fields():
    _, item = _engine().update_item(_version("m1"), "m1", {"quantity": None, "mandatory": None}).value
    assert item.quantity == 1
    assert item.mandatory is True


def test_update_item_moves_item_when_ordinal_changes():
    updated, item = _engine().update_item(_version("m1", "m2", "m3"), "m3", {"ordinal": 1}).value
    assert _ids(updated) == ["m3", "m1", "m2"]
    assert _ordinals(updated) == [1, 2, 3]


def test_update_item_rejects_unknown_link_state():
    result = _engine().update_item(_version("m1"), "m1", {"catalog_link_state": "maybe"})
    assert not result.is_success


def test_update_unknown_item_is_not_found():
    result = _engine().update_item(_version("m1"), "nope", {"quantity": 2})
    assert result.code == NOT_FOUND


def test_remove_item_closes_the_gap():
    updated, removed = _engine().remove_item(_version("m1", "m2", "m3"), "m2").value
    assert removed.id == "m2"
    assert _ids(updated) == ["m1", "m3"]
    assert _ordinals(updated) == [1, 2]


def test_remove_unknown_item_is_not_found():
    assert _engine().remove_item(_version("m1"), "m9").code == NOT_FOUND


# ------------------------------------------------------------------
# Reorder
# ------------------------------------------------------------------
def test_reorder_keeps_omitted_items_after_listed_ones():
    result = _engine().reorder(_version("m1", "m2", "m3"), ["m3", "m1"])
    assert result.is_success
    assert _ids(result.value) == ["m3", "m1", "m2"]
    assert _ordinals(result.value) == [1, 2, 3]


def test_reorder_ignores_unknown_and_repeated_ids():
    result = _engine().reorder(_version("m1", "m2", "m3"), ["m2", "ghost", "m2", "m1"])
    assert _ids(result.value) == ["m2", "m1", "m3"]


def _ticking_engine():
    ticks = (datetime(2024, 5, 1, 12, 0, second, tzinfo=timezone.utc) for second in range(60))
    return ListVersionEngine(clock=lambda: next(ticks))


def test_reorder_is_idempotent():
    engine = _ticking_engine()
    once = engine.reorder(_version("m1", "m2", "m3"), ["m3", "m1"]).value
    twice = engine.reorder(once, ["m3", "m1"]).value
    assert once == twice


def test_reorder_touches_last_modified_only_when_something_changes():
    engine = _ticking_engine()
    v = _version("m1", "m2")
    assert engine.reorder(v, ["m1", "m2"]).value.last_modified is None

    moved = engine.reorder(v, ["m2", "m1"]).value
    assert moved.last_modified is not None

    override = {"m1": {"category": "Arte"}}
    reclassified = engine.reorder(moved, ["m2", "m1"], override).value
    assert reclassified.last_modified > moved.last_modified
    assert engine.reorder(reclassified, ["m2", "m1"], override).value == reclassified


def test_reorder_applies_classification_overrides():
    result = _engine().reorder(
        _version("m1", "m2"), ["m2", "m1"], {"m1": {"category": "Arte", "subject": "Artes Visuales"}}
    )
    item = next(i for i in result.value.items if i.id == "m1")
    assert item.category == "Arte"
    assert item.subject == "Artes Visuales"


def test_reorder_rejects_overrides_outside_classification_fields():
    result = _engine().reorder(_version("m1"), ["m1"], {"m1": {"name": "renamed"}})
    assert not result.is_success


def test_reorder_preserves_every_item():
    v = _version("m1", "m2", "m3", "m4")
    result = _engine().reorder(v, ["m4"])
    assert sorted(_ids(result.value)) == sorted(_ids(v))


# ------------------------------------------------------------------
# Classification suggestions
# ------------------------------------------------------------------
def test_suggestions_never_overwrite_validated_or_approved_items():
    v = _version("m1", "m2", "m3")
    v.items[0].validated = True
    v.items[0].category = "Escritura"
    v.items[1].approved = True

    suggestions = {
        "m1": {"category": "Arte", "subject": "Artes"},
        "m2": {"category": "Arte", "subject": "Artes"},
        "m3": {"category": "Libros", "subject": "Lenguaje"},
    }
    updated, changed = _engine().apply_classification_suggestions(v, suggestions).value

    assert changed == ["m3"]
    assert updated.items[0].category == "Escritura"
    assert updated.items[1].category is None
    assert updated.items[2].subject == "Lenguaje"


def test_suggestions_without_changes_leave_version_untouched():
    v = _version("m1")
    updated, changed = _engine().apply_classification_suggestions(v, {}).value
    assert changed == []
    assert updated.last_modified is None


# ------------------------------------------------------------------
# Approval / catalog links
# ------------------------------------------------------------------
def test_set_approval_records_timestamp():
    engine = _engine()
    updated, item = engine.set_approval(_version("m1"), "m1", True).value
    assert item.approved is True
    assert item.approved_at == NOW.isoformat()

    _, item = engine.set_approval(updated, "m1", False).value
    assert item.approved_at is None


def test_approve_all_marks_every_item():
    updated = _engine().approve_all(_version("m1", "m2")).value
    assert all(item.approved for item in updated.items)


def test_approve_all_on_empty_version_fails():
    assert not _engine().approve_all(_version()).is_success


def test_apply_matches_skips_approved_items():
    v = _version("m1", "m2", "m3")
    v.items[1].approved = True
    matches = {
        "m1": MatchResult(state=MATCHED, score=0.93, catalog_ref="55"),
        "m2": MatchResult(state=MATCHED, score=1.0, catalog_ref="77"),
        "m3": MatchResult(state=AMBIGUOUS, score=0.7, catalog_ref=None, candidates=["1", "2"]),
    }
    updated = _engine().apply_matches(v, matches).value

    assert updated.items[0].catalog_ref == "55"
    assert updated.items[0].catalog_link_state == MATCHED
    assert updated.items[1].catalog_ref is None
    assert updated.items[2].catalog_link_state == AMBIGUOUS


# ------------------------------------------------------------------
# Version history
# ------------------------------------------------------------------
def test_replace_version_appends_and_keeps_history():
    older = _version("m1")
    course = Course(id="c1", name="1° Básico", versions=[older])
    new = ListVersion(version_timestamp="", items=[MaterialItem(id="item-1", name="Lápiz", ordinal=5)])

    updated = _engine().replace_version(course, new).value

    assert len(updated.versions) == 2
    assert updated.versions[0] == older
    assert updated.versions[1].version_timestamp == NOW.isoformat()
    assert updated.versions[1].items[0].ordinal == 1
    assert len(course.versions) == 1


def test_replace_version_never_reuses_a_timestamp():
    course = Course(id="c1", versions=[ListVersion(version_timestamp=NOW.isoformat())])
    updated = _engine().replace_version(course, ListVersion(version_timestamp="")).value
    stamps = [v.version_timestamp for v in updated.versions]
    assert len(set(stamps)) == 2


def test_copy_version_is_freshly_stamped_and_drops_source_document():
    v = _version("m1", "m2", source_document_ref="lista-2024.pdf", last_modified="2024-03-05T09:00:00+00:00")
    copied = _engine().copy_version(v).value

    assert copied.version_timestamp == copied.last_modified == NOW.isoformat()
    assert copied.source_document_ref is None
    assert _ids(copied) == ["m1", "m2"]
    assert v.source_document_ref == "lista-2024.pdf"
    assert _engine().copy_version(v, keep_source_document=True).value.source_document_ref == "lista-2024.pdf"
