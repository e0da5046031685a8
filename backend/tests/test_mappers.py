"""Historical document shapes all land on the same domain model."""
from supplylist.domain.materials.models import AMBIGUOUS, MATCHED, UNMATCHED
from supplylist.persistence.mappers import (
    course_from_payload,
    draft_from_extracted,
    unwrap,
    version_from_raw,
    versions_from_raw,
)

LEGACY_COURSE = {
    "data": {
        "id": 7,
        "attributes": {
            "nombre_curso": "1° Básico A",
            "versiones_materiales": [
                {
                    "fecha_subida": "2024-03-01T10:00:00Z",
                    "materiales": [
                        {
                            "nombre": "Cuaderno college",
                            "cantidad": "2",
                            "orden": 2,
                            "encontrado_en_woocommerce": True,
                            "woocommerce_id": 55,
                        },
                        {"nombre": "Lápiz grafito", "orden": 1, "asignatura": "Lenguaje"},
                    ],
                }
            ],
        },
    }
}


def test_legacy_spanish_document_is_normalized():
    course = course_from_payload(LEGACY_COURSE, "fallback")

    assert course.id == "7"
    assert course.name == "1° Básico A"
    assert len(course.versions) == 1

    version = course.versions[0]
    assert version.version_timestamp == "2024-03-01T10:00:00Z"
    assert [i.name for i in version.items] == ["Lápiz grafito", "Cuaderno college"]
    assert [i.ordinal for i in version.items] == [1, 2]

    pencil, notebook = version.items
    assert pencil.subject == "Lenguaje"
    assert pencil.catalog_link_state == UNMATCHED
    assert notebook.quantity == 2
    assert notebook.catalog_ref == "55"
    assert notebook.catalog_link_state == MATCHED


def test_missing_ids_are_assigned_without_collisions():
    version = version_from_raw(
        {"version_timestamp": "2024-01-01", "items": [{"name": "A"}, {"id": "item-4", "name": "B"}, {"name": "C"}]}
    )
    ids = [i.id for i in version.items]
    assert len(set(ids)) == 3
    assert "item-4" in ids


def test_ordinal_gaps_are_closed():
    version = version_from_raw(
        {
            "version_timestamp": "2024-01-01",
            "items": [{"id": "a", "name": "A", "ordinal": 7}, {"id": "b", "name": "B", "ordinal": 3}],
        }
    )
    assert [(i.id, i.ordinal) for i in version.items] == [("b", 1), ("a", 2)]


def test_known_link_state_is_kept():
    version = version_from_raw(
        {"version_timestamp": "2024-01-01", "items": [{"id": "a", "name": "A", "catalog_link_state": "ambiguous"}]}
    )
    assert version.items[0].catalog_link_state == AMBIGUOUS


def test_malformed_history_becomes_empty():
    assert versions_from_raw("garbage") == []
    assert versions_from_raw(None) == []
    assert len(versions_from_raw([42, {"version_timestamp": "2024-01-01", "items": []}])) == 1


def test_unwrap_handles_list_envelopes():
    assert unwrap({"data": [{"id": 1, "name": "X"}]}) == {"id": 1, "name": "X"}
    assert unwrap("not a document") == {}


def test_configured_versions_field_wins_over_known_keys():
    doc = {
        "nombre_curso": "4° Básico",
        "versiones": [{"fecha_subida": "2023-03-01T10:00:00Z", "materiales": [{"nombre": "Viejo"}]}],
        "lista_utiles": [{"fecha_subida": "2024-03-01T10:00:00Z", "materiales": [{"nombre": "Goma"}]}],
    }
    assert course_from_payload(doc, "4").versions[0].items[0].name == "Viejo"
    assert course_from_payload(doc, "4", versions_field="lista_utiles").versions[0].items[0].name == "Goma"


def test_extracted_row_becomes_a_typed_draft():
    draft = draft_from_extracted(
        {"nombre": "Cuaderno", "cantidad": "2", "orden": 3.0, "precio": "1290.5", "obligatorio": "no"}
    )
    assert draft["name"] == "Cuaderno"
    assert draft["quantity"] == 2
    assert draft["ordinal"] == 3
    assert draft["price"] == 1290.5
    assert draft["mandatory"] is False
    assert draft["purchasable"] is None


def test_unparseable_numbers_are_left_for_validation():
    draft = draft_from_extracted({"name": "   ", "quantity": "muchas", "price": "gratis"})
    assert draft["name"] == "   "
    assert draft["quantity"] == "muchas"
    assert draft["price"] == "gratis"
