"""Import pipeline: build items, match, classify, persist once."""
import pytest

from conftest import FakeCatalog, FakeClassifier, RacingStore
from supplylist.application.import_orchestrator import ImportOrchestrator
from supplylist.domain.common.errors import ConflictError, InfrastructureError
from supplylist.domain.common.result import NOT_FOUND
from supplylist.domain.materials.models import MATCHED, UNMATCHED, Course

ROWS = [
    {"name": "Lápiz Grafito HB", "quantity": 2},
    {"name": "Cuaderno college 100 hojas", "subject": "Matemática", "category": "Cuadernos"},
    {"name": "   "},
    {"name": "Témperas 12 colores", "quantity": 1},
]


def _orchestrator(store, catalog=None, classifier=None, **kwargs):
    return ImportOrchestrator(
        store=store,
        catalog=catalog or FakeCatalog(),
        classifier=classifier or FakeClassifier(),
        **kwargs,
    )


@pytest.fixture
def course(store):
    return store.create_course(Course(id="1a", name="1° Básico A"))


def test_import_appends_a_new_version(store, course):
    result = _orchestrator(store).import_version("1a", ROWS, "listas/1a-2025.pdf")

    assert result.is_success
    version = result.value.version
    assert [i.name for i in version.items] == ["Lápiz Grafito HB", "Cuaderno college 100 hojas", "Témperas 12 colores"]
    assert [i.ordinal for i in version.items] == [1, 2, 3]
    assert version.source_document_ref == "listas/1a-2025.pdf"
    assert store.load_versions("1a") == [version]


def test_import_report_lists_skipped_rows_and_link_states(store, course):
    report = _orchestrator(store).import_version("1a", ROWS).value.report

    assert report.skipped == [{"row": 3, "name": "   ", "reason": "Material 'name' is required and cannot be empty."}]
    assert report.counts["total"] == 3
    assert report.counts["skipped"] == 1
    pencil = report.items[0]
    assert pencil.catalog_link_state == MATCHED
    assert pencil.catalog_ref == "101"


def test_import_accepts_spanish_fields_and_numeric_strings(store, course):
    rows = [
        {"nombre": "Cuaderno college", "cantidad": "2"},
        {"name": "Lápiz Grafito HB", "quantity": "3", "price": "490"},
        {"name": "Goma", "quantity": "muchas"},
    ]
    result = _orchestrator(store).import_version("1a", rows)

    items = result.value.version.items
    assert [(i.name, i.quantity) for i in items] == [("Cuaderno college", 2), ("Lápiz Grafito HB", 3)]
    assert items[1].price == 490.0
    skipped = result.value.report.skipped
    assert [(s["row"], s["name"]) for s in skipped] == [(3, "Goma")]


def test_import_sorts_by_ordinals_given_as_text(store, course):
    rows = [{"name": "Regla 20 cm", "orden": "2"}, {"name": "Goma de borrar", "ordinal": "1"}]
    items = _orchestrator(store).import_version("1a", rows).value.version.items
    assert [i.name for i in items] == ["Goma de borrar", "Regla 20 cm"]


def test_import_classifies_only_items_missing_fields(store, course):
    classifier = FakeClassifier()
    result = _orchestrator(store, classifier=classifier).import_version("1a", ROWS)

    assert classifier.batches == [["item-1", "item-3"]]
    notebook = result.value.version.items[1]
    assert notebook.subject == "Matemática"
    assert result.value.version.items[2].category == "Útiles"


def test_import_completes_when_every_model_fails(store, course):
    result = _orchestrator(store, classifier=FakeClassifier(fail=True)).import_version("1a", ROWS)

    assert result.is_success
    report = result.value.report
    assert report.classification_error
    unclassified = [o for o in report.items if "left unclassified" in o.notes]
    assert [o.id for o in unclassified] == ["item-1", "item-3"]
    assert all(not o.classified for o in unclassified)
    assert len(store.load_versions("1a")) == 1


def test_import_degrades_when_catalog_is_down(store, course):
    catalog = FakeCatalog(error=InfrastructureError("timeout", service="catalog"))
    result = _orchestrator(store, catalog=catalog).import_version("1a", ROWS)

    report = result.value.report
    assert report.catalog_available is False
    assert all(o.catalog_link_state == UNMATCHED for o in report.items)
    assert all("catalog unavailable" in o.notes for o in report.items)


def test_store_failure_aborts_without_writing(store, course):
    class BrokenStore(RacingStore):
        def save_versions(self, course_id, versions, expected_revision):
            raise InfrastructureError("disk full", service="sqlite")

    with pytest.raises(InfrastructureError):
        _orchestrator(BrokenStore(store)).import_version("1a", ROWS)
    assert store.load_versions("1a") == []


def test_import_retries_after_concurrent_write(store, course):
    racing = RacingStore(store, conflicts=2)
    result = _orchestrator(racing, max_conflict_retries=3).import_version("1a", ROWS)
    assert result.is_success
    assert racing.saves == 3


def test_import_gives_up_after_max_retries(store, course):
    racing = RacingStore(store, conflicts=5)
    with pytest.raises(ConflictError):
        _orchestrator(racing, max_conflict_retries=2).import_version("1a", ROWS)


def test_explicit_ordinals_order_the_new_version(store, course):
    rows = [{"name": "Regla", "ordinal": 2}, {"name": "Goma", "ordinal": 1}]
    version = _orchestrator(store).import_version("1a", rows).value.version
    assert [i.name for i in version.items] == ["Goma", "Regla"]


def test_import_into_unknown_course(store):
    result = _orchestrator(store).import_version("nope", ROWS)
    assert result.code == NOT_FOUND


def test_import_rejects_non_list_payload(store, course):
    assert not _orchestrator(store).import_version("1a", {"name": "x"}).is_success
