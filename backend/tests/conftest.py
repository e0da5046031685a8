import pytest

from supplylist.domain.common.errors import ClassificationError, ConflictError
from supplylist.domain.materials.models import CatalogEntry
from supplylist.persistence.db import init_db
from supplylist.persistence.repositories.sqlite.sqlite_version_store import SqliteVersionStore

CATALOG = [
    CatalogEntry(id="101", name="Lápiz Grafito HB", sku="LAP-HB", price=490.0),
    CatalogEntry(id="102", name="Lápiz de Colores 12 unidades", sku="LAP-COL12", price=2990.0),
    CatalogEntry(id="103", name="Cuaderno College Matemática 100 hojas", sku="CUA-100M", price=1590.0),
    CatalogEntry(id="104", name="Texto Lenguaje 3° Básico", sku="9789561234567", price=15990.0),
]


class FakeCatalog:
    def __init__(self, entries=None, error=None):
        self.entries = CATALOG if entries is None else entries
        self.error = error
        self.calls = 0

    def fetch_products(self, search=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.entries)


class FakeClassifier:
    """Answers every id with a fixed suggestion unless told to fail."""

    def __init__(self, suggestion=None, fail=False):
        self.suggestion = suggestion or {"category": "Útiles", "subject": "General"}
        self.fail = fail
        self.batches = []

    def classify(self, items):
        self.batches.append([item["id"] for item in items])
        if self.fail:
            raise ClassificationError("All 2 classification models failed.", failures=["a: down", "b: down"])
        return {item["id"]: dict(self.suggestion) for item in items}


class RacingStore:
    """Wraps a store and fails the first ``conflicts`` saves as if another writer won."""

    def __init__(self, inner, conflicts=1):
        self._inner = inner
        self.conflicts = conflicts
        self.saves = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def save_versions(self, course_id, versions, expected_revision):
        self.saves += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConflictError(course_id, expected=expected_revision, actual="other")
        return self._inner.save_versions(course_id, versions, expected_revision)


@pytest.fixture
def store(tmp_path):
    path = str(tmp_path / "supplylist.db")
    init_db(path)
    return SqliteVersionStore(path)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def classifier():
    return FakeClassifier()
