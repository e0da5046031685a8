"""Dependency injection container: wires implementations to interfaces."""
from __future__ import annotations
from functools import lru_cache

from supplylist.application.list_app_service import ListAppService
from supplylist.core import config
from supplylist.domain.materials.matching import SimilarityMatcher
from supplylist.integrations.catalog_client import CatalogClient
from supplylist.integrations.classification_client import CircuitBreaker, ClassificationClient
from supplylist.persistence.interfaces.version_store import VersionStore
from supplylist.persistence.repositories.http.content_store import ContentStoreVersionStore
from supplylist.persistence.repositories.sqlite.sqlite_version_store import SqliteVersionStore


@lru_cache(maxsize=1)
def get_version_store() -> VersionStore:
    if config.CONTENT_STORE_BACKEND == "http":
        return ContentStoreVersionStore()
    return SqliteVersionStore()


@lru_cache(maxsize=1)
def get_catalog_client() -> CatalogClient:
    return CatalogClient()


@lru_cache(maxsize=1)
def get_classifier() -> CircuitBreaker:
    return CircuitBreaker(ClassificationClient())


@lru_cache(maxsize=1)
def get_list_app_service() -> ListAppService:
    return ListAppService(
        store=get_version_store(),
        catalog=get_catalog_client(),
        classifier=get_classifier(),
        matcher=SimilarityMatcher(
            high_threshold=config.MATCH_HIGH_THRESHOLD,
            low_threshold=config.MATCH_LOW_THRESHOLD,
            ambiguity_band=config.MATCH_AMBIGUITY_BAND,
        ),
        max_conflict_retries=config.MAX_CONFLICT_RETRIES,
    )
