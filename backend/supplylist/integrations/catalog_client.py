"""Catalog service client: WooCommerce-style product listing over REST."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import requests

from supplylist.core.config import (
    CATALOG_KEY,
    CATALOG_MAX_PAGES,
    CATALOG_PAGE_SIZE,
    CATALOG_SECRET,
    CATALOG_TIMEOUT,
    CATALOG_URL,
)
from supplylist.domain.common.errors import InfrastructureError
from supplylist.domain.materials.models import CatalogEntry

logger = logging.getLogger(__name__)


def _entry_from_product(product: Dict[str, Any]) -> Optional[CatalogEntry]:
    if not isinstance(product, dict) or product.get("id") is None:
        return None
    name = (product.get("name") or "").strip()
    if not name:
        return None
    brand = product.get("brand")
    if not brand:
        for attr in product.get("attributes") or []:
            if isinstance(attr, dict) and str(attr.get("name", "")).lower() in ("marca", "brand"):
                options = attr.get("options") or []
                brand = options[0] if options else None
                break
    price = product.get("price")
    try:
        price = float(price) if price not in (None, "") else None
    except (TypeError, ValueError):
        price = None
    return CatalogEntry(
        id=str(product["id"]),
        name=name,
        sku=(product.get("sku") or None),
        brand=brand or None,
        price=price,
    )


class CatalogClient:

    def __init__(
        self,
        base_url: str = CATALOG_URL,
        key: str = CATALOG_KEY,
        secret: str = CATALOG_SECRET,
        timeout: float = CATALOG_TIMEOUT,
        page_size: int = CATALOG_PAGE_SIZE,
        max_pages: int = CATALOG_MAX_PAGES,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._auth = (key, secret) if key else None
        self._timeout = timeout
        self._page_size = page_size
        self._max_pages = max_pages
        self._session = session or requests.Session()

    def fetch_products(self, search: Optional[str] = None) -> List[CatalogEntry]:
        """All catalog entries (optionally filtered by ``search``), page by page."""
        entries: List[CatalogEntry] = []
        for page in range(1, self._max_pages + 1):
            params: Dict[str, Any] = {"per_page": self._page_size, "page": page}
            if search:
                params["search"] = search
            try:
                res = self._session.get(
                    f"{self._base_url}/products", params=params, auth=self._auth, timeout=self._timeout
                )
                res.raise_for_status()
                batch = res.json()
            except requests.RequestException as exc:
                raise InfrastructureError(f"Catalog unavailable: {exc}", service="catalog") from exc
            except ValueError as exc:
                raise InfrastructureError("Catalog returned invalid JSON", service="catalog") from exc

            if not isinstance(batch, list):
                raise InfrastructureError("Catalog returned an unexpected payload", service="catalog")
            entries.extend(e for e in (_entry_from_product(p) for p in batch) if e is not None)
            if len(batch) < self._page_size:
                break
        else:
            logger.warning("Catalog listing truncated at %d pages", self._max_pages)

        logger.info("Fetched %d catalog entries (search=%r)", len(entries), search)
        return entries
