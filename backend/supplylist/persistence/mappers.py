"""Maps every stored shape of a course document onto the domain model, and back.

The content store has accumulated several layouts over time: envelopes
(``{"data": {...}}``, ``{"attributes": {...}}``) and Spanish field names from
older releases. Everything is folded into ``Course``/``ListVersion``/
``MaterialItem`` here so the engine never sees the variance.
"""
from __future__ import annotations
import logging
import math
from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from supplylist.domain.materials.models import (
    LINK_STATES,
    MATCHED,
    UNMATCHED,
    Course,
    ListVersion,
    MaterialItem,
)
from supplylist.domain.materials.service import next_item_id

logger = logging.getLogger(__name__)

VERSION_LIST_KEYS = ("versions", "list_versions", "versiones_materiales", "versiones")
ITEM_LIST_KEYS = ("items", "materiales", "productos", "materials")

_ITEM_ALIASES = {
    "name": ("name", "nombre"),
    "quantity": ("quantity", "cantidad"),
    "ordinal": ("ordinal", "orden"),
    "isbn": ("isbn",),
    "brand": ("brand", "marca"),
    "price": ("price", "precio"),
    "category": ("category", "categoria"),
    "subject": ("subject", "asignatura"),
    "description": ("description", "descripcion"),
    "mandatory": ("mandatory", "obligatorio"),
    "purchasable": ("purchasable", "comprar"),
    "validated": ("validated", "validado"),
    "approved": ("approved", "aprobado"),
    "approved_at": ("approved_at", "fecha_aprobacion"),
    "catalog_link_state": ("catalog_link_state", "catalogLinkState"),
    "catalog_ref": ("catalog_ref", "catalogRef", "woocommerce_id", "producto_id"),
    "match_score": ("match_score",),
    "created_at": ("created_at", "createdAt", "fecha_creacion"),
    "updated_at": ("updated_at", "fecha_edicion"),
}

_VERSION_ALIASES = {
    "version_timestamp": ("version_timestamp", "versionTimestamp", "fecha_subida", "created_at"),
    "last_modified": ("last_modified", "lastModifiedTimestamp", "fecha_actualizacion", "updated_at"),
    "source_document_ref": ("source_document_ref", "sourceDocumentRef", "pdf_id", "pdf_url", "nombre_archivo"),
}


def version_list_keys(versions_field: Optional[str] = None) -> Tuple[str, ...]:
    """Known version-array keys, with a configured field name tried first."""
    if versions_field:
        return (versions_field,) + tuple(k for k in VERSION_LIST_KEYS if k != versions_field)
    return VERSION_LIST_KEYS


def _pick(raw: Dict[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        if raw.get(name) not in (None, ""):
            return raw[name]
    return None


def unwrap(payload: Any) -> Dict[str, Any]:
    """Strips ``data``/``attributes`` envelopes; lists collapse to their first element."""
    current = payload
    for _ in range(4):
        if isinstance(current, list):
            current = current[0] if current else {}
            continue
        if not isinstance(current, dict):
            return {}
        if "data" in current and isinstance(current["data"], (dict, list)):
            inner = current["data"]
            if isinstance(inner, dict):
                outer = {k: v for k, v in current.items() if k != "data"}
                inner = {**outer, **inner}
            current = inner
            continue
        if "attributes" in current and isinstance(current["attributes"], dict):
            current = {**current["attributes"], **{k: v for k, v in current.items() if k != "attributes"}}
            continue
        break
    return current if isinstance(current, dict) else {}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "si", "sí")
    return bool(value)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def item_from_raw(raw: Dict[str, Any], fallback_ordinal: int) -> MaterialItem:
    fields = {key: _pick(raw, names) for key, names in _ITEM_ALIASES.items()}

    link_state = fields["catalog_link_state"]
    if link_state not in LINK_STATES:
        found = raw.get("encontrado_en_woocommerce")
        link_state = MATCHED if (found is True or fields["catalog_ref"] is not None) else UNMATCHED

    return MaterialItem(
        id=str(raw.get("id")) if raw.get("id") not in (None, "") else "",
        name=_as_text(fields["name"]) or "",
        ordinal=_as_int(fields["ordinal"], fallback_ordinal),
        quantity=_as_int(fields["quantity"], 1),
        isbn=_as_text(fields["isbn"]),
        brand=_as_text(fields["brand"]),
        price=_as_float(fields["price"]),
        category=_as_text(fields["category"]),
        subject=_as_text(fields["subject"]),
        description=_as_text(fields["description"]),
        mandatory=_as_bool(fields["mandatory"], True),
        purchasable=_as_bool(fields["purchasable"], True),
        validated=_as_bool(fields["validated"], False),
        approved=_as_bool(fields["approved"], False),
        approved_at=_as_text(fields["approved_at"]),
        catalog_link_state=link_state,
        catalog_ref=_as_text(fields["catalog_ref"]),
        match_score=_as_float(fields["match_score"]),
        created_at=_as_text(fields["created_at"]) or "",
        updated_at=_as_text(fields["updated_at"]),
    )


def version_from_raw(raw: Any) -> Optional[ListVersion]:
    if not isinstance(raw, dict):
        return None
    fields = {key: _pick(raw, names) for key, names in _VERSION_ALIASES.items()}
    raw_items = _pick(raw, ITEM_LIST_KEYS)
    if not isinstance(raw_items, list):
        raw_items = []

    items: List[MaterialItem] = []
    for position, raw_item in enumerate(raw_items, start=1):
        if not isinstance(raw_item, dict):
            continue
        items.append(item_from_raw(raw_item, position))

    # Legacy rows may lack ids; hand out fresh ones after the existing maximum.
    for item in items:
        if not item.id:
            item.id = next_item_id(items)

    # Stored ordinals win over array position, then gaps are closed.
    items.sort(key=lambda i: i.ordinal)
    for position, item in enumerate(items, start=1):
        item.ordinal = position

    timestamp = _as_text(fields["version_timestamp"]) or _as_text(fields["last_modified"]) or ""
    return ListVersion(
        version_timestamp=timestamp,
        last_modified=_as_text(fields["last_modified"]),
        source_document_ref=_as_text(fields["source_document_ref"]),
        items=items,
    )


def versions_from_raw(raw_versions: Any) -> List[ListVersion]:
    """Malformed or missing arrays become an empty history."""
    if not isinstance(raw_versions, list):
        if raw_versions is not None:
            logger.warning("Ignoring malformed version history of type %s", type(raw_versions).__name__)
        return []
    versions = []
    for raw in raw_versions:
        version = version_from_raw(raw)
        if version is None:
            logger.warning("Skipping malformed version entry: %r", raw)
            continue
        versions.append(version)
    return versions


def course_from_payload(
    payload: Any, course_id: str, revision: Optional[str] = None, versions_field: Optional[str] = None
) -> Course:
    doc = unwrap(payload)
    return Course(
        id=str(doc.get("documentId") or doc.get("id") or course_id),
        name=_as_text(doc.get("name") or doc.get("nombre_curso") or doc.get("nombre")) or "",
        level=_as_text(doc.get("level") or doc.get("nivel")),
        grade=_as_text(doc.get("grade") or doc.get("grado")),
        year=_as_int(doc.get("year") or doc.get("anio") or doc.get("año"), 0) or None,
        school_id=_as_text(doc.get("school_id") or doc.get("colegio_id")),
        active=_as_bool(doc.get("active", doc.get("activo")), True),
        versions=versions_from_raw(_pick(doc, version_list_keys(versions_field))),
        revision=revision,
    )


# ------------------------------------------------------------------
# Extracted rows
# ------------------------------------------------------------------
_DRAFT_FIELDS = (
    "name", "quantity", "ordinal", "isbn", "brand", "price",
    "category", "subject", "description", "mandatory", "purchasable",
)


def _as_whole_number(value: Any) -> Any:
    """``"2"``/``2.0`` become ``2``; anything else is returned unchanged for validation to reject."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        number = _as_float(value.strip())
        if number is not None and number.is_integer():
            return int(number)
    return value


def _as_price(value: Any) -> Any:
    if isinstance(value, str):
        number = _as_float(value.strip())
        return number if number is not None and math.isfinite(number) else value
    return value


def draft_from_extracted(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Item draft from one extracted row: known field aliases folded, numeric strings parsed.

    The name is passed through untouched so blank rows still fail validation.
    """
    fields = {key: _pick(raw, _ITEM_ALIASES[key]) for key in _DRAFT_FIELDS}
    if fields["name"] is None:
        fields["name"] = next((raw[n] for n in _ITEM_ALIASES["name"] if n in raw), None)
    fields["quantity"] = _as_whole_number(fields["quantity"])
    fields["ordinal"] = _as_whole_number(fields["ordinal"])
    fields["price"] = _as_price(fields["price"])
    for flag in ("mandatory", "purchasable"):
        if fields[flag] is not None:
            fields[flag] = _as_bool(fields[flag], True)
    return fields


# ------------------------------------------------------------------
# Outbound
# ------------------------------------------------------------------
def item_to_dict(item: MaterialItem) -> Dict[str, Any]:
    return asdict(item)


def version_to_dict(version: ListVersion) -> Dict[str, Any]:
    return {
        "version_timestamp": version.version_timestamp,
        "last_modified": version.last_modified,
        "source_document_ref": version.source_document_ref,
        "items": [item_to_dict(i) for i in version.items],
    }


def versions_to_document(versions: Iterable[ListVersion]) -> List[Dict[str, Any]]:
    return [version_to_dict(v) for v in versions]
