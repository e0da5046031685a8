"""Item-level endpoints on a course's current list version."""
from __future__ import annotations
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from supplylist.api.envelope import from_failure, ok, serialize_item, serialize_version
from supplylist.application.list_app_service import ListAppService
from supplylist.container import get_list_app_service

router = APIRouter(tags=["items"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class ItemDraftBody(BaseModel):
    # Optional so an empty name reaches the domain validation and gets a 400
    name: Optional[str] = None
    quantity: Optional[int] = None
    isbn: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    mandatory: bool = True
    purchasable: bool = True
    ordinal: Optional[int] = None
    version_timestamp: Optional[str] = None


class ItemUpdateBody(BaseModel):
    name: Optional[str] = None
    quantity: Optional[int] = None
    isbn: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    mandatory: Optional[bool] = None
    purchasable: Optional[bool] = None
    validated: Optional[bool] = None
    approved: Optional[bool] = None
    catalog_link_state: Optional[str] = None
    catalog_ref: Optional[str] = None
    ordinal: Optional[int] = None
    version_timestamp: Optional[str] = None


class ReorderBody(BaseModel):
    ordered_ids: List[str]
    overrides: Dict[str, Dict[str, Optional[str]]] = {}
    version_timestamp: Optional[str] = None


class ApprovalBody(BaseModel):
    approved: bool
    version_timestamp: Optional[str] = None


class ClassificationBody(BaseModel):
    item_ids: Optional[List[str]] = None
    apply: bool = False


# ------------------------------------------------------------------
# Item endpoints
# ------------------------------------------------------------------
@router.post("/courses/{course_id}/items", status_code=status.HTTP_201_CREATED)
def add_item(course_id: str, body: ItemDraftBody, svc: ListAppService = Depends(get_list_app_service)):
    draft = body.model_dump(exclude={"ordinal", "version_timestamp"})
    result = svc.add_item(course_id, draft, ordinal=body.ordinal, version_timestamp=body.version_timestamp)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_item(result.value), status.HTTP_201_CREATED)


@router.put("/courses/{course_id}/items/order")
def reorder_items(course_id: str, body: ReorderBody, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.reorder(
        course_id, body.ordered_ids, body.overrides, version_timestamp=body.version_timestamp
    )
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_version(result.value))


@router.put("/courses/{course_id}/items/{item_id}")
def update_item(
    course_id: str,
    item_id: str,
    body: ItemUpdateBody,
    svc: ListAppService = Depends(get_list_app_service),
):
    changes = body.model_dump(exclude_unset=True, exclude={"version_timestamp"})
    result = svc.update_item(course_id, item_id, changes, version_timestamp=body.version_timestamp)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_item(result.value))


@router.delete("/courses/{course_id}/items/{item_id}")
def remove_item(
    course_id: str,
    item_id: str,
    version_timestamp: Optional[str] = None,
    svc: ListAppService = Depends(get_list_app_service),
):
    result = svc.remove_item(course_id, item_id, version_timestamp=version_timestamp)
    if not result.is_success:
        return from_failure(result)
    return ok({"removed": serialize_item(result.value)})


@router.post("/courses/{course_id}/items/{item_id}/approval")
def set_approval(
    course_id: str,
    item_id: str,
    body: ApprovalBody,
    svc: ListAppService = Depends(get_list_app_service),
):
    result = svc.set_approval(course_id, item_id, body.approved, version_timestamp=body.version_timestamp)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_item(result.value))


@router.post("/courses/{course_id}/approve-all")
def approve_all(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.approve_all(course_id)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_version(result.value))


# ------------------------------------------------------------------
# Enrichment
# ------------------------------------------------------------------
@router.post("/courses/{course_id}/classification")
def classify_items(
    course_id: str,
    body: ClassificationBody,
    svc: ListAppService = Depends(get_list_app_service),
):
    result = svc.suggest_classification(course_id, item_ids=body.item_ids, apply=body.apply)
    if not result.is_success:
        return from_failure(result)
    return ok(result.value)


@router.post("/courses/{course_id}/catalog-link")
def relink_catalog(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.relink_catalog(course_id)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_version(result.value))
