"""Course, version history and import endpoints."""
from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from supplylist.api.envelope import (
    from_failure,
    ok,
    serialize_course,
    serialize_version,
    serialize_version_summary,
)
from supplylist.application.list_app_service import ListAppService
from supplylist.container import get_list_app_service
from supplylist.domain.materials.selection import select_current_index

router = APIRouter(tags=["courses"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class CourseBody(BaseModel):
    id: Optional[str] = None
    name: str
    level: Optional[str] = None
    grade: Optional[str] = None
    year: Optional[int] = None
    school_id: Optional[str] = None


class DuplicateBody(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    level: Optional[str] = None
    grade: Optional[str] = None
    year: Optional[int] = None
    school_id: Optional[str] = None
    copy_materials: bool = True
    copy_source_document: bool = False


class ImportBody(BaseModel):
    items: List[Dict[str, Any]]
    source_document_ref: Optional[str] = None


# ------------------------------------------------------------------
# Health check
# ------------------------------------------------------------------
@router.get("/health")
def health():
    return {"status": "ok"}


# ------------------------------------------------------------------
# Courses
# ------------------------------------------------------------------
@router.post("/courses", status_code=status.HTTP_201_CREATED)
def create_course(body: CourseBody, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.create_course(body.model_dump())
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_course(result.value), status.HTTP_201_CREATED)


@router.get("/courses/{course_id}")
def get_course(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.get_course(course_id)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_course(result.value))


@router.post("/courses/{course_id}/deactivate")
def deactivate_course(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.deactivate_course(course_id)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_course(result.value))


@router.post("/courses/{course_id}/duplicate", status_code=status.HTTP_201_CREATED)
def duplicate_course(course_id: str, body: DuplicateBody, svc: ListAppService = Depends(get_list_app_service)):
    data = body.model_dump(exclude={"copy_materials", "copy_source_document"})
    result = svc.duplicate_course(
        course_id,
        data,
        copy_materials=body.copy_materials,
        copy_source_document=body.copy_source_document,
    )
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_course(result.value), status.HTTP_201_CREATED)


# ------------------------------------------------------------------
# Versions
# ------------------------------------------------------------------
@router.get("/courses/{course_id}/versions")
def list_versions(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.list_versions(course_id)
    if not result.is_success:
        return from_failure(result)
    versions = result.value
    current = select_current_index(versions)
    return ok([serialize_version_summary(v, i == current) for i, v in enumerate(versions)])


@router.get("/courses/{course_id}/versions/current")
def get_current_version(course_id: str, svc: ListAppService = Depends(get_list_app_service)):
    result = svc.get_current_version(course_id)
    if not result.is_success:
        return from_failure(result)
    return ok(serialize_version(result.value))


@router.get("/courses/{course_id}/versions/comparison")
def compare_versions(
    course_id: str,
    base: Optional[str] = None,
    target: Optional[str] = None,
    svc: ListAppService = Depends(get_list_app_service),
):
    result = svc.compare_versions(course_id, base_timestamp=base, target_timestamp=target)
    if not result.is_success:
        return from_failure(result)
    return ok(result.value)


@router.post("/courses/{course_id}/versions/import", status_code=status.HTTP_201_CREATED)
def import_version(
    course_id: str,
    body: ImportBody,
    svc: ListAppService = Depends(get_list_app_service),
):
    result = svc.import_version(course_id, body.items, body.source_document_ref)
    if not result.is_success:
        return from_failure(result)
    report = result.value.report
    return ok(
        {
            "version": serialize_version(result.value.version),
            "report": {**asdict(report), "counts": report.counts},
        },
        status.HTTP_201_CREATED,
    )
