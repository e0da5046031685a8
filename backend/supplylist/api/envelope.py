"""Response envelope and serializers shared by the routers."""
from __future__ import annotations
from dataclasses import asdict
from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse

from supplylist.domain.common.result import NOT_FOUND, Result
from supplylist.domain.materials.models import Course, ListVersion, MaterialItem
from supplylist.domain.materials.selection import select_current_version

_STATUS_BY_CODE = {
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def ok(data: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


def from_failure(result: Result) -> JSONResponse:
    return error(result.error, _STATUS_BY_CODE.get(result.code, status.HTTP_400_BAD_REQUEST))


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def serialize_item(item: MaterialItem) -> dict:
    return asdict(item)


def serialize_version(version: ListVersion) -> dict:
    return {
        "version_timestamp": version.version_timestamp,
        "last_modified": version.last_modified,
        "source_document_ref": version.source_document_ref,
        "item_count": len(version.items),
        "items": [serialize_item(i) for i in version.items],
    }


def serialize_version_summary(version: ListVersion, is_current: bool) -> dict:
    return {
        "version_timestamp": version.version_timestamp,
        "last_modified": version.last_modified,
        "source_document_ref": version.source_document_ref,
        "item_count": len(version.items),
        "approved_count": sum(1 for i in version.items if i.approved),
        "is_current": is_current,
    }


def serialize_course(course: Course) -> dict:
    current = select_current_version(course.versions)
    return {
        "id": course.id,
        "name": course.name,
        "level": course.level,
        "grade": course.grade,
        "year": course.year,
        "school_id": course.school_id,
        "active": course.active,
        "version_count": len(course.versions),
        "current_version": serialize_version(current) if current else None,
    }
