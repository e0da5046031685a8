"""SQLite implementation of VersionStore: one JSON document per course plus a revision counter."""
from __future__ import annotations
import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from supplylist.domain.common.errors import ConflictError, InfrastructureError, NotFoundError
from supplylist.domain.materials.models import Course, ListVersion
from supplylist.persistence.db import get_connection
from supplylist.persistence.interfaces.version_store import VersionStore
from supplylist.persistence.mappers import versions_from_raw, versions_to_document

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_course(row) -> Course:
    try:
        raw_versions = json.loads(row["versions"] or "[]")
    except (TypeError, ValueError):
        logger.warning("Course %s has an unreadable version document; treating as empty", row["id"])
        raw_versions = []
    return Course(
        id=row["id"],
        name=row["name"],
        level=row["level"],
        grade=row["grade"],
        year=row["year"],
        school_id=row["school_id"],
        active=bool(row["active"]),
        versions=versions_from_raw(raw_versions),
        revision=str(row["revision"]),
    )


class SqliteVersionStore(VersionStore):

    def __init__(self, db_path: Optional[str] = None):
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self._db_path)
        except sqlite3.Error as exc:
            raise InfrastructureError(f"Cannot open course database: {exc}", service="sqlite") from exc

    def create_course(self, course: Course) -> Course:
        now = _now_iso()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO courses (id, name, level, grade, year, school_id, active,
                                     versions, revision, created_at, updated_at)
                VALUES (:id, :name, :level, :grade, :year, :school_id, :active,
                        :versions, 0, :created_at, :updated_at)
                """,
                {
                    "id": course.id,
                    "name": course.name,
                    "level": course.level,
                    "grade": course.grade,
                    "year": course.year,
                    "school_id": course.school_id,
                    "active": 1 if course.active else 0,
                    "versions": json.dumps(versions_to_document(course.versions), ensure_ascii=False),
                    "created_at": now,
                    "updated_at": now,
                },
            )
            conn.commit()
        except sqlite3.IntegrityError as exc:
            raise ConflictError(course.id, expected=None, actual="exists") from exc
        except sqlite3.Error as exc:
            raise InfrastructureError(f"Cannot create course '{course.id}': {exc}", service="sqlite") from exc
        finally:
            conn.close()
        return self.load_course(course.id)

    def load_course(self, course_id: str) -> Course:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM courses WHERE id = ?", (course_id,)).fetchone()
        except sqlite3.Error as exc:
            raise InfrastructureError(f"Cannot read course '{course_id}': {exc}", service="sqlite") from exc
        finally:
            conn.close()
        if not row:
            raise NotFoundError(f"Course '{course_id}' not found.")
        return _row_to_course(row)

    def save_versions(
        self,
        course_id: str,
        versions: List[ListVersion],
        expected_revision: Optional[str],
    ) -> str:
        document = json.dumps(versions_to_document(versions), ensure_ascii=False)
        conn = self._connect()
        try:
            cur = conn.execute(
                """
                UPDATE courses
                SET versions = ?, revision = revision + 1, updated_at = ?
                WHERE id = ? AND revision = ?
                """,
                (document, _now_iso(), course_id, int(expected_revision or 0)),
            )
            if cur.rowcount == 0:
                row = conn.execute("SELECT revision FROM courses WHERE id = ?", (course_id,)).fetchone()
                if not row:
                    raise NotFoundError(f"Course '{course_id}' not found.")
                raise ConflictError(course_id, expected=expected_revision, actual=str(row["revision"]))
            conn.commit()
            row = conn.execute("SELECT revision FROM courses WHERE id = ?", (course_id,)).fetchone()
        except sqlite3.Error as exc:
            raise InfrastructureError(f"Cannot save course '{course_id}': {exc}", service="sqlite") from exc
        finally:
            conn.close()
        logger.debug("Saved %d versions for course %s (revision %s)", len(versions), course_id, row["revision"])
        return str(row["revision"])

    def set_course_active(self, course_id: str, active: bool) -> Course:
        conn = self._connect()
        try:
            cur = conn.execute(
                "UPDATE courses SET active = ?, updated_at = ? WHERE id = ?",
                (1 if active else 0, _now_iso(), course_id),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise InfrastructureError(f"Cannot update course '{course_id}': {exc}", service="sqlite") from exc
        finally:
            conn.close()
        if cur.rowcount == 0:
            raise NotFoundError(f"Course '{course_id}' not found.")
        return self.load_course(course_id)
