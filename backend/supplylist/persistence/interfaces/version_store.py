"""Abstract store for a course's version history, kept as one opaque document."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional

from supplylist.domain.materials.models import Course, ListVersion


class VersionStore(ABC):

    @abstractmethod
    def create_course(self, course: Course) -> Course:
        """Persist a new course (with whatever versions it carries). Returns it with a revision."""
        ...

    @abstractmethod
    def load_course(self, course_id: str) -> Course:
        """Return the course with its full version history and current revision.

        Raises NotFoundError for unknown ids, InfrastructureError when unreachable.
        """
        ...

    def load_versions(self, course_id: str) -> List[ListVersion]:
        return self.load_course(course_id).versions

    @abstractmethod
    def save_versions(
        self,
        course_id: str,
        versions: List[ListVersion],
        expected_revision: Optional[str],
    ) -> str:
        """Replace the whole history. Raises ConflictError if the revision moved; returns the new revision."""
        ...

    @abstractmethod
    def set_course_active(self, course_id: str, active: bool) -> Course:
        """Courses are never deleted, only deactivated."""
        ...
