# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scope directory contract.

The directory answers "who belongs to this scope" and "which scopes does
this grade touch". Resolution depends only on the entity type:

- CLASS: active enrollments of the class
- SUBJECT: active students of every class of the subject's course, with
  grades and activities restricted to the subject
- COURSE: active students of the course's classes
- CAMPUS: active students of the campus's classes
- GROUP: members of the ad-hoc group, metrics across all classes

Implementations raise DataIntegrityError when the entity or one of its
parents does not exist, and TransientStoreError when the directory is
unavailable.
"""

from typing import Protocol

from src.domains.leaderboard.models import EntityScope, ScopeMembership, ScopeRef


class ScopeDirectory(Protocol):
    """Student and enrollment directory."""

    async def resolve(self, scope: EntityScope, entity_id: str) -> ScopeMembership:
        """Resolve the students and classes of a scope entity."""
        ...

    async def scopes_for(
        self,
        student_id: str,
        class_id: str,
        subject_id: str | None = None,
    ) -> list[ScopeRef]:
        """Every scope whose leaderboard a grade of the student in the class feeds."""
        ...

    async def scopes_for_class(self, class_id: str) -> list[ScopeRef]:
        """Every scope whose roster includes the class's students.

        The class itself, every subject of its course, its course and its
        campus. Groups are not derived from classes and are never included.
        """
        ...

    async def list_scopes(self) -> list[ScopeRef]:
        """Every scope entity known to the directory."""
        ...
