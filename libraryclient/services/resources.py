"""Helpers for presenting ebooks, notes and question papers as one list."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from libraryclient.models.library import ResourcesBundle, UnifiedResource


def normalize_resources(bundle: ResourcesBundle) -> list[UnifiedResource]:
    """Flatten a resources response into display rows, ebooks first."""
    normalized: list[UnifiedResource] = []

    for ebook in bundle.ebooks:
        normalized.append(
            UnifiedResource(
                id=ebook.id,
                title=ebook.title,
                description=ebook.description,
                author=ebook.author or "",
                file_path=ebook.file_path,
                course_code=ebook.course_code,
                semester=ebook.semester,
                is_verified=ebook.is_verified,
                created_at=ebook.created_at,
                updated_at=ebook.updated_at,
                resource_type="ebook",
            )
        )

    for note in bundle.notes:
        normalized.append(
            UnifiedResource(
                id=note.id,
                title=note.title,
                description=note.description,
                author=note.author or "",
                file_path=note.file_path,
                course_code=note.course_code,
                semester=note.semester,
                is_verified=note.is_verified,
                created_at=note.created_at,
                updated_at=note.updated_at,
                resource_type="note",
                subject=note.subject,
            )
        )

    # Question papers carry no author and are always published verified.
    for paper in bundle.question_papers:
        normalized.append(
            UnifiedResource(
                id=paper.id,
                title=paper.title,
                description=paper.description,
                file_path=paper.file_path,
                course_code=paper.course_code,
                semester=paper.semester,
                is_verified=True,
                created_at=paper.created_at,
                updated_at=paper.updated_at,
                resource_type="question_paper",
                subject=paper.subject,
                exam_type=paper.exam_type,
                year=paper.year,
            )
        )

    return normalized


def _created_at(resource: UnifiedResource) -> datetime:
    if not resource.created_at:
        return datetime.min
    try:
        parsed = datetime.fromisoformat(resource.created_at.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def sort_resources_by_date(resources: Iterable[UnifiedResource]) -> list[UnifiedResource]:
    """Newest first; rows without a readable timestamp sort last."""
    return sorted(resources, key=_created_at, reverse=True)


def filter_resources(
    resources: Iterable[UnifiedResource],
    course_code: str | None = None,
    semester: int | None = None,
) -> list[UnifiedResource]:
    return [
        resource
        for resource in resources
        if (not course_code or resource.course_code == course_code)
        and (not semester or resource.semester == semester)
    ]


__all__ = ["filter_resources", "normalize_resources", "sort_resources_by_date"]
