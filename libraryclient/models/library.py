"""Pydantic models for library backend payloads.

The backend is a loosely typed Laravel API, so models accept unknown fields
and keep most attributes optional. Responses are validated once in the API
façade; everything downstream works with these models.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Generic, Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

T = TypeVar("T")

ResourceType = Literal["ebook", "note", "question_paper"]


class LibraryModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ApiEnvelope(LibraryModel, Generic[T]):
    """Standard ``{status, message, data}`` response wrapper."""

    status: bool = Field(
        default=False,
        validation_alias=AliasChoices("status", "success"),
        description="Whether the backend reports success.",
    )
    message: str | None = None
    data: T | None = None


# =============================================================================
# Accounts
# =============================================================================


class User(LibraryModel):
    id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("id", "user_id")
    )
    name: str | None = None
    email: str | None = None
    role: str | None = None
    library_id: str | None = None
    course_code: str | None = None
    semester: int | None = None


class Student(User):
    university_roll_number: str | None = None
    phone: str | None = None
    department: str | None = None
    father_name: str | None = None
    address: str | None = None
    session: str | None = None


class LoginResult(LibraryModel):
    status: bool = Field(
        default=False, validation_alias=AliasChoices("status", "success")
    )
    message: str | None = None
    token: str | None = Field(
        default=None, validation_alias=AliasChoices("token", "access_token")
    )
    user: User | None = None


# =============================================================================
# Catalogue
# =============================================================================


class Course(LibraryModel):
    id: int | None = Field(
        default=None, validation_alias=AliasChoices("id", "course_id")
    )
    course_code: str | None = None
    course_name: str | None = None
    description: str | None = None
    total_semesters: int | None = None
    department: str | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


class Book(LibraryModel):
    id: int | None = Field(default=None, validation_alias=AliasChoices("id", "book_id"))
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    publisher: str | None = None
    publication_year: int | None = None
    edition: str | None = None
    course_code: str | None = None
    semester: int | None = None
    subject: str | None = None
    quantity: int | None = None
    available_quantity: int | None = None
    shelf_location: str | None = None


class Ebook(LibraryModel):
    id: int
    title: str
    description: str | None = None
    author: str | None = None
    file_path: str | None = None
    course_code: str | None = None
    semester: int | None = None
    is_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None


class Note(Ebook):
    subject: str | None = None


class QuestionPaper(LibraryModel):
    id: int
    title: str
    description: str | None = None
    subject: str | None = None
    year: int | None = None
    exam_type: str | None = None
    file_path: str | None = None
    course_code: str | None = None
    semester: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ResourcesBundle(LibraryModel):
    ebooks: list[Ebook] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    question_papers: list[QuestionPaper] = Field(default_factory=list)


class UnifiedResource(BaseModel):
    """Ebook, note or question paper flattened into one display shape."""

    id: int
    title: str
    description: str | None = None
    author: str = ""
    file_path: str | None = None
    course_code: str | None = None
    semester: int | None = None
    is_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    resource_type: ResourceType
    subject: str | None = None
    year: int | None = None
    exam_type: str | None = None


# =============================================================================
# Notices
# =============================================================================


class Notice(LibraryModel):
    id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("id", "notification_id")
    )
    title: str | None = None
    description: str | None = None
    course_code: str | None = None
    semester: int | None = None
    notification_type: str | None = None
    expires_at: str | None = None
    user_id: int | None = None
    created_at: str | None = None


class NoticePayload(BaseModel):
    """Notice fields as the backend expects them on create and update."""

    title: str
    description: str
    user_id: int = 1
    course_code: str | None = None
    semester: int | None = None
    notification_type: str = "general"
    expires_at: str | None = None


# =============================================================================
# Circulation
# =============================================================================


class IssuedBookRecord(LibraryModel):
    issue_id: int | None = Field(
        default=None, validation_alias=AliasChoices("issue_id", "id")
    )
    book_id: int | None = None
    book_title: str | None = Field(
        default=None, validation_alias=AliasChoices("book_title", "title")
    )
    book_author: str | None = None
    book_isbn: str | None = None
    issue_date: str | None = None
    due_date: str | None = None
    return_date: str | None = None
    is_returned: bool = False
    fine_amount: float = 0.0
    status: str | None = None
    remarks: str | None = None

    @property
    def display_title(self) -> str:
        if self.book_title:
            return self.book_title
        return f"Book #{self.book_id}" if self.book_id is not None else "Unknown book"


class UserIssuedBooks(LibraryModel):
    """Circulation summary for one library card holder."""

    user: Student
    total_fine: float = 0.0
    issued_books: list[IssuedBookRecord] = Field(default_factory=list)

    @property
    def outstanding_books(self) -> list[IssuedBookRecord]:
        return [record for record in self.issued_books if not record.is_returned]


class IssueBookRequest(BaseModel):
    book_id: int
    user_id: int
    issue_date: date
    due_date: date
    issued_by: int = 0
    issued_by_name: str = "Unknown"
    remarks: str | None = None


class ReturnBookRequest(BaseModel):
    issue_id: int
    return_date: date
    remarks: str | None = None
    fine_amount: float | None = Field(default=None, ge=0)


def dump_request(model: BaseModel) -> dict[str, Any]:
    """Serialise a request model for a JSON body, leaving out unset optionals."""
    return model.model_dump(mode="json", exclude_none=True)


__all__ = [
    "ApiEnvelope",
    "Book",
    "Course",
    "Ebook",
    "IssueBookRequest",
    "IssuedBookRecord",
    "LoginResult",
    "Note",
    "Notice",
    "NoticePayload",
    "QuestionPaper",
    "ResourceType",
    "ResourcesBundle",
    "ReturnBookRequest",
    "Student",
    "UnifiedResource",
    "User",
    "UserIssuedBooks",
    "dump_request",
]
