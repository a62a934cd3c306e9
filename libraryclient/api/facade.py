"""
Named library operations bound to backend endpoints.

Responses are validated into the models of ``libraryclient.models.library``
here and nowhere else. Mutations clear the cache entries of the endpoint
family they change.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from libraryclient.api.endpoints import ApiEndpoints
from libraryclient.models.library import (
    ApiEnvelope,
    Book,
    Course,
    IssueBookRequest,
    LoginResult,
    Notice,
    NoticePayload,
    ResourcesBundle,
    ReturnBookRequest,
    Student,
    UserIssuedBooks,
    dump_request,
)
from libraryclient.services.errors import ApiError, ResponseValidationError
from libraryclient.services.http_client import HttpClient, ProgressCallback, UploadFile
from libraryclient.services.session import SessionStore

logger = logging.getLogger(__name__)

Fields = Mapping[str, Any]


def validate_payload(model_type: Any, payload: Any) -> Any:
    """Validate *payload* against *model_type* or raise ResponseValidationError."""
    try:
        return TypeAdapter(model_type).validate_python(payload)
    except ValidationError as exc:
        logger.warning("Unexpected response structure: %s", exc)
        raise ResponseValidationError(payload=payload) from exc


def _as_body(data: BaseModel | Fields | None) -> dict[str, Any] | None:
    if data is None:
        return None
    if isinstance(data, BaseModel):
        return dump_request(data)
    return dict(data)


def _page_items(data: Any) -> Any:
    # Paginated listings nest the rows one level deeper.
    if isinstance(data, Mapping) and isinstance(data.get("data"), list):
        return data["data"]
    return data


class LibraryApi:
    """Async façade over the library backend."""

    def __init__(self, client: HttpClient, session: SessionStore) -> None:
        self._client = client
        self._session = session

    @property
    def client(self) -> HttpClient:
        return self._client

    # ------------------------------------------------------------------
    # Envelope handling
    # ------------------------------------------------------------------

    @staticmethod
    def _envelope(payload: Any) -> ApiEnvelope[Any]:
        envelope: ApiEnvelope[Any] = validate_payload(ApiEnvelope[Any], payload)
        return envelope

    def _data(self, payload: Any, model_type: Any, *, default: Any = None) -> Any:
        """Unwrap ``data`` from a successful envelope and validate it."""
        envelope = self._envelope(payload)
        if not envelope.status:
            raise ApiError(envelope.message, payload=payload)
        if envelope.data is None:
            return default
        return validate_payload(model_type, envelope.data)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        payload = await self._client.post(
            ApiEndpoints.LOGIN, {"email": email, "password": password}
        )
        result: LoginResult = validate_payload(LoginResult, payload)
        if not result.status or not result.token:
            raise ApiError(result.message or "Login failed", payload=payload)

        user = result.user.model_dump(exclude_none=True) if result.user else {}
        self._session.save_login(result.token, user)
        logger.info("Signed in as %s", email)
        return result

    async def register(
        self, name: str, email: str, password: str, **profile: Any
    ) -> LoginResult:
        body = {"name": name, "email": email, "password": password, **profile}
        payload = await self._client.post(ApiEndpoints.REGISTER, body)
        return validate_payload(LoginResult, payload)

    async def logout(self) -> ApiEnvelope[Any]:
        """Sign out on the server; local credentials are cleared regardless."""
        try:
            payload = await self._client.post(ApiEndpoints.LOGOUT)
        finally:
            self._session.clear_auth()
            self._client.clear_cache()
        return self._envelope(payload)

    async def forgot_password(self, email: str) -> ApiEnvelope[Any]:
        payload = await self._client.post(ApiEndpoints.FORGOT_PASSWORD, {"email": email})
        return self._envelope(payload)

    async def reset_password(
        self, email: str, otp: str, password: str, password_confirmation: str
    ) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.RESET_PASSWORD,
            {
                "email": email,
                "otp": otp,
                "password": password,
                "password_confirmation": password_confirmation,
            },
        )
        return self._envelope(payload)

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    async def get_courses(self) -> list[Course]:
        payload = await self._client.get(ApiEndpoints.COURSES)
        return self._data(payload, list[Course], default=[])

    async def create_course(self, data: Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.COURSES, dict(data), clear_cache_pattern=ApiEndpoints.COURSES
        )
        return self._envelope(payload)

    async def update_course(self, course_id: int | str, data: Fields) -> ApiEnvelope[Any]:
        payload = await self._client.put(
            f"{ApiEndpoints.COURSES}/{course_id}",
            dict(data),
            clear_cache_pattern=ApiEndpoints.COURSES,
        )
        return self._envelope(payload)

    async def delete_course(self, course_id: int | str) -> ApiEnvelope[Any]:
        payload = await self._client.delete(
            f"{ApiEndpoints.COURSES}/{course_id}", clear_cache_pattern=ApiEndpoints.COURSES
        )
        return self._envelope(payload)

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    async def get_books(self, filters: Fields | None = None) -> list[Book]:
        payload = await self._client.get(ApiEndpoints.BOOKS, filters)
        envelope = self._envelope(payload)
        if not envelope.status:
            raise ApiError(envelope.message, payload=payload)
        return validate_payload(list[Book], _page_items(envelope.data) or [])

    async def get_books_by_course_and_semester(
        self, course_code: str | None = None, semester: int | None = None
    ) -> list[Book]:
        params = (
            {"course_code": course_code, "semester": semester}
            if course_code or semester
            else None
        )
        return await self.get_books(params)

    async def search_books(self, query: str, **filters: Any) -> list[Book]:
        return await self.get_books({"search": query, **filters})

    async def create_book(self, data: Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.BOOKS, dict(data), clear_cache_pattern=ApiEndpoints.BOOKS
        )
        return self._envelope(payload)

    async def update_book(self, book_id: int | str, data: Fields) -> ApiEnvelope[Any]:
        payload = await self._client.put(
            f"{ApiEndpoints.BOOKS}/{book_id}", dict(data), clear_cache_pattern=ApiEndpoints.BOOKS
        )
        return self._envelope(payload)

    async def delete_book(self, book_id: int | str) -> ApiEnvelope[Any]:
        payload = await self._client.delete(
            f"{ApiEndpoints.BOOKS}/{book_id}", clear_cache_pattern=ApiEndpoints.BOOKS
        )
        return self._envelope(payload)

    async def upload_book(
        self,
        data: Fields,
        file: UploadFile | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ApiEnvelope[Any]:
        payload = await self._client.upload(
            ApiEndpoints.BOOKS,
            data,
            file,
            on_progress=on_progress,
            clear_cache_pattern=ApiEndpoints.BOOKS,
        )
        return self._envelope(payload)

    # ------------------------------------------------------------------
    # Resources (ebooks, notes, question papers)
    # ------------------------------------------------------------------

    async def get_resources(self, filters: Fields | None = None) -> ResourcesBundle:
        payload = await self._client.get(ApiEndpoints.RESOURCES, filters)
        return self._data(payload, ResourcesBundle, default=ResourcesBundle())

    async def _upload_resource(
        self,
        endpoint: str,
        data: Fields,
        file: UploadFile | None,
        on_progress: ProgressCallback | None,
    ) -> ApiEnvelope[Any]:
        payload = await self._client.upload(
            endpoint,
            data,
            file,
            on_progress=on_progress,
            clear_cache_pattern=ApiEndpoints.RESOURCES,
        )
        return self._envelope(payload)

    async def upload_ebook(
        self,
        data: Fields,
        file: UploadFile | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ApiEnvelope[Any]:
        return await self._upload_resource(ApiEndpoints.EBOOKS, data, file, on_progress)

    async def upload_notes(
        self,
        data: Fields,
        file: UploadFile | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ApiEnvelope[Any]:
        return await self._upload_resource(ApiEndpoints.NOTES, data, file, on_progress)

    async def upload_question_paper(
        self,
        data: Fields,
        file: UploadFile | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ApiEnvelope[Any]:
        return await self._upload_resource(
            ApiEndpoints.QUESTION_PAPERS, data, file, on_progress
        )

    async def upload_resource(
        self,
        *,
        title: str,
        description: str,
        author: str,
        course_code: str,
        semester: int,
        subject: str,
        file: UploadFile,
        on_progress: ProgressCallback | None = None,
    ) -> ApiEnvelope[Any]:
        fields = {
            "title": title,
            "description": description,
            "author": author,
            "course_code": course_code,
            "semester": semester,
            "subject": subject,
        }
        return await self._upload_resource(
            ApiEndpoints.RESOURCE_UPLOAD, fields, file, on_progress
        )

    async def _update_resource(
        self, endpoint: str, resource_id: int | str, data: Fields, file: UploadFile | None
    ) -> ApiEnvelope[Any]:
        target = f"{endpoint}/{resource_id}"
        if file is not None:
            payload = await self._client.upload(
                target, data, file, method="PUT", clear_cache_pattern=ApiEndpoints.RESOURCES
            )
        else:
            payload = await self._client.put(
                target, dict(data), clear_cache_pattern=ApiEndpoints.RESOURCES
            )
        return self._envelope(payload)

    async def update_ebook(
        self, ebook_id: int | str, data: Fields, file: UploadFile | None = None
    ) -> ApiEnvelope[Any]:
        return await self._update_resource(ApiEndpoints.EBOOKS, ebook_id, data, file)

    async def update_note(
        self, note_id: int | str, data: Fields, file: UploadFile | None = None
    ) -> ApiEnvelope[Any]:
        return await self._update_resource(ApiEndpoints.NOTES, note_id, data, file)

    async def update_question_paper(
        self, paper_id: int | str, data: Fields, file: UploadFile | None = None
    ) -> ApiEnvelope[Any]:
        return await self._update_resource(ApiEndpoints.QUESTION_PAPERS, paper_id, data, file)

    async def _delete_resource(self, endpoint: str, resource_id: int | str) -> ApiEnvelope[Any]:
        payload = await self._client.delete(
            f"{endpoint}/{resource_id}", clear_cache_pattern=ApiEndpoints.RESOURCES
        )
        return self._envelope(payload)

    async def delete_ebook(self, ebook_id: int | str) -> ApiEnvelope[Any]:
        return await self._delete_resource(ApiEndpoints.EBOOKS, ebook_id)

    async def delete_note(self, note_id: int | str) -> ApiEnvelope[Any]:
        return await self._delete_resource(ApiEndpoints.NOTES, note_id)

    async def delete_question_paper(self, paper_id: int | str) -> ApiEnvelope[Any]:
        return await self._delete_resource(ApiEndpoints.QUESTION_PAPERS, paper_id)

    # ------------------------------------------------------------------
    # Notices
    # ------------------------------------------------------------------

    async def get_notices(self) -> list[Notice]:
        payload = await self._client.get(ApiEndpoints.NOTICES)
        return self._data(payload, list[Notice], default=[])

    async def create_notice(self, notice: NoticePayload | Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.NOTICES, _as_body(notice), clear_cache_pattern=ApiEndpoints.NOTICES
        )
        return self._envelope(payload)

    async def update_notice(
        self, notice_id: int | str, notice: NoticePayload | Fields
    ) -> ApiEnvelope[Any]:
        payload = await self._client.put(
            f"{ApiEndpoints.NOTICES}/{notice_id}",
            _as_body(notice),
            clear_cache_pattern=ApiEndpoints.NOTICES,
        )
        return self._envelope(payload)

    async def delete_notice(self, notice_id: int | str) -> ApiEnvelope[Any]:
        payload = await self._client.delete(
            f"{ApiEndpoints.NOTICES}/{notice_id}", clear_cache_pattern=ApiEndpoints.NOTICES
        )
        return self._envelope(payload)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_users(self) -> list[Student]:
        payload = await self._client.get(ApiEndpoints.USERS)
        return self._data(payload, list[Student], default=[])

    async def get_user(self, user_id: int | str) -> Student:
        payload = await self._client.get(f"{ApiEndpoints.USER}/{user_id}")
        student = self._data(payload, Student)
        if student is None:
            raise ResponseValidationError(payload=payload)
        return student

    async def get_user_profile(self, user_id: int | str | None = None) -> Student:
        """Load the profile of *user_id*, defaulting to the signed-in user."""
        if user_id is None:
            current = self._session.current_user or {}
            user_id = current.get("id") or current.get("user_id")
            if user_id is None:
                raise ApiError("No signed-in user", status=401)
        return await self.get_user(user_id)

    async def create_student(self, data: Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.USERS, dict(data), clear_cache_pattern=ApiEndpoints.USER
        )
        return self._envelope(payload)

    async def search_user_by_library_id(self, library_id: str) -> list[Student]:
        payload = await self._client.get(
            ApiEndpoints.USER_SEARCH_BY_LIBRARY_ID, {"library_id": library_id}
        )
        envelope = self._envelope(payload)
        if not envelope.status:
            raise ApiError(envelope.message, payload=payload)
        found = envelope.data
        if found is None:
            return []
        if isinstance(found, Mapping):
            found = [found]
        return validate_payload(list[Student], found)

    # ------------------------------------------------------------------
    # Circulation
    # ------------------------------------------------------------------

    async def issue_book(self, request: IssueBookRequest | Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.ISSUE_BOOK, _as_body(request), clear_cache_pattern=ApiEndpoints.BOOKS
        )
        return self._envelope(payload)

    async def return_book(self, request: ReturnBookRequest | Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(
            ApiEndpoints.RETURN_BOOK, _as_body(request), clear_cache_pattern=ApiEndpoints.BOOKS
        )
        return self._envelope(payload)

    async def get_user_issued_books(self, library_id: str) -> UserIssuedBooks:
        """Circulation summary for a library card.

        The backend answers either with the summary at the top level or
        wrapped in the standard envelope.
        """
        payload = await self._client.get(
            ApiEndpoints.ISSUED_BOOKS, {"library_id": library_id}, use_cache=False
        )
        if isinstance(payload, Mapping) and "issued_books" in payload:
            return validate_payload(UserIssuedBooks, payload)
        summary = self._data(payload, UserIssuedBooks)
        if summary is None:
            raise ResponseValidationError(payload=payload)
        return summary

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def generate_noc(self, certificate: BaseModel | Fields) -> ApiEnvelope[Any]:
        payload = await self._client.post(ApiEndpoints.NOC_DOCUMENTS, _as_body(certificate))
        return self._envelope(payload)


__all__ = ["LibraryApi", "validate_payload"]
