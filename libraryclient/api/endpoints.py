"""Endpoint paths of the library backend, relative to the API base URL."""

from __future__ import annotations


class ApiEndpoints:
    LOGIN = "/login"
    REGISTER = "/register"
    LOGOUT = "/logout"
    FORGOT_PASSWORD = "/forgot-password"
    RESET_PASSWORD = "/reset-password"

    BOOKS = "/books"
    EBOOKS = "/ebooks"
    NOTES = "/notes"
    QUESTION_PAPERS = "/oldquestion"
    NOTICES = "/notices"
    RESOURCES = "/resources"
    RESOURCE_UPLOAD = "/resources/upload"
    COURSES = "/course"

    USERS = "/users"
    USER = "/user"
    USER_SEARCH_BY_LIBRARY_ID = "/user/search/library-id"

    ISSUE_BOOK = "/issue-book"
    RETURN_BOOK = "/return-book"
    ISSUED_BOOKS = "/issued-books"

    NOC_DOCUMENTS = "/documents/noc"

    @classmethod
    def all(cls) -> tuple[str, ...]:
        return tuple(
            value
            for name, value in vars(cls).items()
            if name.isupper() and isinstance(value, str)
        )


# Bare paths under these prefixes get the base URL prepended by the pipeline.
API_ENDPOINT_PREFIXES: tuple[str, ...] = tuple(
    sorted(set(ApiEndpoints.all()), key=len, reverse=True)
)


__all__ = ["API_ENDPOINT_PREFIXES", "ApiEndpoints"]
