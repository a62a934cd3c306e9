"""
Library clearance (NOC) generation.

A certificate can only be prepared for a student who has returned every
issued book and has no pending fine. The workflow walks
SEARCH -> ELIGIBLE -> FORM -> GENERATED; a failed eligibility check ends in
INELIGIBLE until the workflow is reset.
"""

from __future__ import annotations

import enum
import logging
from datetime import date
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, Field

from libraryclient.models.library import Student, UserIssuedBooks
from libraryclient.services.errors import ApiError, NocNotEligibleError

if TYPE_CHECKING:
    from libraryclient.api.facade import LibraryApi

logger = logging.getLogger(__name__)


class NocState(str, enum.Enum):
    SEARCH = "search"
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    FORM = "form"
    GENERATED = "generated"


class NocCertificate(BaseModel):
    reference: str = Field(..., description="Reference number printed on the certificate.")
    student_id: int | str
    student_name: str | None = None
    library_id: str | None = None
    course_code: str | None = None
    semester: int | None = None
    reason: str
    remarks: str = ""
    issued_on: date

    def render_text(self) -> str:
        lines = [
            f"Ref No: {self.reference}",
            f"Date: {self.issued_on.isoformat()}",
            "",
            "NO OBJECTION CERTIFICATE",
            "",
            f"This is to certify that {self.student_name or 'the student'}"
            f" (Library ID: {self.library_id or 'N/A'}) has returned all books issued"
            " from the University Library and has no outstanding dues.",
            "",
            f"Reason for NOC: {self.reason}",
        ]
        if self.remarks:
            lines.append(f"Remarks: {self.remarks}")
        return "\n".join(lines)


def noc_reference(student_id: int | str, issued_on: date) -> str:
    return f"LIB/NOC/{issued_on.year}/{student_id}"


class NocWorkflow:
    """Eligibility check and certificate submission for one student at a time."""

    def __init__(self, api: "LibraryApi", today: Callable[[], date] = date.today) -> None:
        self._api = api
        self._today = today
        self.state = NocState.SEARCH
        self.summary: UserIssuedBooks | None = None
        self.student: Student | None = None
        self.certificate: NocCertificate | None = None

    def reset(self) -> None:
        self.state = NocState.SEARCH
        self.summary = None
        self.student = None
        self.certificate = None

    async def check_eligibility(self, library_id: str) -> Student:
        """Look up *library_id* and decide whether a NOC may be issued.

        Raises:
            NocNotEligibleError: Books are still out or a fine is pending
        """
        library_id = library_id.strip()
        if not library_id:
            raise ValueError("A library ID is required")

        self.reset()
        summary = await self._api.get_user_issued_books(library_id)
        self.summary = summary

        outstanding = summary.outstanding_books
        if outstanding:
            self.state = NocState.INELIGIBLE
            titles = ", ".join(record.display_title for record in outstanding)
            raise NocNotEligibleError(
                f"Student has books that need to be returned first: {titles}",
                payload=summary.model_dump(mode="json"),
            )

        if summary.total_fine > 0:
            self.state = NocState.INELIGIBLE
            raise NocNotEligibleError(
                f"Student has a pending fine of {summary.total_fine:.2f} that needs to be paid.",
                payload=summary.model_dump(mode="json"),
            )

        student = summary.user
        if student.id is not None:
            try:
                student = await self._api.get_user(student.id)
            except ApiError as exc:
                logger.warning(
                    "Failed to fetch detailed student information for %s: %s",
                    student.id,
                    exc.message,
                )
                student = summary.user

        self.student = student
        self.state = NocState.ELIGIBLE
        return student

    def open_form(self) -> dict[str, Any]:
        """Enter the form state and return the default form values."""
        if self.state not in (NocState.ELIGIBLE, NocState.FORM):
            raise NocNotEligibleError(
                f"Cannot prepare a NOC while the workflow is {self.state.value}"
            )
        self.state = NocState.FORM
        return {"reason": "", "remarks": "", "date": self._today().isoformat()}

    async def submit(
        self, reason: str, remarks: str = "", issued_on: date | None = None
    ) -> NocCertificate:
        if self.state not in (NocState.ELIGIBLE, NocState.FORM) or self.student is None:
            raise NocNotEligibleError(
                f"Cannot generate a NOC while the workflow is {self.state.value}"
            )
        if not reason or not reason.strip():
            raise ValueError("A reason for the NOC is required")

        student = self.student
        student_id = student.id if student.id is not None else student.library_id or ""
        issued_on = issued_on or self._today()
        certificate = NocCertificate(
            reference=noc_reference(student_id, issued_on),
            student_id=student_id,
            student_name=student.name,
            library_id=student.library_id,
            course_code=student.course_code,
            semester=student.semester,
            reason=reason.strip(),
            remarks=remarks.strip(),
            issued_on=issued_on,
        )

        await self._api.generate_noc(certificate)
        self.certificate = certificate
        self.state = NocState.GENERATED
        logger.info("Generated NOC %s", certificate.reference)
        return certificate


__all__ = ["NocCertificate", "NocState", "NocWorkflow", "noc_reference"]
