"""Tests for the NOC eligibility and generation workflow."""

from __future__ import annotations

from datetime import date

import pytest

from libraryclient.services.errors import NocNotEligibleError
from libraryclient.services.noc import NocState, NocWorkflow, noc_reference

TODAY = date(2024, 3, 15)

STUDENT = {
    "id": 5,
    "name": "Ravi Kumar",
    "library_id": "LIB5",
    "course_code": "BCA",
    "semester": 4,
}


def summary(issued_books=(), total_fine=0):
    return {"user": STUDENT, "total_fine": total_fine, "issued_books": list(issued_books)}


@pytest.fixture
def workflow(library_app):
    return NocWorkflow(library_app.api, today=lambda: TODAY)


class TestEligibility:
    @pytest.mark.asyncio
    async def test_unreturned_books_block_the_noc(self, workflow, backend):
        backend.route(
            "GET",
            "/issued-books",
            json=summary(
                [
                    {"id": 1, "title": "SICP", "is_returned": False},
                    {"id": 2, "book_id": 8, "is_returned": False},
                    {"id": 3, "title": "TAOCP", "is_returned": True},
                ]
            ),
        )

        with pytest.raises(NocNotEligibleError) as excinfo:
            await workflow.check_eligibility("LIB5")

        assert excinfo.value.message == (
            "Student has books that need to be returned first: SICP, Book #8"
        )
        assert workflow.state is NocState.INELIGIBLE
        with pytest.raises(NocNotEligibleError):
            workflow.open_form()
        with pytest.raises(NocNotEligibleError):
            await workflow.submit("Course completed")
        assert backend.calls("POST", "/documents/noc") == []

    @pytest.mark.asyncio
    async def test_pending_fine_blocks_the_noc(self, workflow, backend):
        backend.route("GET", "/issued-books", json=summary(total_fine=25.5))

        with pytest.raises(NocNotEligibleError) as excinfo:
            await workflow.check_eligibility("LIB5")

        assert excinfo.value.message == (
            "Student has a pending fine of 25.50 that needs to be paid."
        )
        assert workflow.state is NocState.INELIGIBLE

    @pytest.mark.asyncio
    async def test_blank_library_id_is_rejected(self, workflow, backend):
        with pytest.raises(ValueError):
            await workflow.check_eligibility("   ")

        assert backend.requests == []
        assert workflow.state is NocState.SEARCH

    @pytest.mark.asyncio
    async def test_eligible_student_details_are_loaded(self, workflow, backend):
        backend.route("GET", "/issued-books", json=summary())
        backend.route(
            "GET", "/user/5", json={"status": True, "data": {**STUDENT, "phone": "98765"}}
        )

        student = await workflow.check_eligibility(" LIB5 ")

        assert student.phone == "98765"
        assert workflow.state is NocState.ELIGIBLE
        assert backend.calls("GET", "/issued-books")[0].url.params["library_id"] == "LIB5"

    @pytest.mark.asyncio
    async def test_falls_back_to_summary_user(self, workflow, backend, caplog):
        backend.route("GET", "/issued-books", json=summary())
        backend.route("GET", "/user/5", status_code=500, json={"message": "Server error"})

        student = await workflow.check_eligibility("LIB5")

        assert student.name == "Ravi Kumar"
        assert workflow.state is NocState.ELIGIBLE
        assert "Failed to fetch detailed student information" in caplog.text


class TestGeneration:
    @pytest.mark.asyncio
    async def test_full_flow_posts_certificate(self, workflow, backend):
        backend.route("GET", "/issued-books", json={"status": True, "data": summary()})
        backend.route("GET", "/user/5", json={"status": True, "data": STUDENT})
        backend.route("POST", "/documents/noc", json={"status": True})

        await workflow.check_eligibility("LIB5")
        form = workflow.open_form()
        assert form == {"reason": "", "remarks": "", "date": "2024-03-15"}
        assert workflow.state is NocState.FORM

        certificate = await workflow.submit("Course completed", remarks=" All clear ")

        assert certificate.reference == "LIB/NOC/2024/5"
        assert certificate.remarks == "All clear"
        assert workflow.state is NocState.GENERATED
        assert backend.json_body(backend.calls("POST", "/documents/noc")[0]) == {
            "reference": "LIB/NOC/2024/5",
            "student_id": 5,
            "student_name": "Ravi Kumar",
            "library_id": "LIB5",
            "course_code": "BCA",
            "semester": 4,
            "reason": "Course completed",
            "remarks": "All clear",
            "issued_on": "2024-03-15",
        }

        text = certificate.render_text()
        assert text.startswith("Ref No: LIB/NOC/2024/5")
        assert "Ravi Kumar (Library ID: LIB5)" in text
        assert text.endswith("Remarks: All clear")

    @pytest.mark.asyncio
    async def test_blank_reason_is_rejected(self, workflow, backend):
        backend.route("GET", "/issued-books", json=summary())
        backend.route("GET", "/user/5", json={"status": True, "data": STUDENT})
        await workflow.check_eligibility("LIB5")

        with pytest.raises(ValueError):
            await workflow.submit("  ")

        assert workflow.state is NocState.ELIGIBLE

    @pytest.mark.asyncio
    async def test_reset(self, workflow, backend):
        backend.route("GET", "/issued-books", json=summary(total_fine=5))
        with pytest.raises(NocNotEligibleError):
            await workflow.check_eligibility("LIB5")

        workflow.reset()

        assert workflow.state is NocState.SEARCH
        assert workflow.summary is None


def test_noc_reference():
    assert noc_reference(42, date(2025, 1, 2)) == "LIB/NOC/2025/42"
