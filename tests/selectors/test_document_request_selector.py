"""Document request selector tests: requests come only from approvals."""

import pytest

from worksheet_kernel.domain.worksheet_lifecycle import Role, WorksheetStatus
from worksheet_kernel.selectors.document_request_selector import DocumentRequestSelector
from worksheet_services.side_effect_dispatcher import COMPLIANCE_DOCUMENT_TYPE


@pytest.fixture
def selector(session):
    return DocumentRequestSelector(session)


@pytest.fixture
def approve(worksheet_service, test_actor_id):
    def _approve(worksheet):
        for target, role in (
            (WorksheetStatus.IN_PRODUCTION, Role.TECHNICIAN),
            (WorksheetStatus.PENDING_REVIEW, Role.TECHNICIAN),
            (WorksheetStatus.APPROVED, Role.QC_INSPECTOR),
        ):
            worksheet_service.transition(worksheet.id, target, test_actor_id, role)

    return _approve


def test_no_requests_before_approval(selector, worksheet_service, editable_worksheet, test_actor_id):
    worksheet = editable_worksheet()
    worksheet_service.transition(
        worksheet.id, WorksheetStatus.IN_PRODUCTION, test_actor_id, Role.TECHNICIAN,
    )
    assert selector.pending_requests() == []


def test_approval_records_request(selector, approve, editable_worksheet, test_actor_id):
    worksheet = editable_worksheet()
    approve(worksheet)

    (request,) = selector.pending_requests()

    assert request.worksheet_id == worksheet.id
    assert request.document_type == COMPLIANCE_DOCUMENT_TYPE
    assert request.worksheet_number == worksheet.worksheet_number
    assert request.requested_by == test_actor_id
    assert request.requested_at is not None


def test_resume_after_seq(selector, approve, editable_worksheet):
    first, second = editable_worksheet(), editable_worksheet()
    approve(first)
    approve(second)

    requests = selector.pending_requests()
    assert [r.worksheet_id for r in requests] == [first.id, second.id]

    later = selector.pending_requests(after_seq=requests[0].seq)
    assert [r.worksheet_id for r in later] == [second.id]


def test_requests_for_worksheet(selector, approve, editable_worksheet):
    first, second = editable_worksheet(), editable_worksheet()
    approve(first)
    approve(second)

    assert [r.worksheet_id for r in selector.requests_for_worksheet(second.id)] == [second.id]


def test_reapproval_after_rejection_requests_again(
    selector, worksheet_service, editable_worksheet, test_actor_id,
):
    worksheet = editable_worksheet()
    for target, role in (
        (WorksheetStatus.IN_PRODUCTION, Role.TECHNICIAN),
        (WorksheetStatus.PENDING_REVIEW, Role.TECHNICIAN),
    ):
        worksheet_service.transition(worksheet.id, target, test_actor_id, role)
    worksheet_service.transition(
        worksheet.id, WorksheetStatus.REJECTED, test_actor_id, Role.QC_INSPECTOR,
        notes="margin open at 36 distal",
    )
    worksheet_service.transition(
        worksheet.id, WorksheetStatus.IN_PRODUCTION, test_actor_id, Role.TECHNICIAN,
    )
    worksheet_service.transition(
        worksheet.id, WorksheetStatus.PENDING_REVIEW, test_actor_id, Role.TECHNICIAN,
    )
    worksheet_service.transition(
        worksheet.id, WorksheetStatus.APPROVED, test_actor_id, Role.QC_INSPECTOR,
    )

    assert len(selector.requests_for_worksheet(worksheet.id)) == 1
