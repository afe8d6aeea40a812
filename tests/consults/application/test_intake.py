"""Application tests for consult intake — one record set per (business, customer, product)."""

import threading

import pytest
from consults.approval.approval import ApprovalStatus, ConsultApproval
from consults.consultation.consultation import Consultation, ConsultationStatus
from consults.errors import InvalidIntake
from consults.intake.deduplication import SubmitConsultRequest, submit_consult_request
from consults.intake.submission import ConsultSubmission, SubmissionStatus
from consults.patient.patient import Patient
from protean import current_domain


def _count(aggregate_cls):
    return len(current_domain.repository_for(aggregate_cls)._dao.query.all().items)


def _counts():
    return {cls.__name__: _count(cls) for cls in (ConsultSubmission, Consultation, ConsultApproval, Patient)}


class TestSubmitConsultRequest:
    def test_creates_one_of_each_record(self, intake):
        result = intake()
        assert result.created is True
        assert _counts() == {"ConsultSubmission": 1, "Consultation": 1, "ConsultApproval": 1, "Patient": 1}

    def test_records_are_linked(self, intake):
        result = intake()
        submission = current_domain.repository_for(ConsultSubmission).get(result.submission_id)
        consultation = current_domain.repository_for(Consultation).get(result.consultation_id)
        approval = current_domain.repository_for(ConsultApproval).get(result.approval_id)

        assert submission.consultation_id == result.consultation_id
        assert submission.status == SubmissionStatus.PENDING.value
        assert consultation.status == ConsultationStatus.DRAFT.value
        assert consultation.mode == "async"
        assert consultation.requested_product_id == "prod-rx"
        assert consultation.originating_submission_id == result.submission_id
        assert consultation.patient_id == result.patient_id
        assert approval.status == ApprovalStatus.PENDING.value
        assert approval.consultation_id == result.consultation_id

    def test_email_is_normalized(self, intake):
        result = intake(email="  Pat.Doe@Example.COM ")
        submission = current_domain.repository_for(ConsultSubmission).get(result.submission_id)
        assert submission.email == "pat.doe@example.com"

    def test_answers_are_stored(self, intake):
        result = intake(eligibility_answers='{"pregnant": false}')
        submission = current_domain.repository_for(ConsultSubmission).get(result.submission_id)
        assert submission.answers() == {"pregnant": False}

    def test_duplicate_returns_existing_records(self, intake):
        first = intake()
        second = intake()
        assert second.created is False
        assert (second.submission_id, second.consultation_id, second.approval_id, second.patient_id) == (
            first.submission_id,
            first.consultation_id,
            first.approval_id,
            first.patient_id,
        )
        assert _counts()["ConsultSubmission"] == 1

    def test_different_product_gets_its_own_submission_but_shares_patient(self, intake):
        first = intake(product_id="prod-a")
        second = intake(product_id="prod-b")
        assert first.submission_id != second.submission_id
        assert first.patient_id == second.patient_id
        assert _counts() == {"ConsultSubmission": 2, "Consultation": 2, "ConsultApproval": 2, "Patient": 1}

    def test_audit_entry_only_for_new_submissions(self, intake, audit_log):
        intake()
        intake()
        assert audit_log.actions().count("consult_submission.create") == 1


class TestIntakeValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"product_id": None},
            {"customer_id": None},
            {"email": "not-an-email"},
            {"first_name": " "},
            {"eligibility_answers": "[1, 2]"},
            {"eligibility_answers": {"deep": {"deeper": {"deepest": 1}}}},
        ],
    )
    def test_invalid_request_writes_nothing(self, intake, overrides):
        with pytest.raises(InvalidIntake):
            intake(**overrides)
        assert _counts() == {"ConsultSubmission": 0, "Consultation": 0, "ConsultApproval": 0, "Patient": 0}


class TestSubmitCommand:
    def test_command_returns_intake_result(self):
        result = current_domain.process(
            SubmitConsultRequest(
                business_id="biz-cmd",
                customer_id="cust-cmd",
                product_id="prod-cmd",
                email="cmd@example.com",
                first_name="Cam",
                last_name="Dee",
                eligibility_answers='{"age_over_18": true}',
            ),
            asynchronous=False,
        )
        assert result["created"] is True
        assert set(result) == {"submission_id", "consultation_id", "approval_id", "patient_id", "created"}


class TestConcurrentIntake:
    def test_fifty_identical_requests_create_one_record_set(self):
        from consults.domain import consults

        payload = {
            "business_id": "biz-race",
            "customer_id": "cust-race",
            "product_id": "prod-race",
            "email": "race@example.com",
            "first_name": "Ray",
            "last_name": "Sing",
            "eligibility_answers": {"age_over_18": True},
        }
        barrier = threading.Barrier(50)
        results, errors = [], []
        lock = threading.Lock()

        def worker():
            with consults.domain_context():
                barrier.wait()
                try:
                    result = submit_consult_request(**payload)
                except Exception as exc:  # collected and asserted below
                    with lock:
                        errors.append(exc)
                    return
                with lock:
                    results.append(result)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert len(results) == 50
        assert len({r.submission_id for r in results}) == 1
        assert len({r.consultation_id for r in results}) == 1
        assert len({r.approval_id for r in results}) == 1
        assert len({r.patient_id for r in results}) == 1
        assert sum(r.created for r in results) == 1
        assert _counts() == {"ConsultSubmission": 1, "Consultation": 1, "ConsultApproval": 1, "Patient": 1}
