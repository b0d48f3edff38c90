from datetime import timedelta

import pytest
from sqlalchemy import Update
from sqlalchemy.exc import OperationalError
from tenacity import wait_none

from models.verification_code import VerificationCode
from services import verification_service
from services.user_service import set_user_active
from services.verification_service import (
    INVALID_CODE_MESSAGE,
    claim_code,
    generate_verification_code,
    issue_verification_code,
    purge_verification_codes,
    verify_code,
)
from utils.clock import utcnow
from utils.errors import NotFoundError, ValidationError

from conftest import FakeEmailService, TestingSessionLocal


def test_generated_code_is_six_digits():
    for _ in range(500):
        code = generate_verification_code()
        assert len(code) == 6
        assert code.isdigit()


def test_generated_code_keeps_leading_zeros(monkeypatch):
    monkeypatch.setattr(verification_service.secrets, "randbelow", lambda n: 42)
    assert generate_verification_code() == "000042"


@pytest.mark.parametrize("email", [
    None,
    "",
    "   ",
    "a@gmail.com",
    "a@nextest.com.br.evil.com",
    "a@nextest.com",
    "@nextest.com.br",
])
def test_issue_rejects_foreign_or_missing_email(db, make_user, email_service, email):
    make_user()
    with pytest.raises(ValidationError):
        issue_verification_code(db, email, email_service)
    assert db.query(VerificationCode).count() == 0
    assert email_service.sent == []


def test_issue_unknown_user_is_not_found(db, email_service):
    with pytest.raises(NotFoundError):
        issue_verification_code(db, "ghost@nextest.com.br", email_service)
    assert db.query(VerificationCode).count() == 0


def test_issue_inactive_user_is_not_found(db, make_user, email_service):
    make_user(is_active=False)
    with pytest.raises(NotFoundError):
        issue_verification_code(db, "a@nextest.com.br", email_service)


def test_issue_persists_pending_code_and_emails_it(db, make_user, email_service):
    make_user()
    now = utcnow()
    result = issue_verification_code(db, "  A@Nextest.com.br ", email_service, now=now)

    rows = db.query(VerificationCode).all()
    assert len(rows) == 1
    assert rows[0].email == "a@nextest.com.br"
    assert rows[0].code == result.code
    assert rows[0].used is False
    assert rows[0].expires_at == now + timedelta(minutes=10)
    assert result.delivered
    assert email_service.sent == [("a@nextest.com.br", result.code)]


def test_new_code_supersedes_pending_one(db, make_user, email_service):
    make_user()
    first = issue_verification_code(db, "a@nextest.com.br", email_service)
    second = issue_verification_code(db, "a@nextest.com.br", email_service)

    db.expire_all()
    pending = db.query(VerificationCode).filter_by(used=False).all()
    assert [row.code for row in pending] == [second.code]
    if first.code != second.code:
        with pytest.raises(ValidationError):
            verify_code(db, "a@nextest.com.br", first.code)


def test_delivery_failure_is_a_warning(db, make_user):
    make_user()
    mailer = FakeEmailService(error="connection refused")
    result = issue_verification_code(db, "a@nextest.com.br", mailer)

    assert not result.delivered
    assert result.warning.reason == "email_delivery_failed"
    assert "connection refused" in result.warning.detail
    assert db.query(VerificationCode).count() == 1


def test_unconfigured_mailer_is_a_warning(db, make_user):
    make_user()
    result = issue_verification_code(db, "a@nextest.com.br", FakeEmailService(configured=False))
    assert result.warning.reason == "email_not_configured"


def test_verify_consumes_code_once(db, make_user, email_service):
    user = make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)

    result = verify_code(db, "a@nextest.com.br", issued.code)
    assert result.user.id == user.id
    db.expire_all()
    assert db.query(VerificationCode).one().used is True

    with pytest.raises(ValidationError) as exc:
        verify_code(db, "a@nextest.com.br", issued.code)
    assert exc.value.message == INVALID_CODE_MESSAGE


def test_expired_code_never_verifies(db, make_user, email_service):
    make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service, now=utcnow() - timedelta(minutes=11))

    with pytest.raises(ValidationError) as exc:
        verify_code(db, "a@nextest.com.br", issued.code)
    assert exc.value.message == INVALID_CODE_MESSAGE
    db.expire_all()
    assert db.query(VerificationCode).one().used is False


def test_code_valid_until_expiry(db, make_user, email_service):
    make_user()
    now = utcnow()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service, now=now)

    with pytest.raises(ValidationError):
        verify_code(db, "a@nextest.com.br", issued.code, now=now + timedelta(minutes=10))
    assert verify_code(db, "a@nextest.com.br", issued.code, now=now + timedelta(minutes=9, seconds=59)).user


def test_wrong_and_expired_codes_share_the_message(db, make_user, email_service):
    make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service, now=utcnow() - timedelta(hours=1))
    wrong = "111111" if issued.code != "111111" else "222222"

    with pytest.raises(ValidationError) as expired:
        verify_code(db, "a@nextest.com.br", issued.code)
    with pytest.raises(ValidationError) as mismatched:
        verify_code(db, "a@nextest.com.br", wrong)
    assert expired.value.message == mismatched.value.message


def test_code_is_bound_to_its_email(db, make_user, email_service):
    make_user()
    make_user(email="b@nextest.com.br", name="Bruno")
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)

    with pytest.raises(ValidationError):
        verify_code(db, "b@nextest.com.br", issued.code)


@pytest.mark.parametrize("code", [None, "", "12345", "1234567", "12a456", " 12 34"])
def test_malformed_code_is_rejected(db, code):
    with pytest.raises(ValidationError):
        verify_code(db, "a@nextest.com.br", code)


def test_verify_without_user_returns_none(db, make_user, email_service):
    user = make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)
    db.delete(user)
    db.commit()

    result = verify_code(db, "a@nextest.com.br", issued.code)
    assert result.user is None


def test_only_one_concurrent_claim_wins(db, make_user, email_service):
    make_user()
    issue_verification_code(db, "a@nextest.com.br", email_service)

    first, second = TestingSessionLocal(), TestingSessionLocal()
    try:
        # Both readers see the code as pending before either writes
        row_a = first.query(VerificationCode).filter_by(used=False).one()
        row_b = second.query(VerificationCode).filter_by(used=False).one()
        assert row_a.id == row_b.id

        outcomes = [claim_code(first, row_a.id), claim_code(second, row_b.id)]
    finally:
        first.close()
        second.close()
    assert sorted(outcomes) == [False, True]


def test_lost_claim_reports_invalid_code(db, make_user, email_service, monkeypatch):
    make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)
    monkeypatch.setattr(verification_service, "claim_code", lambda db, code_id: False)

    with pytest.raises(ValidationError) as exc:
        verify_code(db, "a@nextest.com.br", issued.code)
    assert exc.value.message == INVALID_CODE_MESSAGE


def test_purge_removes_only_stale_codes(db, make_user, email_service):
    make_user()
    now = utcnow()
    old = now - timedelta(days=10)
    db.add_all([
        VerificationCode(email="a@nextest.com.br", code="111111", created_at=old, expires_at=old + timedelta(minutes=10), used=False),
        VerificationCode(email="a@nextest.com.br", code="222222", created_at=old, expires_at=old + timedelta(minutes=10), used=True),
        VerificationCode(email="a@nextest.com.br", code="333333", created_at=now, expires_at=now + timedelta(minutes=10), used=True),
        VerificationCode(email="a@nextest.com.br", code="444444", created_at=now, expires_at=now + timedelta(minutes=10), used=False),
    ])
    db.commit()

    deleted = purge_verification_codes(db, now - timedelta(days=7), now=now)

    assert deleted == 2
    assert sorted(row.code for row in db.query(VerificationCode).all()) == ["333333", "444444"]


def test_verify_for_deactivated_user_consumes_code_without_user(db, make_user, email_service):
    make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)
    set_user_active(db, "a@nextest.com.br", False)

    result = verify_code(db, "a@nextest.com.br", issued.code)
    assert result.user is None
    db.expire_all()
    assert db.query(VerificationCode).one().used is True


def test_failure_after_claim_is_not_retried(db, make_user, email_service, monkeypatch):
    make_user()
    issued = issue_verification_code(db, "a@nextest.com.br", email_service)
    real_claim = verification_service.claim_code
    calls = []

    def claim_then_drop_connection(session, code_id):
        calls.append(code_id)
        real_claim(session, code_id)
        raise OperationalError("UPDATE", {}, Exception("connection lost"))

    monkeypatch.setattr(verification_service, "claim_code", claim_then_drop_connection)

    with pytest.raises(OperationalError):
        verify_code(db, "a@nextest.com.br", issued.code)
    assert len(calls) == 1
    db.expire_all()
    assert db.query(VerificationCode).one().used is True


def test_failed_supersede_is_rolled_back_and_retried(db, make_user, email_service, monkeypatch):
    make_user()
    issue_verification_code(db, "a@nextest.com.br", email_service)
    monkeypatch.setattr(
        verification_service, "_store_code", verification_service._store_code.retry_with(wait=wait_none())
    )

    real_execute, real_rollback = db.execute, db.rollback
    failures, rollbacks = [], []

    def flaky_execute(statement, *args, **kwargs):
        if isinstance(statement, Update) and not failures:
            failures.append(statement)
            raise OperationalError("UPDATE", {}, Exception("connection reset"))
        return real_execute(statement, *args, **kwargs)

    def spy_rollback():
        rollbacks.append(True)
        real_rollback()

    monkeypatch.setattr(db, "execute", flaky_execute)
    monkeypatch.setattr(db, "rollback", spy_rollback)

    second = issue_verification_code(db, "a@nextest.com.br", email_service)

    assert len(failures) == 1
    assert rollbacks
    monkeypatch.undo()
    db.expire_all()
    pending = db.query(VerificationCode).filter_by(used=False).all()
    assert [row.code for row in pending] == [second.code]


def test_lookup_matches_mixed_case_stored_email(db, make_user, email_service):
    user = make_user(email="Ana.Souza@Nextest.com.br")
    issued = issue_verification_code(db, "ana.souza@nextest.com.br", email_service)

    assert verify_code(db, "ana.souza@nextest.com.br", issued.code).user.id == user.id
