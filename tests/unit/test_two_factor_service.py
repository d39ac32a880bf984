"""ABOUTME: Unit tests for the two-factor orchestration service
ABOUTME: Enrollment lifecycle, TOTP and backup code verification, disabling and audit entries"""

import uuid
from unittest.mock import patch

import pyotp
import pytest
from sqlalchemy.exc import OperationalError

from communityguard.domain.value_objects import EnrollmentStatus, TwoFactorAction, VerificationMethod
from communityguard.service_layer.two_factor_service import TwoFactorService
from tests.fakes import FakeUnitOfWork


@pytest.fixture
def service(fake_uow: FakeUnitOfWork, master_key: bytes) -> TwoFactorService:
    return TwoFactorService(fake_uow.factory, master_key=master_key, issuer="Community App")


@pytest.fixture
def enabled(service, user_id):
    """A user with two-factor enabled; returns the setup result."""
    setup = service.setup(user_id)
    assert service.enable(user_id, pyotp.TOTP(setup.secret).now()).success
    return setup


def audit_actions(fake_uow, user_id):
    return [(e.action, e.success) for e in fake_uow.two_factor_audit_logs.all() if e.user_id == user_id]


class TestSetup:
    def test_setup_returns_secret_qr_and_codes(self, service, user_id):
        result = service.setup(user_id, account_name="alice@example.com")

        assert result.success
        assert len(result.secret) == 52
        assert result.qr_code_url.startswith("data:image/png;base64,")
        assert "alice%40example.com" in result.otpauth_uri
        assert len(result.backup_codes) == 10

    def test_secret_is_stored_encrypted_and_pending(self, service, fake_uow, user_id):
        result = service.setup(user_id)

        enrollment = fake_uow.two_factor_enrollments.get(user_id)
        assert enrollment.status == EnrollmentStatus.PENDING
        assert enrollment.secret_encrypted
        assert result.secret not in enrollment.secret_encrypted

    def test_backup_codes_are_stored_hashed(self, service, fake_uow, user_id):
        result = service.setup(user_id)
        stored_hashes = {c.code_hash for c in fake_uow.user_backup_codes.all()}
        assert len(stored_hashes) == 10
        assert not stored_hashes & set(result.backup_codes)

    def test_setup_again_replaces_secret_and_codes(self, service, fake_uow, user_id):
        first = service.setup(user_id)
        second = service.setup(user_id)

        assert first.secret != second.secret
        assert len(list(fake_uow.user_backup_codes.get_unused_codes_for_user(user_id))) == 10

    def test_setup_when_enabled_is_refused(self, service, fake_uow, user_id, enabled):
        result = service.setup(user_id)
        assert not result.success
        assert result.secret == ""
        assert (TwoFactorAction.SETUP, False) in audit_actions(fake_uow, user_id)


class TestEnable:
    def test_enable_with_valid_code(self, service, fake_uow, user_id):
        setup = service.setup(user_id)

        result = service.enable(user_id, pyotp.TOTP(setup.secret).now())

        assert result.success
        assert fake_uow.two_factor_enrollments.get(user_id).is_enabled
        assert service.is_enabled(user_id)

    def test_enable_with_wrong_code(self, service, user_id):
        setup = service.setup(user_id)
        wrong = "000000" if pyotp.TOTP(setup.secret).now() != "000000" else "111111"

        result = service.enable(user_id, wrong)

        assert not result.success
        assert not service.is_enabled(user_id)

    def test_enable_without_setup(self, service, fake_uow, user_id):
        result = service.enable(user_id, "123456")
        assert not result.success
        assert (TwoFactorAction.ENABLE, False) in audit_actions(fake_uow, user_id)


class TestVerify:
    def test_verify_totp(self, service, user_id, enabled):
        result = service.verify(user_id, pyotp.TOTP(enabled.secret).now())
        assert result.success
        assert not result.backup_code_used

    def test_verify_backup_code_once(self, service, user_id, enabled):
        code = enabled.backup_codes[0]

        first = service.verify(user_id, code)
        second = service.verify(user_id, code)

        assert first.success
        assert first.backup_code_used
        assert not second.success

    def test_backup_code_surrounding_whitespace_is_ignored(self, service, user_id, enabled):
        assert service.verify(user_id, f"  {enabled.backup_codes[1]} ").success

    def test_verify_wrong_code(self, service, user_id, enabled):
        assert not service.verify(user_id, "ZZZZZZZZ").success

    def test_verify_without_enrollment(self, service, user_id):
        assert not service.verify(user_id, "123456").success

    def test_pending_enrollment_does_not_verify(self, service, user_id):
        setup = service.setup(user_id)
        assert not service.verify(user_id, pyotp.TOTP(setup.secret).now()).success

    def test_other_users_backup_code_fails(self, service, enabled):
        assert not service.verify(uuid.uuid4(), enabled.backup_codes[0]).success

    def test_every_attempt_is_audited(self, service, fake_uow, user_id, enabled):
        service.verify(user_id, pyotp.TOTP(enabled.secret).now())
        service.verify(user_id, "bad")
        service.verify(user_id, enabled.backup_codes[2])

        verifies = [e for e in fake_uow.two_factor_audit_logs.all() if e.action == TwoFactorAction.VERIFY]
        assert [(e.success, e.method) for e in verifies] == [
            (True, VerificationMethod.TOTP),
            (False, None),
            (True, VerificationMethod.BACKUP_CODE),
        ]

    def test_store_failure_propagates_instead_of_failing_open(self, service, fake_uow, user_id, enabled):
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch.object(fake_uow.two_factor_enrollments, "get", side_effect=error):
            with pytest.raises(OperationalError):
                service.verify(user_id, pyotp.TOTP(enabled.secret).now())


class TestDisableAndRegenerate:
    def test_disable_purges_secret_and_codes(self, service, fake_uow, user_id, enabled):
        result = service.disable(user_id, pyotp.TOTP(enabled.secret).now())

        assert result.success
        enrollment = fake_uow.two_factor_enrollments.get(user_id)
        assert enrollment.status == EnrollmentStatus.DISABLED
        assert enrollment.secret_encrypted is None
        assert list(fake_uow.user_backup_codes.all()) == []
        assert not service.is_enabled(user_id)

    def test_disable_with_backup_code(self, service, user_id, enabled):
        assert service.disable(user_id, enabled.backup_codes[0]).success

    def test_disable_requires_valid_code(self, service, user_id, enabled):
        assert not service.disable(user_id, "nope").success
        assert service.is_enabled(user_id)

    def test_disable_when_enrollment_disappears(self, service, fake_uow, user_id, enabled):
        enrollment = fake_uow.two_factor_enrollments.get(user_id)
        with patch.object(fake_uow.two_factor_enrollments, "get", side_effect=[enrollment, None]):
            result = service.disable(user_id, enabled.backup_codes[0])

        assert not result.success
        assert result.error == "Two-factor authentication is not enabled"
        assert service.is_enabled(user_id)

    def test_can_set_up_again_after_disable(self, service, user_id, enabled):
        service.disable(user_id, pyotp.TOTP(enabled.secret).now())
        assert service.setup(user_id).success

    def test_regenerate_replaces_codes(self, service, user_id, enabled):
        result = service.regenerate_backup_codes(user_id, pyotp.TOTP(enabled.secret).now())

        assert result.success
        assert len(result.backup_codes) == 10
        assert not service.verify(user_id, enabled.backup_codes[0]).success
        assert service.verify(user_id, result.backup_codes[0]).success

    def test_regenerate_requires_valid_code(self, service, user_id, enabled):
        result = service.regenerate_backup_codes(user_id, "bad")
        assert not result.success
        assert result.backup_codes == []


class TestStatus:
    def test_status_not_enrolled(self, service, user_id):
        status = service.status(user_id)
        assert not status.is_enabled
        assert status.backup_codes_remaining == 0

    def test_status_counts_remaining_codes(self, service, user_id, enabled):
        service.verify(user_id, enabled.backup_codes[0])

        status = service.status(user_id)

        assert status.is_enabled
        assert status.has_backup_codes
        assert status.backup_codes_remaining == 9
