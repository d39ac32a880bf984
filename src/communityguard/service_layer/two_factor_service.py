"""ABOUTME: Two-factor authentication orchestration service
ABOUTME: Setup, enable, verify (TOTP or single-use backup code), disable, backup code regeneration and status"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from communityguard.domain.two_factor import TwoFactorEnrollment
from communityguard.domain.two_factor_audit import TwoFactorAuditLog
from communityguard.domain.user_backup_codes import UserBackupCode
from communityguard.domain.value_objects import TwoFactorAction, VerificationMethod
from communityguard.service_layer import totp_service
from communityguard.service_layer.results import OperationResult
from communityguard.service_layer.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from communityguard.translations import gettext as _

logger = structlog.get_logger(__name__)


@dataclass(slots=True, kw_only=True)
class TwoFactorSetupResult:
    success: bool
    error: str = ""
    secret: str = ""
    qr_code_url: str = ""
    otpauth_uri: str = ""
    backup_codes: list[str] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class TwoFactorVerifyResult:
    success: bool
    backup_code_used: bool = False
    error: str = ""


@dataclass(slots=True, kw_only=True)
class BackupCodesResult:
    success: bool
    error: str = ""
    backup_codes: list[str] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class TwoFactorStatus:
    is_enabled: bool
    has_backup_codes: bool
    backup_codes_remaining: int


class TwoFactorService:
    """Manages TOTP enrollment per user.

    Every public operation records an audit entry, success or not. Secrets and
    codes never appear in logs.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        master_key: bytes,
        issuer: str,
        backup_code_count: int = totp_service.BACKUP_CODE_COUNT,
    ) -> None:
        self.uow_factory = uow_factory
        self._master_key = master_key
        self.issuer = issuer
        self.backup_code_count = backup_code_count

    def __repr__(self) -> str:
        return f"<TwoFactorService issuer={self.issuer!r}>"

    def setup(self, user_id: uuid.UUID, account_name: str = "", ip_address: str = "") -> TwoFactorSetupResult:
        """Start (or restart) enrollment with a fresh secret and backup codes, pending confirmation."""
        with self.uow_factory() as uow:
            enrollment = uow.two_factor_enrollments.get(user_id)
            if enrollment is not None and enrollment.is_enabled:
                self._audit(uow, user_id, TwoFactorAction.SETUP, success=False, ip_address=ip_address)
                uow.commit()
                return TwoFactorSetupResult(success=False, error=_("Two-factor authentication is already enabled"))

            secret = totp_service.generate_totp_secret()
            encrypted = totp_service.encrypt_totp_secret(secret, user_id, self._master_key)
            if enrollment is None:
                uow.two_factor_enrollments.add(TwoFactorEnrollment(user_id=user_id, secret_encrypted=encrypted))
            else:
                enrollment.restart_setup(encrypted)

            backup_codes = self._replace_backup_codes(uow, user_id)
            self._audit(uow, user_id, TwoFactorAction.SETUP, success=True, ip_address=ip_address)
            uow.commit()

        uri = totp_service.provisioning_uri(secret, account_name or str(user_id), self.issuer)
        logger.info("Two-factor setup started", user_id=str(user_id))
        return TwoFactorSetupResult(
            success=True,
            secret=secret,
            otpauth_uri=uri,
            qr_code_url=totp_service.generate_qr_code_data_url(uri),
            backup_codes=backup_codes,
        )

    def enable(self, user_id: uuid.UUID, token: str, ip_address: str = "") -> OperationResult:
        """Confirm a pending enrollment with a TOTP code from the authenticator app."""
        with self.uow_factory() as uow:
            enrollment = uow.two_factor_enrollments.get(user_id)
            if enrollment is None or not enrollment.is_pending or not enrollment.secret_encrypted:
                self._audit(uow, user_id, TwoFactorAction.ENABLE, success=False, ip_address=ip_address)
                uow.commit()
                return OperationResult.failed(_("Two-factor setup has not been started"))

            secret = totp_service.decrypt_totp_secret(enrollment.secret_encrypted, user_id, self._master_key)
            if not totp_service.verify_totp_code(secret, token):
                self._audit(
                    uow, user_id, TwoFactorAction.ENABLE, success=False, method=VerificationMethod.TOTP, ip_address=ip_address
                )
                uow.commit()
                logger.warning("Two-factor enable rejected", user_id=str(user_id))
                return OperationResult.failed(_("Invalid verification code"))

            enrollment.enable()
            self._audit(
                uow, user_id, TwoFactorAction.ENABLE, success=True, method=VerificationMethod.TOTP, ip_address=ip_address
            )
            uow.commit()

        logger.info("Two-factor enabled", user_id=str(user_id))
        return OperationResult.ok(_("Two-factor authentication enabled"))

    def verify(self, user_id: uuid.UUID, token: str, ip_address: str = "") -> TwoFactorVerifyResult:
        with self.uow_factory() as uow:
            method = self._verify_enabled(uow, user_id, token, TwoFactorAction.VERIFY, ip_address)
            uow.commit()

        if method is None:
            return TwoFactorVerifyResult(success=False, error=_("Invalid verification code"))
        return TwoFactorVerifyResult(success=True, backup_code_used=method == VerificationMethod.BACKUP_CODE)

    def disable(self, user_id: uuid.UUID, token: str, ip_address: str = "") -> OperationResult:
        """Requires a successful verification first. The secret and backup codes are purged."""
        with self.uow_factory() as uow:
            method = self._verify_enabled(uow, user_id, token, TwoFactorAction.DISABLE, ip_address)
            if method is None:
                uow.commit()
                return OperationResult.failed(_("Invalid verification code"))

            enrollment = uow.two_factor_enrollments.get(user_id)
            if enrollment is None:
                uow.commit()
                return OperationResult.failed(_("Two-factor authentication is not enabled"))
            enrollment.disable()
            uow.user_backup_codes.delete_codes_for_user(user_id)
            uow.commit()

        logger.info("Two-factor disabled", user_id=str(user_id))
        return OperationResult.ok(_("Two-factor authentication disabled"))

    def regenerate_backup_codes(self, user_id: uuid.UUID, token: str, ip_address: str = "") -> BackupCodesResult:
        with self.uow_factory() as uow:
            method = self._verify_enabled(uow, user_id, token, TwoFactorAction.REGENERATE_BACKUP_CODES, ip_address)
            if method is None:
                uow.commit()
                return BackupCodesResult(success=False, error=_("Invalid verification code"))

            backup_codes = self._replace_backup_codes(uow, user_id)
            uow.commit()

        logger.info("Backup codes regenerated", user_id=str(user_id))
        return BackupCodesResult(success=True, backup_codes=backup_codes)

    def status(self, user_id: uuid.UUID) -> TwoFactorStatus:
        with self.uow_factory() as uow:
            enrollment = uow.two_factor_enrollments.get(user_id)
            is_enabled = enrollment is not None and enrollment.is_enabled
            remaining = len(list(uow.user_backup_codes.get_unused_codes_for_user(user_id))) if is_enabled else 0
        return TwoFactorStatus(is_enabled=is_enabled, has_backup_codes=remaining > 0, backup_codes_remaining=remaining)

    def is_enabled(self, user_id: uuid.UUID) -> bool:
        with self.uow_factory() as uow:
            enrollment = uow.two_factor_enrollments.get(user_id)
            return enrollment is not None and enrollment.is_enabled

    def _verify_enabled(
        self, uow: AbstractUnitOfWork, user_id: uuid.UUID, token: str, action: TwoFactorAction, ip_address: str
    ) -> VerificationMethod | None:
        """Try TOTP then a backup code against an enabled enrollment, auditing the attempt."""
        token = (token or "").strip()
        enrollment = uow.two_factor_enrollments.get(user_id)
        method: VerificationMethod | None = None

        if enrollment is not None and enrollment.is_enabled and enrollment.secret_encrypted and token:
            secret = totp_service.decrypt_totp_secret(enrollment.secret_encrypted, user_id, self._master_key)
            if totp_service.verify_totp_code(secret, token):
                method = VerificationMethod.TOTP
            else:
                code_hash = totp_service.hash_backup_code(token, user_id, self._master_key)
                if uow.user_backup_codes.consume(user_id, code_hash, datetime.now(UTC)):
                    method = VerificationMethod.BACKUP_CODE

        self._audit(uow, user_id, action, success=method is not None, method=method, ip_address=ip_address)
        if method is None:
            logger.warning("Two-factor verification failed", user_id=str(user_id), action=action.value)
        else:
            logger.info("Two-factor verification succeeded", user_id=str(user_id), action=action.value, method=method.value)
        return method

    def _replace_backup_codes(self, uow: AbstractUnitOfWork, user_id: uuid.UUID) -> list[str]:
        uow.user_backup_codes.delete_codes_for_user(user_id)
        codes = totp_service.generate_backup_codes(self.backup_code_count)
        for code in codes:
            code_hash = totp_service.hash_backup_code(code, user_id, self._master_key)
            uow.user_backup_codes.add(UserBackupCode(user_id=user_id, code_hash=code_hash))
        return codes

    def _audit(
        self,
        uow: AbstractUnitOfWork,
        user_id: uuid.UUID,
        action: TwoFactorAction,
        success: bool,
        method: VerificationMethod | None = None,
        ip_address: str = "",
    ) -> None:
        uow.two_factor_audit_logs.add(
            TwoFactorAuditLog(user_id=user_id, action=action, success=success, method=method, ip_address=ip_address)
        )
