"""ABOUTME: TOTP primitives for two-factor authentication
ABOUTME: Handles secret generation, encryption at rest, QR codes, code checks and backup code hashing"""

import base64
import hashlib
import hmac
import io
import secrets
import uuid
from datetime import UTC, datetime

import pyotp
import qrcode
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

# RFC 6238 defaults: SHA-1, 6 digits, 30 second steps
TOTP_DIGITS = 6
TOTP_PERIOD_SECONDS = 30
# exactly one step either side of now, to bound the replay window
TOTP_DRIFT_OFFSETS = (-1, 0, 1)

BACKUP_CODE_COUNT = 10


def _derive_key(master_key: bytes, user_id: uuid.UUID, purpose: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"communityguard-" + purpose,
        info=user_id.bytes,
    )
    return hkdf.derive(master_key)


def derive_user_encryption_key(master_key: bytes, user_id: uuid.UUID) -> bytes:
    """Derive a user-specific encryption key from the master key using HKDF.

    This ensures each user has a different encryption key even with the same master key.
    """
    return _derive_key(master_key, user_id, b"totp-encryption")


def generate_totp_secret() -> str:
    """Generate a 256-bit random TOTP secret, base32 encoded without padding."""
    return base64.b32encode(secrets.token_bytes(32)).decode("ascii").rstrip("=")


def encrypt_totp_secret(secret: str, user_id: uuid.UUID, master_key: bytes) -> str:
    """Encrypt TOTP secret for storage using Fernet symmetric encryption."""
    fernet_key = base64.urlsafe_b64encode(derive_user_encryption_key(master_key, user_id))
    return Fernet(fernet_key).encrypt(secret.encode("utf-8")).decode("ascii")


def decrypt_totp_secret(encrypted_secret: str, user_id: uuid.UUID, master_key: bytes) -> str:
    """Decrypt a stored TOTP secret. Raises cryptography's InvalidToken on a wrong key."""
    fernet_key = base64.urlsafe_b64encode(derive_user_encryption_key(master_key, user_id))
    return Fernet(fernet_key).decrypt(encrypted_secret.encode("ascii")).decode("utf-8")


def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer)


def generate_qr_code_data_url(uri: str) -> str:
    """Render an otpauth:// URI as a PNG data URL (data:image/png;base64,...)."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer)
    img_base64 = base64.b64encode(buffer.getvalue()).decode("ascii")

    return f"data:image/png;base64,{img_base64}"


def looks_like_totp_code(code: str) -> bool:
    return len(code) == TOTP_DIGITS and code.isdigit()


def verify_totp_code(secret: str, code: str, at: datetime | None = None) -> bool:
    """Check a code against the current step and the steps immediately either side."""
    code = code.strip()
    if not looks_like_totp_code(code):
        return False
    at = at or datetime.now(UTC)
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_PERIOD_SECONDS)
    matched = False
    # every offset is checked so timing does not reveal which step matched
    for offset in TOTP_DRIFT_OFFSETS:
        expected = totp.at(at, counter_offset=offset)
        matched |= hmac.compare_digest(expected.encode(), code.encode())
    return matched


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    """Generate backup codes: 4 random bytes each, as 8 upper-case hex characters."""
    return [secrets.token_bytes(4).hex().upper() for _ in range(count)]


def hash_backup_code(code: str, user_id: uuid.UUID, master_key: bytes) -> str:
    """Keyed hash of a backup code.

    Deterministic per user so a code can be matched and consumed with a single
    conditional update.
    """
    key = _derive_key(master_key, user_id, b"backup-codes")
    return hmac.new(key, code.strip().encode("utf-8"), hashlib.sha256).hexdigest()
