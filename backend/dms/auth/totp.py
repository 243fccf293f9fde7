import re
from dataclasses import dataclass
from datetime import datetime

import pyotp
from cryptography.fernet import Fernet, InvalidToken

from dms.core.config import settings

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
_CODE_RE = re.compile(r"[0-9]{6}")


@dataclass(frozen=True)
class TotpEnrollment:
    secret: str
    qr_payload: str


class TotpEngine:
    def __init__(self, *, issuer: str | None = None, valid_window: int | None = None) -> None:
        self.issuer = issuer or settings.TOTP_ISSUER
        self.valid_window = settings.TOTP_VALID_WINDOW if valid_window is None else valid_window

    def generate_secret(self, label: str) -> TotpEnrollment:
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).provisioning_uri(
            name=label, issuer_name=self.issuer
        )
        return TotpEnrollment(secret=secret, qr_payload=uri)

    def verify_code(
        self,
        secret: str,
        code: str | None,
        window: int | None = None,
        *,
        for_time: datetime | None = None,
    ) -> bool:
        if not code or not _CODE_RE.fullmatch(code):
            return False
        if not secret:
            return False
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        try:
            return totp.verify(
                code,
                for_time=for_time,
                valid_window=self.valid_window if window is None else window,
            )
        except (ValueError, TypeError):
            # Secret is not valid base32.
            return False


class TotpSecretBox:
    """Seals TOTP secrets for storage. Without a key secrets pass through as plaintext."""

    def __init__(self, key: str | None = None) -> None:
        self._fernet = Fernet(key.encode("utf-8")) if key else None

    @classmethod
    def from_settings(cls) -> "TotpSecretBox":
        return cls(settings.TOTP_ENCRYPTION_KEY)

    @property
    def encrypts(self) -> bool:
        return self._fernet is not None

    def seal(self, secret: str) -> str:
        if self._fernet is None:
            return secret
        return self._fernet.encrypt(secret.encode("utf-8")).decode("utf-8")

    def open(self, stored: str) -> str | None:
        if self._fernet is None:
            return stored
        try:
            return self._fernet.decrypt(stored.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            return None
