import logging
import re
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Literal, Protocol

logger = logging.getLogger(__name__)

PAN_RE = re.compile(r"[A-Z]{5}[0-9]{4}[A-Z]")


@dataclass(frozen=True)
class PanVerificationResult:
    status: Literal["VERIFIED", "FAILED", "PENDING"]
    masked_pan: str
    ref_id: str
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AadhaarOtpResult:
    txn_id: str


@dataclass(frozen=True)
class AadhaarVerifyResult:
    status: Literal["VERIFIED", "FAILED"]
    last4: str
    ref_id: str
    details: dict = field(default_factory=dict)


class PanProvider(Protocol):
    def verify_pan(self, pan: str, name: str | None = None) -> PanVerificationResult: ...


class AadhaarProvider(Protocol):
    def init_aadhaar_otp(self, aadhaar_number: str) -> AadhaarOtpResult: ...

    def verify_aadhaar_otp(self, txn_id: str, otp: str) -> AadhaarVerifyResult: ...


def mask_pan(pan: str) -> str:
    if len(pan) < 10:
        return "X" * len(pan)
    return f"{pan[:3]}XX{pan[5:7]}XX{pan[-1]}"


class MockKycProvider:
    """Development stand-in for the PAN and Aadhaar verification services.

    Every OTP is ``123456`` and expires after five minutes.
    """

    FIXED_OTP = "123456"
    OTP_TTL = timedelta(minutes=5)

    def __init__(self, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self._otp_sessions: dict[str, tuple[str, str, datetime]] = {}
        self._lock = threading.Lock()
        self.clock = clock

    def verify_pan(self, pan: str, name: str | None = None) -> PanVerificationResult:
        pan = (pan or "").strip().upper()
        valid = bool(PAN_RE.fullmatch(pan)) and bool(name) and len(name.strip()) > 2
        return PanVerificationResult(
            status="VERIFIED" if valid else "FAILED",
            masked_pan=mask_pan(pan),
            ref_id=f"PAN_{secrets.token_hex(8)}",
            details={"provider": "mock"},
        )

    def init_aadhaar_otp(self, aadhaar_number: str) -> AadhaarOtpResult:
        txn_id = f"TXN_{secrets.token_hex(8)}"
        now = self.clock()
        with self._lock:
            # Drop abandoned sessions.
            for stale in [t for t, s in self._otp_sessions.items() if s[2] < now]:
                del self._otp_sessions[stale]
            self._otp_sessions[txn_id] = (
                aadhaar_number,
                self.FIXED_OTP,
                now + self.OTP_TTL,
            )
        logger.debug("Mock Aadhaar OTP issued txn_id=%s", txn_id)
        return AadhaarOtpResult(txn_id=txn_id)

    def verify_aadhaar_otp(self, txn_id: str, otp: str) -> AadhaarVerifyResult:
        with self._lock:
            session = self._otp_sessions.get(txn_id)
            if session is None or session[2] < self.clock():
                self._otp_sessions.pop(txn_id, None)
                return AadhaarVerifyResult(status="FAILED", last4="", ref_id="")

            aadhaar_number, expected, _ = session
            valid = secrets.compare_digest(expected, otp or "")
            if valid:
                self._otp_sessions.pop(txn_id, None)

        return AadhaarVerifyResult(
            status="VERIFIED" if valid else "FAILED",
            last4=aadhaar_number[-4:],
            ref_id=f"AADHAAR_{secrets.token_hex(8)}" if valid else "",
            details={"provider": "mock"},
        )


_default_provider = MockKycProvider()


def get_pan_provider() -> PanProvider:
    return _default_provider


def get_aadhaar_provider() -> AadhaarProvider:
    return _default_provider
