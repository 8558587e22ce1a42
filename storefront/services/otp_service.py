import secrets
from datetime import timedelta
from typing import Callable, Dict, Optional

from ..db.session import get_session
from ..errors import ValidationError
from ..models.otp_entry import OtpEntry
from ..utils.validators import utcnow
from .logging import log_event

Notifier = Callable[[str, str, str], None]
MAX_ATTEMPTS = 5


def log_notifier(email: str, purpose: str, code: str) -> None:
    # delivery is pluggable; the code itself is never logged
    log_event("info", "otp.issued", email=email, purpose=purpose)


class OtpService:
    """One-time codes keyed by purpose and email, each with an explicit expiry.

    Expiry is checked on read. An entry is deleted when it is used or found
    expired, or after too many wrong guesses, so a code can never be redeemed
    twice.
    """

    def __init__(
        self,
        session_factory=get_session,
        ttl_seconds: int = 600,
        notifier: Optional[Notifier] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._ttl = timedelta(seconds=ttl_seconds)
        self._notify = notifier or log_notifier

    @staticmethod
    def _key(email: str, purpose: str) -> str:
        return f"{purpose}:{email.strip().lower()}"

    def issue(self, email: str, purpose: str = "register", payload: Optional[Dict] = None) -> None:
        if not email or "@" not in email:
            raise ValidationError("A valid email is required", field="email")
        code = f"{secrets.randbelow(900000) + 100000}"
        key = self._key(email, purpose)
        with self._session_factory() as session:
            entry = session.get(OtpEntry, key)
            if entry is None:
                entry = OtpEntry(key=key)
                session.add(entry)
            entry.code = code
            entry.payload = payload or {}
            entry.expires_at = utcnow() + self._ttl
            entry.attempts = 0
            session.flush()
        self._notify(email, purpose, code)

    def verify(self, email: str, code: str, purpose: str = "register") -> Dict:
        if not email or not code:
            raise ValidationError("Email and OTP are required", field="otp")
        key = self._key(email, purpose)
        with self._session_factory() as session:
            entry = session.get(OtpEntry, key)
            if entry is None:
                raise ValidationError("No OTP request found for this email", field="email")
            if utcnow() > entry.expires_at:
                session.delete(entry)
                log_event("info", "otp.rejected", email=email, purpose=purpose, reason="expired")
                # commit the delete before reporting
                session.commit()
                raise ValidationError("OTP has expired", field="otp")
            if not secrets.compare_digest(str(code).strip(), entry.code):
                entry.attempts = (entry.attempts or 0) + 1
                exhausted = entry.attempts >= self._max_attempts
                if exhausted:
                    session.delete(entry)
                log_event(
                    "info", "otp.rejected", email=email, purpose=purpose, reason="mismatch", attempts=entry.attempts
                )
                session.commit()
                if exhausted:
                    raise ValidationError("Too many invalid attempts, request a new OTP", field="otp")
                raise ValidationError("Invalid OTP", field="otp")
            payload = dict(entry.payload or {})
            session.delete(entry)
            return payload
