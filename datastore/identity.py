from __future__ import annotations
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Literal, Optional
from uuid import uuid4

from passlib.context import CryptContext

from settings import get_settings

logger = logging.getLogger(__name__)

OtpKind = Literal["signup", "recovery"]

MAX_OTP_ATTEMPTS = 5

_VERIFY_PATHS = {"signup": "/auth/otp/verify", "recovery": "/auth/password-reset/verify"}

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class IdentityError(Exception):
    """The provider rejected the request; the message is safe to show."""


class AuthenticationError(IdentityError):
    """The session token is missing, unknown or signed out."""


@dataclass
class UserRecord:
    id: str
    email: str
    password_hash: str
    email_confirmed: bool
    created_at: datetime
    full_name: Optional[str] = None

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "password_hash": self.password_hash,
            "email_confirmed": self.email_confirmed,
            "created_at": self.created_at.isoformat(),
            "full_name": self.full_name,
        }

    @classmethod
    def from_record(cls, payload: dict) -> "UserRecord":
        return cls(
            id=payload["id"],
            email=payload["email"],
            password_hash=payload["password_hash"],
            email_confirmed=bool(payload["email_confirmed"]),
            created_at=datetime.fromisoformat(payload["created_at"]),
            full_name=payload.get("full_name"),
        )


@dataclass(frozen=True)
class OtpDelivery:
    """A one-time code that would have been emailed."""

    email: str
    code: str
    kind: OtpKind
    expires_at: datetime


@dataclass(frozen=True)
class Session:
    token: str
    user_id: str


class MockIdentityProvider:
    """In-process stand-in for the hosted auth provider.

    Users are persisted when ``persistence_path`` is set; sessions and pending
    codes live in memory only.
    """

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        otp_ttl_seconds: int = 3600,
        clock: Optional[Callable[[], datetime]] = None,
        app_url: str = "http://localhost:8000",
    ) -> None:
        self.persistence_path = persistence_path
        self.app_url = app_url.rstrip("/")
        self.otp_ttl = timedelta(seconds=otp_ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._users: Dict[str, UserRecord] = {}
        self._pending: Dict[tuple[str, OtpKind], OtpDelivery] = {}
        self._failed_attempts: Dict[tuple[str, OtpKind], int] = {}
        self._sessions: Dict[str, Session] = {}
        self.outbox: List[OtpDelivery] = []
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def sign_up(self, email: str, password: str) -> UserRecord:
        email = _normalize(email)
        with self._lock:
            if email in self._users:
                raise IdentityError("User already registered")
            user = UserRecord(
                id=str(uuid4()),
                email=email,
                password_hash=pwd_context.hash(password),
                email_confirmed=False,
                created_at=self._clock(),
            )
            self._users[email] = user
            self._persist()
            self._issue_otp(email, "signup")
        logger.info("User registered", extra={"email": email})
        return user

    def resend_signup_otp(self, email: str) -> None:
        email = _normalize(email)
        with self._lock:
            user = self._users.get(email)
            if user is None or user.email_confirmed:
                raise IdentityError("No pending signup for this email")
            self._issue_otp(email, "signup")

    def send_recovery_otp(self, email: str) -> None:
        email = _normalize(email)
        with self._lock:
            if email not in self._users:
                # Unknown addresses get the same response as known ones.
                logger.info("Recovery requested for unknown email", extra={"email": email})
                return
            self._issue_otp(email, "recovery")

    def verify_otp(self, email: str, code: str, kind: OtpKind) -> tuple[UserRecord, Session]:
        email = _normalize(email)
        with self._lock:
            key = (email, kind)
            pending = self._pending.get(key)
            if pending is None:
                raise IdentityError("Token has expired or is invalid")
            if not secrets.compare_digest(pending.code, code):
                self._record_failed_attempt(key)
                raise IdentityError("Token has expired or is invalid")
            self._discard_otp(key)
            if pending.expires_at < self._clock():
                raise IdentityError("Token has expired or is invalid")

            user = self._users[email]
            if kind == "signup" and not user.email_confirmed:
                user.email_confirmed = True
                self._persist()
            session = self._open_session(user)
        logger.info("OTP verified", extra={"email": email, "reason": kind})
        return user, session

    def sign_in(self, email: str, password: str) -> tuple[UserRecord, Session]:
        email = _normalize(email)
        with self._lock:
            user = self._users.get(email)
            if user is None or not pwd_context.verify(password, user.password_hash):
                raise IdentityError("Invalid login credentials")
            if not user.email_confirmed:
                raise IdentityError("Email not confirmed")
            return user, self._open_session(user)

    def get_user(self, token: str) -> UserRecord:
        with self._lock:
            return self._user_for(token)

    def check_password(self, token: str, password: str) -> bool:
        with self._lock:
            user = self._user_for(token)
            return pwd_context.verify(password, user.password_hash)

    def update_password(self, token: str, password: str) -> None:
        with self._lock:
            user = self._user_for(token)
            if pwd_context.verify(password, user.password_hash):
                raise IdentityError("New password should be different from the old password.")
            user.password_hash = pwd_context.hash(password)
            self._persist()
        logger.info("Password updated", extra={"email": user.email})

    def update_profile(self, token: str, full_name: Optional[str]) -> UserRecord:
        with self._lock:
            user = self._user_for(token)
            user.full_name = full_name
            self._persist()
            return user

    def sign_out(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def _issue_otp(self, email: str, kind: OtpKind) -> None:
        delivery = OtpDelivery(
            email=email,
            code=f"{secrets.randbelow(10**6):06d}",
            kind=kind,
            expires_at=self._clock() + self.otp_ttl,
        )
        self._pending[(email, kind)] = delivery
        self._failed_attempts.pop((email, kind), None)
        self.outbox.append(delivery)
        # Mock mailer: the log line stands in for the email body.
        logger.info(
            "OTP sent",
            extra={
                "email": email,
                "reason": kind,
                "otp": delivery.code,
                "link": f"{self.app_url}{_VERIFY_PATHS[kind]}",
            },
        )

    def _record_failed_attempt(self, key: tuple[str, OtpKind]) -> None:
        attempts = self._failed_attempts.get(key, 0) + 1
        if attempts >= MAX_OTP_ATTEMPTS:
            self._discard_otp(key)
            logger.warning(
                "OTP invalidated after failed attempts",
                extra={"email": key[0], "reason": key[1]},
            )
            return
        self._failed_attempts[key] = attempts

    def _discard_otp(self, key: tuple[str, OtpKind]) -> None:
        self._pending.pop(key, None)
        self._failed_attempts.pop(key, None)

    def _open_session(self, user: UserRecord) -> Session:
        session = Session(token=secrets.token_urlsafe(32), user_id=user.id)
        self._sessions[session.token] = session
        return session

    def _user_for(self, token: str) -> UserRecord:
        session = self._sessions.get(token)
        if session is None:
            raise AuthenticationError("Unauthorized")
        for user in self._users.values():
            if user.id == session.user_id:
                return user
        raise AuthenticationError("Unauthorized")

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {email: user.to_record() for email, user in self._users.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for email, payload in data.items():
            self._users[email] = UserRecord.from_record(payload)


def _normalize(email: str) -> str:
    return email.strip().lower()


@lru_cache
def build_default_identity_provider(path: Optional[str] = None) -> MockIdentityProvider:
    settings = get_settings()
    identity_path = settings.identity_data_path if path is None else path
    persistence = Path(identity_path) if identity_path else None
    return MockIdentityProvider(
        persistence_path=persistence,
        otp_ttl_seconds=settings.otp_ttl_seconds,
        app_url=settings.app_url,
    )
