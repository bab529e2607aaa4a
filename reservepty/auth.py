from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from .admission import NotFound, Requester
from .config import Config
from .tier_policy import DEFAULT_TIER
from .yaml_store import DuplicateRecordError, ReservePtyYamlRepository, UserRecord

logger = logging.getLogger(__name__)


class Unauthenticated(Exception):
    status_code = 401


class DuplicateEmail(ValueError):
    status_code = 400


class IdentityProvider:
    """Registers users, verifies passwords and resolves bearer tokens."""

    def __init__(
        self,
        repository: ReservePtyYamlRepository,
        secret_key: str = Config.SECRET_KEY,
        algorithm: str = Config.JWT_ALGORITHM,
        expires_days: int = Config.JWT_EXPIRES_DAYS,
    ) -> None:
        self.repository = repository
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_days = expires_days

    def register(
        self,
        email: str,
        password: str,
        name: str,
        family_id: str | None = None,
        now: datetime | None = None,
    ) -> tuple[UserRecord, str]:
        if not password:
            raise ValueError("password must not be empty")
        if family_id and self.repository.get_family(family_id) is None:
            raise NotFound("Family not found")

        try:
            user = self.repository.add_user(
                email=email,
                password_hash=generate_password_hash(password),
                name=name,
                family_id=family_id or None,
                tier=DEFAULT_TIER,
                now=now,
            )
        except DuplicateRecordError as error:
            raise DuplicateEmail(str(error)) from error

        logger.info("Registered user %s", user.user_id)
        return user, self.issue_token(user)

    def login(self, email: str, password: str) -> tuple[UserRecord, str]:
        user = self.repository.find_user_by_email(email) if email else None
        if user is None or not check_password_hash(user.password_hash, password or ""):
            raise Unauthenticated("Invalid credentials")
        return user, self.issue_token(user)

    def issue_token(self, user: UserRecord) -> str:
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": user.user_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(days=self.expires_days),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def resolve_user(self, token: str | None) -> UserRecord:
        if not token:
            raise Unauthenticated("No token provided")

        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.PyJWTError as error:
            raise Unauthenticated("Invalid token") from error

        user = self.repository.get_user(str(claims.get("sub", "")))
        if user is None:
            raise Unauthenticated("User not found")
        return user

    def resolve_requester(self, token: str | None) -> Requester:
        return Requester.from_user(self.resolve_user(token))


def extract_bearer(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None
