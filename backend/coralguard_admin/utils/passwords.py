"""Password hashing"""
import secrets
from typing import Optional

from passlib.context import CryptContext


class PasswordHasher:
    """bcrypt digests via passlib; the rest of the code only calls hash/verify."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        self._dummy_digest: Optional[str] = None

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, digest: str) -> bool:
        if not digest:
            return False
        return self._context.verify(password, digest)

    def verify_dummy(self, password: str) -> bool:
        """Spend one full bcrypt check on a digest nobody knows the password for.

        Used when there is no account to check against, so rejecting an unknown
        email costs as much as rejecting a wrong password.
        """
        if self._dummy_digest is None:
            self._dummy_digest = self.hash(secrets.token_urlsafe(32))
        return self.verify(password, self._dummy_digest)
