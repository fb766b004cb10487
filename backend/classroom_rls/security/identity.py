"""Identity context: who is calling.

Tokens are issued by an external identity provider; this module only
verifies them and looks the caller's role up in ``users``. A caller that
cannot be resolved is ``None``, which every policy decision denies.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .. import config
from ..models import User, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """An authenticated actor. Immutable for the lifetime of a request."""
    id: str
    role: UserRole

    def __post_init__(self):
        # Only the three known roles are accepted; there is no default role
        if not isinstance(self.role, UserRole):
            object.__setattr__(self, "role", UserRole(self.role))


class IdentityContext:
    """Resolves bearer tokens and user ids into principals."""

    def __init__(self, database, secret: str = None, algorithm: str = None, audience: str = None):
        self.database = database
        self.secret = secret or config.JWT_SECRET
        self.algorithm = algorithm or config.JWT_ALGORITHM
        self.audience = audience or config.JWT_AUDIENCE

    @staticmethod
    def principal_for_user(session: Session, user_id: str) -> Optional[Principal]:
        """Build a principal from the stored role; unknown users resolve to None."""
        if not user_id:
            return None
        user = session.query(User).filter(User.id == user_id).first()
        if user is None:
            return None
        return Principal(id=user.id, role=user.role)

    def decode(self, token: str) -> Optional[dict]:
        """Verify a token and return its claims, or None if it is not acceptable."""
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm], audience=self.audience)
        except JWTError as e:
            logger.info(f"Rejected identity token: {e}")
            return None

    def resolve(self, token: Optional[str]) -> Optional[Principal]:
        """Resolve a raw token (or an ``Authorization`` header value) to a principal."""
        if not token:
            return None
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        payload = self.decode(token)
        if payload is None:
            return None
        with self.database.session() as session:
            principal = self.principal_for_user(session, payload.get("sub"))
        if principal is None:
            logger.info("Identity token subject has no user profile")
        return principal
