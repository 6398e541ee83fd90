"""
Who is signed in: Clerk token verification and the identity provider
that sync sessions follow.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from shoplist.config import get_settings
from shoplist.errors import AuthError

security = HTTPBearer(auto_error=False)

# Tolerated clock skew between Clerk and this server
CLOCK_SKEW_SECONDS = 60


class ClerkUser(BaseModel):
    """The identity carried by a verified Clerk session token."""
    id: str  # "user_2abc..."; also the uid stored as ownerUid / addedByUid
    email: Optional[str] = None  # matched against memberEmails for shared lists
    first_name: Optional[str] = None
    last_name: Optional[str] = None


_jwks_client: Optional[PyJWKClient] = None


def get_jwks_client() -> PyJWKClient:
    """Clerk's signing keys, fetched once and cached by PyJWKClient."""
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(f"https://{get_settings().clerk_frontend_api}/.well-known/jwks.json")
    return _jwks_client


def verify_clerk_token(token: str) -> ClerkUser:
    """Check a session token's RS256 signature and expiry. Raises AuthError."""
    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            options={"verify_aud": False},  # session tokens carry no audience
            leeway=CLOCK_SKEW_SECONDS,
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise AuthError(f"Invalid token: {e}") from e

    if not claims.get("sub"):
        raise AuthError("Token has no subject")

    return ClerkUser(
        id=claims["sub"],
        email=claims.get("email"),
        first_name=claims.get("first_name"),
        last_name=claims.get("last_name"),
    )


# ============================================================
# Identity provider
# ============================================================

UserListener = Callable[[Optional[ClerkUser]], None]


class IdentityProvider(ABC):
    """Current user plus change notifications."""

    @abstractmethod
    def current_user(self) -> Optional[ClerkUser]:
        ...

    @abstractmethod
    def on_change(self, listener: UserListener) -> Callable[[], None]:
        """Register a listener; returns the function that removes it."""

    @abstractmethod
    async def sign_out(self) -> None:
        ...


class ClerkIdentityProvider(IdentityProvider):
    """Identity backed by verified Clerk tokens."""

    def __init__(
        self,
        user: Optional[ClerkUser] = None,
        verifier: Callable[[str], ClerkUser] = verify_clerk_token,
    ):
        self._user = user
        self._verifier = verifier
        self._listeners: list[UserListener] = []

    def current_user(self) -> Optional[ClerkUser]:
        return self._user

    def on_change(self, listener: UserListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def sign_in(self, token: str) -> ClerkUser:
        """Verify a token and make its user current. Raises AuthError."""
        user = self._verifier(token)
        self.set_user(user)
        return user

    def set_user(self, user: Optional[ClerkUser]) -> None:
        if user == self._user:
            return
        self._user = user
        for listener in list(self._listeners):
            listener(user)

    async def sign_out(self) -> None:
        self.set_user(None)


# ============================================================
# FastAPI dependencies
# ============================================================

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> ClerkUser:
    """The verified caller; 401 when the bearer token is missing or rejected."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        return verify_clerk_token(credentials.credentials)
    except AuthError as e:
        raise _unauthorized(str(e))

