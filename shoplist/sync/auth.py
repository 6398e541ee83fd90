"""Sign-in state for the login screen."""

from typing import Optional

from shoplist.auth import ClerkIdentityProvider, ClerkUser
from shoplist.errors import AuthError
from shoplist.sync.live import LiveValue


class AuthViewModel:
    """Current user and the last sign-in error, backed by a Clerk identity provider."""

    def __init__(self, identity: ClerkIdentityProvider):
        self._identity = identity
        self.user: LiveValue[Optional[ClerkUser]] = LiveValue(identity.current_user())
        self.error: LiveValue[Optional[str]] = LiveValue(None, distinct=False)
        self._dispose = identity.on_change(self.user.set)

    def sign_in(self, token: str) -> Optional[ClerkUser]:
        try:
            user = self._identity.sign_in(token)
        except AuthError as e:
            print(f"❌ Sign-in failed: {e}")
            self.error.set(str(e))
            return None
        self.error.set(None)
        return user

    async def sign_out(self) -> None:
        await self._identity.sign_out()

    def clear_error(self) -> None:
        self.error.set(None)

    def close(self) -> None:
        self._dispose()
