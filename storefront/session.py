import asyncio
import enum
import logging
from typing import Optional

from storefront.models import AuthSession, User
from storefront.notifications import Notifier
from storefront.schemas import AuthEvent, UserLogin
from storefront.shared.utils import StaleProfile, StoreException

logger = logging.getLogger("storefront.session")

class SessionState(str, enum.Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"

class SessionManager:
    """
    Tracks who is signed in. ``start()`` recovers a stored session and opens
    the auth-change subscription; ``close()`` unsubscribes and stops the
    listener task.
    """

    def __init__(self, backend, notifier: Notifier):
        self.backend = backend
        self.notifier = notifier
        self.state = SessionState.ANONYMOUS
        self._user: Optional[User] = None
        # User id of the session being (or already) loaded.
        self._session_user_id: Optional[str] = None
        self._subscription = None
        self._listener: Optional[asyncio.Task] = None

    def current_user(self) -> Optional[User]:
        return self._user

    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED and self._user is not None

    async def _load_profile(self, session: AuthSession) -> User:
        self.state = SessionState.AUTHENTICATING
        self._user = None
        self._session_user_id = session.user_id
        try:
            user = await self.backend.get_user_profile(session.user_id)
        except (StoreException, ValueError) as e:
            self._sign_out_locally()
            raise StaleProfile(f"Profile fetch failed: {getattr(e, 'detail', e)}")
        if user is None:
            self._sign_out_locally()
            raise StaleProfile(f"No profile for user {session.user_id}")
        self._user = user
        self.state = SessionState.AUTHENTICATED
        return user

    def _sign_out_locally(self):
        self._user = None
        self._session_user_id = None
        self.state = SessionState.ANONYMOUS

    async def recover(self) -> Optional[User]:
        try:
            session = await self.backend.get_session()
            if session is None:
                return None
            user = await self._load_profile(session)
        except StoreException as e:
            logger.warning(f"Session recovery failed: {e.detail}", extra={"event": "session_recover"})
            self._sign_out_locally()
            return None
        logger.info("Session recovered", extra={"user_id": user.id, "event": "session_recover"})
        return user

    async def start(self):
        # Subscribe first so a sign-in racing with recovery is not lost.
        if self._subscription is None:
            self._subscription = self.backend.subscribe_auth_changes()
            self._listener = asyncio.create_task(self._listen(self._subscription))
        await self.recover()

    async def _listen(self, subscription):
        async for event in subscription:
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Auth event handling failed", extra={"event": event.event})
                self._sign_out_locally()

    async def handle_event(self, event: AuthEvent):
        if event.event == "SIGNED_IN" and event.session is not None:
            if event.session.user_id == self._session_user_id:
                return
            await self._welcome(event.session)
        elif event.event == "SIGNED_OUT":
            was_signed_in = self._user is not None
            self._sign_out_locally()
            logger.info("Signed out", extra={"event": "signed_out"})
            if was_signed_in:
                self.notifier.info("Signed out")

    async def _welcome(self, session: AuthSession) -> Optional[User]:
        try:
            user = await self._load_profile(session)
        except StaleProfile as e:
            logger.warning(e.detail, extra={"user_id": session.user_id, "event": "signed_in"})
            return None
        logger.info("Signed in", extra={"user_id": user.id, "event": "signed_in"})
        self.notifier.success(f"Welcome, {user.name}")
        return user

    async def sign_in(self, credentials: UserLogin) -> Optional[User]:
        try:
            session = await self.backend.sign_in_with_password(credentials)
        except StoreException as e:
            logger.info(f"Sign-in rejected: {e.detail}", extra={"event": "signed_in"})
            self.notifier.error("Sign-in failed, check your email and password")
            return None
        return await self._welcome(session)

    async def sign_out(self):
        was_signed_in = self._user is not None
        self._sign_out_locally()
        await self.backend.sign_out()
        if was_signed_in:
            self.notifier.info("Signed out")

    async def close(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
