"""Session manager: owns the authentication lifecycle

State machine: UNKNOWN -> RESTORING -> {AUTHENTICATED, ANONYMOUS};
AUTHENTICATED -> ANONYMOUS on logout or forced invalidation. There is
no way back to RESTORING.

The live Session is private to this class. Everyone else reads
`snapshot()` or the payloads published on the event bus.
"""

import asyncio
from typing import Optional, Set
from urllib.parse import urlparse, parse_qs

from ..errors import AuthenticationError, StorefrontError
from ..models.session import Notification, Session, SessionSnapshot, SessionState, UserProfile
from ..storefront_api_client import StorefrontApiClient
from ..utils.logger import get_logger, mask_token
from .event_bus import EventBus, Topic
from .session_persistence import SessionStore

logger = get_logger(__name__)


class SessionManager:
    """Restore, login, profile refresh and logout for the single live session"""

    def __init__(self, store: SessionStore, bus: EventBus, api_client: StorefrontApiClient):
        """
        Initialize session manager

        Args:
            store: Persisted session store (the only component reading it)
            bus: Event bus for session signals
            api_client: Gateway; bound back to this manager for token injection
        """
        self._store = store
        self._bus = bus
        self._api = api_client
        self._api.bind_session_manager(self)

        self._state = SessionState.UNKNOWN
        self._session: Optional[Session] = None
        self._settled = asyncio.Event()
        self._logins_in_flight: Set[str] = set()
        self._completed_tokens: Set[str] = set()

        logger.info("SessionManager initialized")

    # ================================
    # READ-ONLY VIEW
    # ================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED and self._session is not None

    @property
    def token(self) -> Optional[str]:
        return self._session.token if self._session else None

    @property
    def user(self) -> Optional[UserProfile]:
        return self._session.user if self._session else None

    @property
    def settled(self) -> bool:
        """True once restoration has resolved (or was never needed)"""
        return self._settled.is_set()

    def snapshot(self, reason: Optional[str] = None) -> SessionSnapshot:
        return SessionSnapshot(state=self._state, user=self.user, reason=reason)

    async def wait_until_settled(self, timeout: Optional[float] = None) -> None:
        """Block until restore() has resolved to AUTHENTICATED or ANONYMOUS"""
        if timeout is None:
            await self._settled.wait()
        else:
            await asyncio.wait_for(self._settled.wait(), timeout)

    # ================================
    # RESTORE
    # ================================

    async def restore(self) -> SessionSnapshot:
        """
        Restore the persisted session on process start (call once)

        A cached token and profile make the session AUTHENTICATED before
        the first await; the live profile is then fetched and either
        confirms the session or triggers logout().

        Returns:
            Snapshot of the settled session
        """
        if self._state != SessionState.UNKNOWN:
            logger.warning(f"[Session] restore() called in state {self._state.value}; ignoring")
            return self.snapshot()

        self._state = SessionState.RESTORING
        try:
            cached = self._store.load()
            token = cached.token if cached else self._store.load_token()

            if not token:
                logger.info("[Session] No persisted token; starting anonymous")
                self._state = SessionState.ANONYMOUS
                return self.snapshot()

            if cached:
                # Optimistic phase: trust the cached profile until the server answers
                self._set_authenticated(cached)
                logger.info(f"[Session] Restored cached session for {cached.user.name} "
                            f"(token {mask_token(token)}); re-validating")
                self._bus.publish(Topic.SESSION_ACQUIRED, self.snapshot(reason="restored"))

            await self._revalidate(token, announced=cached is not None)
            return self.snapshot()
        finally:
            if self._state == SessionState.RESTORING:
                self._state = SessionState.ANONYMOUS
            self._settled.set()

    async def _revalidate(self, token: str, announced: bool) -> None:
        try:
            user = await self._fetch_profile(token)
        except StorefrontError as e:
            logger.warning(f"[Session] Re-validation failed ({e.kind.value}): {e.message}")
            if self.token == token:
                self.logout(reason="revalidation-failed")
            elif not announced and self._session is None:
                # Token never became a live session; drop it without signalling
                self._store.clear()
            return

        if self._session is not None and self._session.token != token:
            # A different login completed while we were waiting
            return

        previous = self._session
        session = Session(token=token, user=user)
        self._store.save(session)
        self._set_authenticated(session)
        if previous is None or previous.user != user:
            self._bus.publish(Topic.SESSION_ACQUIRED, self.snapshot(reason="revalidated"))
        logger.info(f"[Session] Session confirmed for user {user.id}")

    # ================================
    # LOGIN
    # ================================

    def login_url(self) -> str:
        """URL of the external identity provider; it redirects back with a token"""
        return self._api.identity_login_url()

    async def complete_login(self, token: str) -> SessionSnapshot:
        """
        Complete an external login with the token handed back by the identity provider

        Runs at most once per token: repeated calls while the same login is in
        flight, or after it completed, return the current snapshot.

        Args:
            token: Bearer token from the identity provider's return path

        Returns:
            Snapshot of the authenticated session

        Raises:
            AuthenticationError: token missing or the profile could not be fetched
        """
        if not token:
            raise AuthenticationError("Login returned no token")

        if token in self._logins_in_flight or (token in self._completed_tokens and self.token == token):
            logger.info(f"[Session] Login for token {mask_token(token)} already handled; skipping")
            return self.snapshot()

        self._logins_in_flight.add(token)
        try:
            try:
                user = await self._fetch_profile(token)
            except StorefrontError as e:
                logger.error(f"[Session] Login failed while fetching profile: {e.message}")
                if self.token == token or self._session is None:
                    self.logout(reason="login-failed")
                raise AuthenticationError(f"Login failed: {e.message}") from e

            session = Session(token=token, user=user)
            self._store.save(session)
            self._set_authenticated(session)
            self._completed_tokens.add(token)
            self._settled.set()

            logger.info(f"[Session] Logged in as {user.name} ({user.id})")
            snapshot = self.snapshot(reason="login")
            self._bus.publish(Topic.SESSION_ACQUIRED, snapshot)
            self._bus.publish(Topic.NOTIFICATION, Notification(
                title="Welcome",
                description=user.name,
                level="success"
            ))
            return snapshot
        finally:
            self._logins_in_flight.discard(token)

    async def complete_login_from_redirect(self, return_url: str) -> SessionSnapshot:
        """Extract `token` from the identity provider's return URL and complete the login"""
        query = parse_qs(urlparse(return_url).query)
        tokens = query.get("token") or []
        if not tokens or not tokens[0]:
            raise AuthenticationError("Login return path carries no token", {"return_url": return_url})
        return await self.complete_login(tokens[0])

    async def refresh_profile(self) -> Optional[UserProfile]:
        """Re-fetch the profile of the live session and persist it"""
        if not self.is_authenticated:
            return None
        token = self.token
        user = await self._fetch_profile(token)
        if self.token != token:
            return self.user
        session = self._session.with_user(user)
        self._store.save(session)
        self._set_authenticated(session)
        return user

    # ================================
    # LOGOUT
    # ================================

    def logout(self, reason: str = "user") -> None:
        """
        End the session: clear the store, go ANONYMOUS, publish session-cleared

        Idempotent; when already anonymous only the signal is re-published.

        Args:
            reason: Why the session ended (user, token-rejected, revalidation-failed, ...)
        """
        had_session = self._session is not None
        if had_session:
            self._store.clear()
            self._session = None
            logger.info(f"[Session] Logged out (reason: {reason})")
        else:
            logger.debug(f"[Session] logout() while anonymous (reason: {reason})")

        self._state = SessionState.ANONYMOUS
        self._bus.publish(Topic.SESSION_CLEARED, self.snapshot(reason=reason))
        if had_session:
            self._bus.publish(Topic.NOTIFICATION, Notification(
                title="Logged out",
                description="You have been successfully logged out.",
                level="info"
            ))

    # ================================
    # INTERNALS
    # ================================

    def _set_authenticated(self, session: Session) -> None:
        self._session = session
        self._state = SessionState.AUTHENTICATED

    async def _fetch_profile(self, token: str) -> UserProfile:
        response = await self._api.get_profile(auth_token=token)
        user_data = response.get("user") if isinstance(response, dict) else None
        if not user_data:
            raise AuthenticationError("Profile response carries no user")
        try:
            return UserProfile.from_dict(user_data)
        except ValueError as e:
            raise AuthenticationError(f"Unreadable profile: {e}") from e
