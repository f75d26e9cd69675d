"""Session store — the single source of "who is logged in".

Lifecycle:
    start() -> subscribe to auth events -> read persisted session ->
    publish identity (loading=False) -> privilege check in background

The privilege flag never delays ``loading``. It stays False until the
``get_user_role_status`` RPC answers, and falls back to False on error.
"""

from __future__ import annotations

from src.core.exceptions import AuraBaseError
from src.core.interfaces import BaseIdentityService, Unsubscribe
from src.core.logging import get_logger
from src.core.store import ObservableStore
from src.core.types import AuthResult, AuthSession, Identity, SessionEvent, SessionState

log = get_logger(__name__)


class SessionStore(ObservableStore[SessionState]):
    """Owns the authenticated identity and the elevated-privilege flag."""

    def __init__(
        self,
        identity_service: BaseIdentityService,
        *,
        password_reset_redirect_url: str = "",
    ) -> None:
        super().__init__(SessionState())
        self._service = identity_service
        self._reset_redirect = password_reset_redirect_url
        self._unsubscribe_events: Unsubscribe | None = None

    # ── Accessors ────────────────────────────────────────────────

    @property
    def identity(self) -> Identity | None:
        return self._state.identity

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def is_elevated(self) -> bool:
        return self._state.is_elevated

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Read the persisted session and start listening for auth events."""
        if self._unsubscribe_events is None:
            self._unsubscribe_events = self._service.on_session_change(self._on_session_change)

        generation = self._next_generation()
        try:
            session = await self._service.get_current_session()
        except Exception as exc:
            log.error("session_read_failed", error=str(exc))
            session = None

        if not self._is_current(generation):
            # An auth event landed while we were reading; it is newer.
            log.debug("initial_session_superseded")
            return

        self._apply_session(session, generation)
        log.info(
            "session_initialized",
            user_id=session.identity.id if session else None,
        )

    async def close(self) -> None:
        if self._unsubscribe_events is not None:
            self._unsubscribe_events()
            self._unsubscribe_events = None
        await super().close()

    def _on_session_change(self, event: SessionEvent, session: AuthSession | None) -> None:
        log.info(
            "auth_state_changed",
            auth_event=event.value,
            email=session.identity.email if session else None,
        )
        generation = self._next_generation()
        self._apply_session(session, generation)

    def _apply_session(self, session: AuthSession | None, generation: int) -> None:
        identity = session.identity if session else None
        previous = self._state.identity

        if identity is None:
            self._set_state(identity=None, is_elevated=False, loading=False)
            return

        # Same user (e.g. token refresh) keeps its flag until the re-check lands.
        same_user = previous is not None and previous.id == identity.id
        self._set_state(
            identity=identity,
            is_elevated=self._state.is_elevated if same_user else False,
            loading=False,
        )
        self._spawn(
            self._check_privilege(identity, generation),
            name=f"privilege-check-{identity.id}",
        )

    async def _check_privilege(self, identity: Identity, generation: int) -> None:
        try:
            status = await self._service.get_user_role_status()
            elevated = bool(status.get("is_super_admin"))
        except Exception as exc:
            log.warning("privilege_check_failed", user_id=identity.id, error=str(exc))
            elevated = False

        if not self._is_current(generation):
            log.debug("privilege_result_discarded", user_id=identity.id)
            return

        self._set_state(is_elevated=elevated)
        if elevated:
            log.info("elevated_session", user_id=identity.id)

    # ── Operations ───────────────────────────────────────────────

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Password sign-in. The identity arrives via the auth event stream."""
        try:
            result = await self._service.sign_in_with_password(email, password)
        except AuraBaseError as exc:
            log.warning("sign_in_failed", email=email, error=str(exc))
            return AuthResult(error=str(exc))

        if not result.ok:
            log.info("sign_in_rejected", email=email, error=result.error)
        return result

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: dict[str, str] | None = None,
    ) -> AuthResult:
        try:
            result = await self._service.sign_up(email, password, metadata)
        except AuraBaseError as exc:
            log.warning("sign_up_failed", email=email, error=str(exc))
            return AuthResult(error=str(exc))

        if result.ok:
            log.info("sign_up_succeeded", email=email)
        return result

    async def reset_password(self, email: str) -> AuthResult:
        try:
            return await self._service.reset_password(email, self._reset_redirect)
        except AuraBaseError as exc:
            log.warning("password_reset_failed", email=email, error=str(exc))
            return AuthResult(error=str(exc))

    async def sign_out(self) -> None:
        """Sign out unconditionally.

        A failing remote call is logged; local state and cached session
        artifacts are cleared regardless so the user is never stuck.
        """
        user_id = self._state.identity.id if self._state.identity else None
        try:
            await self._service.sign_out()
        except Exception as exc:
            log.error("sign_out_remote_failed", user_id=user_id, error=str(exc))
        finally:
            try:
                await self._service.clear_local_session()
            except Exception as exc:
                log.error("local_session_clear_failed", error=str(exc))
            self._next_generation()
            self._set_state(identity=None, is_elevated=False, loading=False)
            log.info("signed_out", user_id=user_id)
