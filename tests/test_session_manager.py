"""Tests for the session lifecycle: restore, login, logout"""

import asyncio
import json
import os

import httpx
import pytest

from storefront_client.errors import AuthenticationError
from storefront_client.models.session import Session, SessionState, UserProfile
from storefront_client.services.event_bus import Topic
from storefront_client.services.session_manager import SessionManager
from storefront_client.services.session_persistence import FileSessionStore

from .conftest import TOKEN, USER

CACHED_USER = UserProfile(id="u-1", name="Asha Rao", email="asha@example.com")


async def _spin(times: int = 10) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class TestRestore:

    async def test_no_persisted_token_settles_anonymous(self, session_manager, backend, recorder):
        snapshot = await session_manager.restore()

        assert snapshot.state == SessionState.ANONYMOUS
        assert session_manager.settled
        assert backend.requests == []
        assert recorder[Topic.SESSION_ACQUIRED] == []
        assert recorder[Topic.SESSION_CLEARED] == []

    async def test_cached_session_is_authenticated_before_revalidation(self, session_manager, store,
                                                                       backend, recorder):
        store.save(Session(token=TOKEN, user=CACHED_USER))
        gate = backend.hold("GET", "/auth/profile")

        task = asyncio.create_task(session_manager.restore())
        await _spin()

        # Optimistic phase
        assert session_manager.is_authenticated
        assert session_manager.user == CACHED_USER
        assert not session_manager.settled
        assert recorder[Topic.SESSION_ACQUIRED][0].reason == "restored"

        gate.set()
        snapshot = await task

        assert snapshot.state == SessionState.AUTHENTICATED
        assert session_manager.settled
        assert backend.calls("GET", "/auth/profile")[0].headers["Authorization"] == f"Bearer {TOKEN}"
        # Unchanged profile: no second acquired signal
        assert len(recorder[Topic.SESSION_ACQUIRED]) == 1

    async def test_changed_profile_is_republished(self, session_manager, store, backend, recorder):
        store.save(Session(token=TOKEN, user=CACHED_USER))
        backend.on("GET", "/auth/profile", json={"user": dict(USER, name="Asha R.")})

        await session_manager.restore()

        assert session_manager.user.name == "Asha R."
        assert store.load().user.name == "Asha R."
        assert [s.reason for s in recorder[Topic.SESSION_ACQUIRED]] == ["restored", "revalidated"]

    async def test_revoked_token_forces_exactly_one_logout(self, session_manager, store, backend, recorder,
                                                           monkeypatch):
        store.save(Session(token=TOKEN, user=CACHED_USER))
        clears = []
        clear = store.clear
        monkeypatch.setattr(store, "clear", lambda: clears.append(1) or clear())
        backend.on("GET", "/auth/profile", status=401, json={"message": "jwt expired"})

        snapshot = await session_manager.restore()

        assert snapshot.state == SessionState.ANONYMOUS
        assert session_manager.token is None
        assert session_manager.user is None
        assert store.load() is None
        assert store.load_token() is None
        assert len(recorder[Topic.SESSION_CLEARED]) == 1
        assert session_manager.settled
        assert len(clears) == 1

    async def test_unreachable_backend_during_revalidation_logs_out(self, session_manager, store,
                                                                    backend, recorder):
        store.save(Session(token=TOKEN, user=CACHED_USER))

        def offline(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.on("GET", "/auth/profile", handler=offline)

        snapshot = await session_manager.restore()

        assert snapshot.state == SessionState.ANONYMOUS
        assert [s.reason for s in recorder[Topic.SESSION_CLEARED]] == ["revalidation-failed"]

    async def test_token_without_profile_is_fetched_before_authenticating(self, tmp_path, bus,
                                                                          api_client, recorder):
        with open(os.path.join(str(tmp_path), "session.json"), "w") as f:
            json.dump({"token": TOKEN}, f)
        store = FileSessionStore(str(tmp_path))
        manager = SessionManager(store, bus, api_client)

        snapshot = await manager.restore()

        assert snapshot.state == SessionState.AUTHENTICATED
        assert [s.reason for s in recorder[Topic.SESSION_ACQUIRED]] == ["revalidated"]
        assert store.load().user.id == "u-1"

    async def test_revoked_bare_token_is_dropped_quietly(self, tmp_path, bus, api_client, backend, recorder):
        with open(os.path.join(str(tmp_path), "session.json"), "w") as f:
            json.dump({"token": TOKEN}, f)
        store = FileSessionStore(str(tmp_path))
        manager = SessionManager(store, bus, api_client)
        backend.on("GET", "/auth/profile", status=401, json={"message": "jwt expired"})

        snapshot = await manager.restore()

        assert snapshot.state == SessionState.ANONYMOUS
        assert store.load_token() is None
        assert recorder[Topic.SESSION_CLEARED] == []

    async def test_restore_runs_once(self, session_manager, backend):
        await session_manager.restore()
        snapshot = await session_manager.restore()

        assert snapshot.state == SessionState.ANONYMOUS

    async def test_snapshot_never_carries_token(self, session_manager, store):
        store.save(Session(token=TOKEN, user=CACHED_USER))
        snapshot = await session_manager.restore()

        assert not hasattr(snapshot, "token")
        assert snapshot.authenticated


class TestLogin:

    async def test_complete_login_persists_and_announces(self, session_manager, store, recorder):
        snapshot = await session_manager.complete_login(TOKEN)

        assert snapshot.state == SessionState.AUTHENTICATED
        assert session_manager.token == TOKEN
        assert session_manager.user.id == "u-1"
        assert store.load().token == TOKEN
        assert session_manager.settled
        assert [s.reason for s in recorder[Topic.SESSION_ACQUIRED]] == ["login"]
        assert recorder[Topic.NOTIFICATION][0].title == "Welcome"

    async def test_same_token_is_processed_once(self, session_manager, backend, recorder):
        gate = backend.hold("GET", "/auth/profile")

        first = asyncio.create_task(session_manager.complete_login(TOKEN))
        await _spin()
        second = await session_manager.complete_login(TOKEN)
        assert second.state != SessionState.AUTHENTICATED

        gate.set()
        await first
        await session_manager.complete_login(TOKEN)

        assert len(backend.calls("GET", "/auth/profile")) == 1
        assert len(recorder[Topic.SESSION_ACQUIRED]) == 1

    async def test_failed_profile_fetch_leaves_no_session(self, session_manager, store, backend):
        backend.on("GET", "/auth/profile", status=500, json={"message": "db down"})

        with pytest.raises(AuthenticationError):
            await session_manager.complete_login(TOKEN)

        assert session_manager.state == SessionState.ANONYMOUS
        assert session_manager.token is None
        assert store.load_token() is None

    async def test_profile_without_user_is_rejected(self, session_manager, backend):
        backend.on("GET", "/auth/profile", json={"success": True})

        with pytest.raises(AuthenticationError):
            await session_manager.complete_login(TOKEN)

    async def test_empty_token_is_rejected(self, session_manager, backend):
        with pytest.raises(AuthenticationError):
            await session_manager.complete_login("")
        assert backend.requests == []

    async def test_login_from_redirect(self, session_manager, backend):
        await session_manager.complete_login_from_redirect(
            f"https://shop.example/login/success?token={TOKEN}&next=%2Fcart"
        )

        assert session_manager.token == TOKEN

    async def test_redirect_without_token(self, session_manager):
        with pytest.raises(AuthenticationError):
            await session_manager.complete_login_from_redirect("https://shop.example/login/success")

    def test_login_url_points_at_identity_provider(self, session_manager):
        assert session_manager.login_url() == "http://backend.test/api/auth/google"

    async def test_refresh_profile(self, session_manager, store, backend):
        await session_manager.complete_login(TOKEN)
        backend.on("GET", "/auth/profile", json={"user": dict(USER, email="new@example.com")})

        user = await session_manager.refresh_profile()

        assert user.email == "new@example.com"
        assert store.load().user.email == "new@example.com"
        assert session_manager.token == TOKEN

    async def test_refresh_profile_when_anonymous(self, session_manager, backend):
        assert await session_manager.refresh_profile() is None
        assert backend.requests == []


class TestLogout:

    async def test_logout_clears_everything(self, session_manager, store, recorder):
        await session_manager.complete_login(TOKEN)

        session_manager.logout()

        assert session_manager.state == SessionState.ANONYMOUS
        assert session_manager.token is None
        assert session_manager.user is None
        assert store.load_token() is None
        assert [s.reason for s in recorder[Topic.SESSION_CLEARED]] == ["user"]
        assert recorder[Topic.NOTIFICATION][-1].title == "Logged out"

    async def test_logout_twice_is_harmless(self, session_manager, recorder):
        await session_manager.complete_login(TOKEN)

        session_manager.logout()
        session_manager.logout()

        assert session_manager.state == SessionState.ANONYMOUS
        assert len(recorder[Topic.SESSION_CLEARED]) == 2
        assert [n.title for n in recorder[Topic.NOTIFICATION]] == ["Welcome", "Logged out"]

    async def test_login_after_logout(self, session_manager, recorder):
        await session_manager.complete_login(TOKEN)
        session_manager.logout()

        await session_manager.complete_login("tok_second_session_99")

        assert session_manager.token == "tok_second_session_99"
        assert len(recorder[Topic.SESSION_ACQUIRED]) == 2
