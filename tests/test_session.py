import asyncio
import json

import httpx

from catalog_client.models import Role
from catalog_client.session import Session, SessionState
from catalog_client.token_store import MemoryTokenStore, TokenStore
from conftest import ADMIN, MEMBER


def _assert_invariant(session: Session) -> None:
    assert session.authenticated == (session.token is not None)
    assert session.authenticated == session.api.has_credential


def test_login_success_persists_token_and_user(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        result = await session.login(*MEMBER)
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert result.success and result.error is None
    assert session.state is SessionState.AUTHENTICATED
    assert token_store.load() == session.token
    assert session.user.username == "alice"
    assert session.user.role is Role.MEMBER
    _assert_invariant(session)


def test_bad_login_uses_server_message_and_stays_anonymous(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        result = await session.login("bad", "bad")
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert not result.success
    assert result.error == "Invalid credentials"
    assert session.state is SessionState.ANONYMOUS
    assert token_store.load() is None
    _assert_invariant(session)


def test_login_without_server_message_defaults(mock_api, token_store):
    async def scenario():
        session = Session(mock_api(lambda request: httpx.Response(401)), token_store)
        result = await session.login("bad", "bad")
        await session.api.close()
        return result

    assert asyncio.run(scenario()).error == "Login failed"


def test_login_when_backend_unreachable_defaults(mock_api, token_store):
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    async def scenario():
        session = Session(mock_api(handler), token_store)
        result = await session.login("alice", "pw")
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert result.error == "Login failed"
    assert not session.authenticated


def test_failed_login_does_not_clobber_existing_session(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        await session.login(*MEMBER)
        token = session.token
        result = await session.login("alice", "wrong")
        await session.api.close()
        return session, token, result

    session, token, result = asyncio.run(scenario())
    assert not result.success
    assert session.token == token
    assert session.user.username == "alice"
    _assert_invariant(session)


def test_state_is_authenticating_while_login_is_pending(mock_api, token_store):
    states = []

    async def scenario():
        gate = asyncio.Event()

        async def handler(request):
            await gate.wait()
            return httpx.Response(200, json={"token": "t1"})

        session = Session(mock_api(handler), token_store)
        task = asyncio.create_task(session.login("alice", "pw"))
        await asyncio.sleep(0)
        states.append(session.state)
        gate.set()
        await task
        states.append(session.state)
        await session.api.close()
        return session

    session = asyncio.run(scenario())
    assert states == [SessionState.AUTHENTICATING, SessionState.AUTHENTICATED]
    # The login answer carried no user
    assert session.user is None


def test_signup_never_authenticates(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        result = await session.signup({"username": "bob", "password": "pw", "email": "bob@example.com",
                                       "firstName": "Bob", "lastName": "Builder"})
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert result.success
    assert session.user.username == "bob"
    assert not session.authenticated
    assert session.state is SessionState.ANONYMOUS
    assert token_store.load() is None
    _assert_invariant(session)


def test_signup_ignores_token_in_answer(mock_api, token_store):
    def handler(request):
        return httpx.Response(200, json={"token": "t", "user": {"id": "u9", "username": "bob"}})

    async def scenario():
        session = Session(mock_api(handler), token_store)
        result = await session.signup({"username": "bob"})
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert result.user.id == "u9"
    assert not session.authenticated


def test_duplicate_signup_reports_server_message(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        result = await session.signup({"username": "alice", "password": "x", "email": "new@example.com"})
        await session.api.close()
        return result

    result = asyncio.run(scenario())
    assert not result.success
    assert result.error == "Username already exists"


def test_logout_is_idempotent(api_factory, token_store):
    async def scenario():
        session = Session(api_factory(), token_store)
        await session.login(*ADMIN)
        session.logout()
        first = (session.token, session.user, session.authenticated, session.api.has_credential)
        session.logout()
        second = (session.token, session.user, session.authenticated, session.api.has_credential)
        await session.api.close()
        return session, first, second

    session, first, second = asyncio.run(scenario())
    assert first == second == (None, None, False, False)
    assert token_store.load() is None
    _assert_invariant(session)


def test_restore_attaches_stored_token_without_network(mock_api):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    async def scenario():
        session = Session(mock_api(handler), MemoryTokenStore("stored-token"))
        session.restore()
        await session.api.close()
        return session

    session = asyncio.run(scenario())
    assert calls == []
    assert session.state is SessionState.AUTHENTICATED
    assert session.user is None
    _assert_invariant(session)


def test_restore_without_token_stays_anonymous(mock_api, token_store):
    session = Session(mock_api(lambda request: httpx.Response(200)), token_store)
    session.restore()
    assert session.state is SessionState.ANONYMOUS
    _assert_invariant(session)


def test_token_survives_a_new_process(api_factory, tmp_path):
    token_file = str(tmp_path / "token")

    async def first_process():
        session = Session(api_factory(), TokenStore(token_file))
        await session.login(*MEMBER)
        await session.api.close()
        return session.token

    async def second_process():
        session = Session(api_factory(), TokenStore(token_file))
        session.restore()
        result = await session.fetch_current_user()
        await session.api.close()
        return session, result

    token = asyncio.run(first_process())
    session, result = asyncio.run(second_process())
    assert session.token == token
    assert result.success and result.user.username == "alice"


def test_stale_token_is_dropped_when_rejected(api_factory):
    store = MemoryTokenStore("expired")

    async def scenario():
        session = Session(api_factory(), store)
        session.restore()
        result = await session.fetch_current_user()
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert not result.success
    assert session.state is SessionState.ANONYMOUS
    assert store.load() is None
    _assert_invariant(session)


def test_listeners_see_every_transition(api_factory, token_store):
    seen = []

    async def scenario():
        session = Session(api_factory(), token_store)
        unsubscribe = session.subscribe(lambda s: seen.append(s.state))
        await session.login(*MEMBER)
        session.logout()
        unsubscribe()
        session.logout()
        await session.api.close()

    asyncio.run(scenario())
    assert seen == [SessionState.AUTHENTICATING, SessionState.AUTHENTICATED, SessionState.ANONYMOUS]


def test_login_request_body(mock_api, token_store):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"token": "t"})

    async def scenario():
        session = Session(mock_api(handler), token_store)
        await session.login("alice", "pw")
        await session.api.close()

    asyncio.run(scenario())
    assert bodies == [{"username": "alice", "password": "pw"}]


class UnwritableTokenStore(MemoryTokenStore):
    def save(self, token):
        raise PermissionError("read-only home directory")


def test_login_survives_unwritable_token_storage(api_factory):
    async def scenario():
        session = Session(api_factory(), UnwritableTokenStore())
        result = await session.login(*MEMBER)
        await session.api.close()
        return session, result

    session, result = asyncio.run(scenario())
    assert result.success
    assert session.state is SessionState.AUTHENTICATED
    assert session.user.username == "alice"
    _assert_invariant(session)
