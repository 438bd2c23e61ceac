import asyncio

import httpx

from conftest import FakeWattpad, run
from wattpad import SessionManager, SessionState


async def _with_manager(fake, fn):
    async with httpx.AsyncClient(transport=fake.transport(), follow_redirects=True) as http:
        manager = SessionManager(http)
        return await fn(manager, http)


def test_acquire_once_then_reuse():
    fake = FakeWattpad(cookies=("wp_id=abc", "lang=1"))

    async def go(manager, http):
        first = await manager.acquire()
        second = await manager.acquire()
        return first, second, manager.state, len(http.cookies)

    first, second, state, jar = run(_with_manager(fake, go))
    assert first == "wp_id=abc; lang=1"
    assert second == first
    assert state is SessionState.VALID
    assert fake.calls["handshake"] == 1
    # cookies live in the credential only, never in the shared jar
    assert jar == 0


def test_concurrent_acquire_shares_one_handshake():
    fake = FakeWattpad(handshake_delay=0.05)

    async def go(manager, http):
        return await asyncio.gather(*(manager.acquire() for _ in range(8)))

    creds = run(_with_manager(fake, go))
    assert set(creds) == {"wp_id=abc123"}
    assert fake.calls["handshake"] == 1


def test_failed_handshake_yields_empty_credential():
    fake = FakeWattpad(handshake_status=503)

    async def go(manager, http):
        return await manager.acquire(), manager.state

    cred, state = run(_with_manager(fake, go))
    assert cred == ""
    assert state is SessionState.ABSENT


def test_handshake_without_cookies_yields_empty_credential():
    fake = FakeWattpad(cookies=())

    async def go(manager, http):
        return await manager.acquire(), manager.state

    cred, state = run(_with_manager(fake, go))
    assert cred == ""
    assert state is SessionState.ABSENT


def test_invalidate_then_reacquire():
    fake = FakeWattpad()

    async def go(manager, http):
        cred = await manager.acquire()
        manager.invalidate(cred)
        state = manager.state
        await manager.acquire()
        return state

    state = run(_with_manager(fake, go))
    assert state is SessionState.ABSENT
    assert fake.calls["handshake"] == 2


def test_invalidate_with_stale_credential_is_ignored():
    fake = FakeWattpad()

    async def go(manager, http):
        await manager.acquire()
        manager.invalidate("wp_id=old")
        return manager.state, manager.credential

    state, cred = run(_with_manager(fake, go))
    assert state is SessionState.VALID
    assert cred == "wp_id=abc123"


def test_invalidate_when_absent_is_noop():
    fake = FakeWattpad()

    async def go(manager, http):
        manager.invalidate()
        return manager.state

    assert run(_with_manager(fake, go)) is SessionState.ABSENT
    assert fake.calls["handshake"] == 0
