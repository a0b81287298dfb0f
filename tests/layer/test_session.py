"""Tests for session initialization."""

import asyncio

import pytest

from conftest import FakeService
from pyeelayers.layer.exceptions import AuthError
from pyeelayers.layer.session import SessionContext


def test_initializes_once_per_token(service, session):
    async def run():
        await session.initialize('T1')
        await session.initialize('T1')

    asyncio.run(run())
    assert session.current_token == 'T1'
    assert session.initialized
    assert service.count('initialize_session') == 1


def test_new_token_reinitializes(service, session):
    async def run():
        await session.initialize('T1')
        await session.initialize('T2')

    asyncio.run(run())
    assert session.current_token == 'T2'
    assert service.count('initialize_session') == 2


def test_empty_token_is_noop(service, session):
    asyncio.run(session.initialize(None))
    asyncio.run(session.initialize(''))
    assert not session.initialized
    assert service.count('initialize_session') == 0


def test_rejected_token_propagates_and_keeps_previous():
    """A rejected token raises AuthError and leaves the active token unchanged."""
    service = FakeService(rejected_tokens={'BAD'})
    session = SessionContext(service)

    async def run():
        await session.initialize('T1')
        await session.initialize('BAD')

    with pytest.raises(AuthError):
        asyncio.run(run())
    assert session.current_token == 'T1'


def test_unexpected_service_errors_become_auth_errors(session, service):
    def boom(token):
        raise RuntimeError('network down')

    service.initialize_session = boom
    with pytest.raises(AuthError, match='network down'):
        asyncio.run(session.initialize('T1'))
    assert not session.initialized


def test_concurrent_same_token_initializes_once(service, session):
    """Callers racing on the same token share one initialization."""
    async def run():
        await asyncio.gather(*(session.initialize('T1') for _ in range(5)))

    asyncio.run(run())
    assert service.count('initialize_session') == 1
    assert session.current_token == 'T1'


def test_stored_credentials(service, session):
    asyncio.run(session.initialize_with_stored_credentials())
    assert session.initialized
    assert session.current_token is None
    assert service.count('initialize_client') == 1


def test_missing_service_raises():
    with pytest.raises(AuthError):
        asyncio.run(SessionContext().initialize('T1'))


def test_reset(session):
    asyncio.run(session.initialize('T1'))
    session.reset()
    assert session.current_token is None
    assert not session.initialized
