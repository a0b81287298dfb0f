"""Tests for render descriptor resolution."""

import asyncio

import pytest

from conftest import URL_FORMAT, FakeObject
from pyeelayers.layer.descriptors import DescriptorResolver, FilmstripDescriptor, TiledDescriptor
from pyeelayers.layer.exceptions import ContractError, RemoteServiceError
from pyeelayers.layer.objects import normalize


def test_tiled_descriptor(service):
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image'), False, service)

    descriptor = asyncio.run(resolver.resolve(handle, {'min': 0}, animate=False))

    assert descriptor == TiledDescriptor(map_id='map-1', url_template=URL_FORMAT)
    assert resolver.descriptor is descriptor
    assert service.calls[-1] == ('get_map', (handle.obj, {'min': 0}))


def test_filmstrip_descriptor_still_evaluates_map(service):
    """Animated mode keeps a stable map id from one map evaluation."""
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image_collection'), True, service)

    descriptor = asyncio.run(resolver.resolve(handle, {'bands': ['B1']}, animate=True))

    assert isinstance(descriptor, FilmstripDescriptor)
    assert descriptor.map_id == 'map-1'
    assert descriptor.handle is handle
    assert descriptor.vis_params == {'bands': ['B1']}
    assert service.count('get_map') == 1


def test_skips_when_inputs_unchanged(service):
    """Deep-equal vis params and the same handle do not trigger another round trip."""
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image'), False, service)

    async def run():
        first = await resolver.resolve(handle, {'palette': ['00ff00', 'ff0000']}, False)
        second = await resolver.resolve(handle, {'palette': ['00ff00', 'ff0000']}, False)
        return first, second

    first, second = asyncio.run(run())
    assert second is first
    assert service.count('get_map') == 1


@pytest.mark.parametrize('change', ['vis_params', 'handle', 'data_changed', 'animate'])
def test_resolves_again_on_change(service, change):
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image_collection'), False, service)

    async def run():
        await resolver.resolve(handle, {'min': 0}, False)
        if change == 'vis_params':
            await resolver.resolve(handle, {'min': 1}, False)
        elif change == 'handle':
            other = normalize(FakeObject('image_collection'), False, service)
            await resolver.resolve(other, {'min': 0}, False)
        elif change == 'data_changed':
            await resolver.resolve(handle, {'min': 0}, False, data_changed=True)
        else:
            await resolver.resolve(handle, {'min': 0}, True)

    asyncio.run(run())
    assert service.count('get_map') == 2


def test_none_handle_clears_descriptor(service):
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image'), False, service)

    async def run():
        await resolver.resolve(handle, None, False)
        return await resolver.resolve(None, None, False)

    assert asyncio.run(run()) is None
    assert resolver.descriptor is None


def test_missing_map_evaluation_raises(service):
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('geometry', map_eval=False), False, service)

    with pytest.raises(ContractError):
        asyncio.run(resolver.resolve(handle, None, False))
    assert service.count('get_map') == 0


def test_animate_without_thumbnail_support_raises_before_rpc(service):
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image_collection', thumbnail=False), False, service)

    with pytest.raises(ContractError, match='animated thumbnail'):
        asyncio.run(resolver.resolve(handle, None, True))
    assert service.count('get_map') == 0


def test_service_failure_becomes_remote_service_error(service):
    def fail(obj, vis_params):
        raise RuntimeError('backend unavailable')

    service.get_map = fail
    resolver = DescriptorResolver(service)
    handle = normalize(FakeObject('image'), False, service)

    with pytest.raises(RemoteServiceError, match='backend unavailable'):
        asyncio.run(resolver.resolve(handle, None, False))
    assert resolver.descriptor is None
