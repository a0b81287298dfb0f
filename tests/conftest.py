"""Shared pytest fixtures: an in-memory remote service and PNG builders."""

import json
from io import BytesIO
from unittest.mock import MagicMock

import pytest
from PIL import Image

from pyeelayers.layer.base_remote_service import BaseRemoteService
from pyeelayers.layer.earth_engine_layer import EarthEngineLayer
from pyeelayers.layer.exceptions import AuthError, DeserializationError
from pyeelayers.layer.objects import KIND_IMAGE_COLLECTION, ObjectHandle
from pyeelayers.layer.session import SessionContext

URL_FORMAT = 'https://tiles.example.com/{z}/{x}/{y}.png'
FILMSTRIP_URL = 'https://thumbs.example.com/filmstrip.png'


class FakeObject:
    """Stand-in for a remote client object."""

    def __init__(self, kind='image', map_eval=True, thumbnail=None):
        self.kind = kind
        self.map_eval = map_eval
        self.thumbnail = kind == KIND_IMAGE_COLLECTION if thumbnail is None else thumbnail

    def __repr__(self):
        return f"FakeObject({self.kind!r})"


class FakeService(BaseRemoteService):
    """Records every call; answers with canned map ids and URLs."""

    def __init__(self, rejected_tokens=()):
        super().__init__('EarthEngine')
        self.calls = []
        self.rejected_tokens = set(rejected_tokens)
        self.map_result = {'mapid': 'map-1', 'url_format': URL_FORMAT}
        self.film_url = FILMSTRIP_URL

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)

    def initialize_session(self, token):
        self.calls.append(('initialize_session', token))
        if token in self.rejected_tokens:
            raise AuthError(f"token {token} rejected")

    def initialize_client(self, token=None):
        self.calls.append(('initialize_client', token))

    def get_map(self, obj, vis_params):
        self.calls.append(('get_map', (obj, vis_params)))
        return dict(self.map_result)

    def get_filmstrip_thumb_url(self, obj, params):
        self.calls.append(('get_filmstrip_thumb_url', (obj, params)))
        return self.film_url

    def deserialize(self, text):
        try:
            return FakeObject(**json.loads(text))
        except (ValueError, TypeError) as e:
            raise DeserializationError(str(e)) from e

    def describe(self, obj):
        return ObjectHandle(
            obj=obj,
            kind=obj.kind,
            supports_map_eval=obj.map_eval,
            supports_animated_thumbnail=obj.thumbnail,
        )

    def to_image_collection(self, obj):
        self.calls.append(('to_image_collection', obj))
        return FakeObject(KIND_IMAGE_COLLECTION)

    def rectangle(self, coords, crs, geodesic):
        return {'coords': list(coords), 'crs': crs, 'geodesic': geodesic}


def make_png(width=256, height=256, frames=None):
    """PNG bytes; with `frames`, each 256-pixel band is filled with red = 10 * index."""
    image = Image.new('RGB', (width, height))
    if frames:
        for i in range(frames):
            image.paste((10 * i, 0, 0), (0, i * 256, width, (i + 1) * 256))
    buffer = BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def http_response(content=b'', status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    return response


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def session(service):
    return SessionContext(service)


@pytest.fixture
def layer(service, session):
    return EarthEngineLayer(service=service, session=session)
