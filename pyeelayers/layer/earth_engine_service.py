"""
Earth Engine Service Module

Concrete BaseRemoteService backed by the `earthengine-api` client library.
All calls here are blocking; the layer offloads them from the event loop.

Example:
    >>> service = EarthEngineService(project='my-project')
    >>> service.initialize_session(token)
    >>> handle = service.describe(ee.Image('USGS/SRTMGL1_003'))
    >>> service.get_map(handle.obj, {'min': 0, 'max': 4000})
    {'mapid': 'projects/.../maps/...', 'url_format': 'https://.../tiles/{z}/{x}/{y}'}
"""
import logging
from typing import Any, Dict, Optional, Sequence

import ee
from google.oauth2.credentials import Credentials

from .base_remote_service import BaseRemoteService
from .exceptions import AuthError, DeserializationError
from .objects import (
    KIND_FEATURE_COLLECTION,
    KIND_GEOMETRY,
    KIND_IMAGE,
    KIND_IMAGE_COLLECTION,
    KIND_UNKNOWN,
    ObjectHandle,
)

logger = logging.getLogger(__name__)

# Return types of deserialized expressions, mapped to the client class used to cast them
_RETURN_TYPES = {
    'Image': (ee.Image, KIND_IMAGE),
    'ImageCollection': (ee.ImageCollection, KIND_IMAGE_COLLECTION),
    'FeatureCollection': (ee.FeatureCollection, KIND_FEATURE_COLLECTION),
    'Feature': (ee.Feature, KIND_GEOMETRY),
    'Geometry': (ee.Geometry, KIND_GEOMETRY),
}


class EarthEngineService(BaseRemoteService):
    """
    Earth Engine client used by EarthEngineLayer.

    Attributes:
        project (Optional[str]): Cloud project passed to ee.Initialize
    """

    def __init__(self, project: Optional[str] = None, service: str = 'EarthEngine') -> None:
        super().__init__(service)
        self.project = project

    def initialize_session(self, token: str) -> None:
        credentials = Credentials(token)
        try:
            ee.Initialize(credentials=credentials, project=self.project)
        except ee.EEException as e:
            raise AuthError(f"Earth Engine rejected the access token: {e}") from e
        logger.info("Earth Engine session initialized")

    def initialize_client(self, token: Optional[str] = None) -> None:
        """Initialize from a token, or from the credentials stored by `earthengine authenticate`."""
        if token:
            self.initialize_session(token)
            return
        try:
            ee.Initialize(project=self.project)
        except ee.EEException as e:
            raise AuthError(f"Earth Engine initialization failed: {e}") from e
        logger.info("Earth Engine session initialized from stored credentials")

    def get_map(self, obj: Any, vis_params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        map_id = obj.getMapId(vis_params or {})
        return {
            'mapid': map_id['mapid'],
            'url_format': map_id['tile_fetcher'].url_format,
        }

    def get_filmstrip_thumb_url(self, obj: Any, params: Dict[str, Any]) -> str:
        return obj.getFilmstripThumbURL(params)

    def deserialize(self, text: str) -> Any:
        try:
            return ee.deserializer.fromJSON(text)
        except (ValueError, TypeError, KeyError, ee.EEException) as e:
            raise DeserializationError(f"Malformed serialized Earth Engine object: {e}") from e

    def describe(self, obj: Any) -> ObjectHandle:
        obj, kind = self._cast(obj)
        return ObjectHandle(
            obj=obj,
            kind=kind,
            supports_map_eval=callable(getattr(obj, 'getMapId', None)),
            supports_animated_thumbnail=callable(getattr(obj, 'getFilmstripThumbURL', None)),
        )

    def to_image_collection(self, obj: Any) -> Any:
        return ee.ImageCollection(obj)

    def rectangle(self, coords: Sequence[float], crs: str, geodesic: bool) -> Any:
        return ee.Geometry.Rectangle(list(coords), crs, geodesic)

    @staticmethod
    def _cast(obj: Any):
        """Return (client object, kind), casting generic deserialized expressions."""
        if isinstance(obj, ee.ImageCollection):
            return obj, KIND_IMAGE_COLLECTION
        if isinstance(obj, ee.Image):
            return obj, KIND_IMAGE
        if isinstance(obj, ee.FeatureCollection):
            return obj, KIND_FEATURE_COLLECTION
        if isinstance(obj, (ee.Feature, ee.Geometry)):
            return obj, KIND_GEOMETRY

        func = getattr(obj, 'func', None)
        if isinstance(obj, ee.ComputedObject) and func is not None:
            return_type = func.getSignature().get('returns')
            if return_type in _RETURN_TYPES:
                cls, kind = _RETURN_TYPES[return_type]
                return cls(obj), kind
        return obj, KIND_UNKNOWN
