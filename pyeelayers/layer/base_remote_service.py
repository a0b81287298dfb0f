"""Base remote compute service and service registry.

This module provides a small base class that centralizes what every remote
compute backend used by the layer has to offer:
- service registry handling and introspection
- access token resolution from the environment
- the three RPC shapes the layer relies on (session initialization, map
  evaluation, animated thumbnail URL)
- the local, network-free helpers used while normalizing objects

Subclasses should define an entry in `_SERVICES` and implement the
NotImplementedError methods.
"""
import os
from typing import Any, Dict, List, Optional, Sequence


class BaseRemoteService:
    """Minimal base class for remote compute service clients.

    Subclasses pick a service name from the class-level `_SERVICES` registry,
    which carries the constants the tile pipeline needs (tile size, the
    coordinate reference systems used for filmstrip requests).
    """

    _SERVICES: Dict[str, Dict[str, Any]] = {
        'EarthEngine': {
            'description': 'Google Earth Engine',
            'tile_size': 256,
            'region_crs': 'EPSG:4326',
            'thumbnail_crs': 'EPSG:3857',
            'token_env': 'EARTHENGINE_TOKEN',
        },
    }

    def __init__(self, service: str = 'EarthEngine') -> None:
        if service not in self._SERVICES:
            available = ', '.join(self._SERVICES.keys())
            raise ValueError(f"Unknown service '{service}'. Available services: {available}")

        self.service = service
        self._config = self._SERVICES[service].copy()
        self.tile_size = self._config['tile_size']

    @property
    def region_crs(self) -> str:
        return self._config['region_crs']

    @property
    def thumbnail_crs(self) -> str:
        return self._config['thumbnail_crs']

    def token_from_environment(self) -> Optional[str]:
        """Return the access token configured in the environment, if any."""
        env_key = self._config.get('token_env')
        return os.environ.get(env_key) if env_key else None

    # RPC shapes

    def initialize_session(self, token: str) -> None:
        """Authenticate the client with `token`. Raises AuthError on rejection."""
        raise NotImplementedError

    def initialize_client(self, token: Optional[str] = None) -> None:
        """Authenticate with `token`, or with locally stored credentials when it is None."""
        raise NotImplementedError

    def get_map(self, obj: Any, vis_params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Evaluate `obj` for map display.

        Returns:
            Dictionary with 'mapid' and 'url_format' entries. 'url_format'
            contains literal {x}, {y} and {z} tokens.
        """
        raise NotImplementedError

    def get_filmstrip_thumb_url(self, obj: Any, params: Dict[str, Any]) -> str:
        """Return the URL of a vertically stacked animation thumbnail."""
        raise NotImplementedError

    # Local helpers, no network

    def deserialize(self, text: str) -> Any:
        """Decode a serialized object. Raises DeserializationError."""
        raise NotImplementedError

    def describe(self, obj: Any):
        """Wrap a service object into an ObjectHandle with capability tags."""
        raise NotImplementedError

    def to_image_collection(self, obj: Any) -> Any:
        """Coerce `obj` into a collection of images."""
        raise NotImplementedError

    def rectangle(self, coords: Sequence[float], crs: str, geodesic: bool) -> Any:
        """Build a rectangle geometry from [west, south, east, north]."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(service='{self.service}', tile_size={self.tile_size})"

    # Class methods

    @classmethod
    def get_available_services(cls) -> List[str]:
        """Return a list of service keys supported by this class."""
        return list(cls._SERVICES.keys())

    @classmethod
    def get_service_info(cls, service: Optional[str] = None) -> Dict[str, Any]:
        """Return info for a single service or for all services.

        Raises ValueError if a requested service is unknown.
        """
        if service:
            if service not in cls._SERVICES:
                raise ValueError(f"Unknown service '{service}'")
            return cls._SERVICES[service].copy()
        return {k: v.copy() for k, v in cls._SERVICES.items()}
