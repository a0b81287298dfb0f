"""
PyEELayers Layer Module

Provides a tiled map layer backed by Google Earth Engine objects.

Main Components:
- EarthEngineLayer: Map layer resolving tiles or animated filmstrips for an Earth Engine object
- EarthEngineService: Earth Engine client used by the layer
- TileRequest / BoundingBox: Tile coordinates handed out by the rendering engine
"""

from pyeelayers.layer.earth_engine_layer import EarthEngineLayer, TileLayerConfig
from pyeelayers.layer.earth_engine_service import EarthEngineService
from pyeelayers.layer.exceptions import (
    AuthError,
    ContractError,
    DecodeError,
    DeserializationError,
    EarthEngineLayerError,
    FetchError,
    RemoteServiceError,
)
from pyeelayers.layer.session import SessionContext, default_session
from pyeelayers.layer.tile_fetcher import BoundingBox, TileRequest

__all__ = [
    'EarthEngineLayer',
    'TileLayerConfig',
    'EarthEngineService',
    'SessionContext',
    'default_session',
    'TileRequest',
    'BoundingBox',
    'EarthEngineLayerError',
    'AuthError',
    'DeserializationError',
    'ContractError',
    'RemoteServiceError',
    'FetchError',
    'DecodeError',
]
