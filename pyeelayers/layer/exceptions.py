"""Exceptions raised by the Earth Engine layer pipeline.

Every error derives from EarthEngineLayerError so callers can catch the whole
family at once. None of them is ever downgraded to a placeholder image: a
tile that is not ready yet yields None, a tile that failed raises.
"""


class EarthEngineLayerError(Exception):
    """Base class for all layer errors."""


class AuthError(EarthEngineLayerError):
    """The remote service rejected the credential."""


class DeserializationError(EarthEngineLayerError):
    """A serialized object reference could not be decoded."""


class ContractError(EarthEngineLayerError):
    """The object handle lacks a capability required by the requested mode."""


class RemoteServiceError(EarthEngineLayerError):
    """Descriptor or thumbnail resolution failed on the service side."""


class FetchError(EarthEngineLayerError):
    """A tile or thumbnail image could not be downloaded."""


class DecodeError(EarthEngineLayerError):
    """Downloaded bytes could not be decoded into usable frames."""
