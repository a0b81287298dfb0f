"""Normalization of remote object references into ObjectHandles.

A layer accepts its `ee_object` either as a JSON-serialized expression or as
an object of the remote client library. Before anything is asked of the
service, the reference is turned into an ObjectHandle whose capability tags
say which render modes it can take part in.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import DeserializationError

logger = logging.getLogger(__name__)

KIND_IMAGE = 'image'
KIND_IMAGE_COLLECTION = 'image_collection'
KIND_FEATURE_COLLECTION = 'feature_collection'
KIND_GEOMETRY = 'geometry'
KIND_UNKNOWN = 'unknown'


@dataclass(frozen=True)
class ObjectHandle:
    """Canonical reference to a remote-evaluable object.

    Attributes:
        obj: The underlying client object (e.g. an ee.Image)
        kind: One of the KIND_* constants
        supports_map_eval: Whether the object can be evaluated into map tiles
        supports_animated_thumbnail: Whether a filmstrip thumbnail can be requested
    """

    obj: Any
    kind: str = KIND_UNKNOWN
    supports_map_eval: bool = False
    supports_animated_thumbnail: bool = False

    @property
    def is_collection(self) -> bool:
        return self.kind == KIND_IMAGE_COLLECTION


def normalize(raw: Any, animate: bool, service) -> Optional[ObjectHandle]:
    """
    Convert a raw `ee_object` prop into an ObjectHandle.

    Args:
        raw: Serialized JSON string, client object, ObjectHandle, or None
        animate: Coerce the result into an image collection
        service: BaseRemoteService used for deserialization and coercion

    Returns:
        ObjectHandle, or None when there is nothing to render

    Raises:
        DeserializationError: If `raw` is a malformed serialized object

    Example:
        >>> handle = normalize(image_json, animate=False, service=service)
        >>> handle.supports_map_eval
        True
    """
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)) and len(raw) == 0:
        return None

    if isinstance(raw, ObjectHandle):
        handle = raw
    elif isinstance(raw, str):
        try:
            obj = service.deserialize(raw)
        except DeserializationError:
            raise
        except Exception as e:
            raise DeserializationError(f"Failed to deserialize object: {e}") from e
        handle = service.describe(obj)
    else:
        handle = service.describe(raw)

    if animate and not handle.is_collection:
        logger.debug("Coercing %s handle into an image collection", handle.kind)
        handle = service.describe(service.to_image_collection(handle.obj))

    return handle
