"""Render descriptors and their resolution.

A render descriptor is everything needed to fetch pixels for the current
object and visualization parameters:

- TiledDescriptor: a map id and a {x}/{y}/{z} URL template, one request per tile
- FilmstripDescriptor: a map id plus the handle and parameters used to request
  one stacked animation thumbnail per tile

Both modes evaluate the object with one map request so the layer always has a
stable id.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .exceptions import ContractError, EarthEngineLayerError, RemoteServiceError
from .objects import ObjectHandle
from .utils import deep_equal, run_blocking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TiledDescriptor:
    map_id: str
    url_template: Optional[str]


@dataclass(frozen=True)
class FilmstripDescriptor:
    map_id: str
    handle: ObjectHandle
    vis_params: Optional[Dict[str, Any]] = None


RenderDescriptor = Union[TiledDescriptor, FilmstripDescriptor]

_UNSET = object()


class DescriptorResolver:
    """
    Requests render descriptors from the remote service.

    The resolver remembers the inputs of its last resolution and skips the
    round trip when nothing relevant changed.

    Attributes:
        service: BaseRemoteService used for map evaluation
        descriptor (Optional[RenderDescriptor]): Result of the last resolution
    """

    def __init__(self, service) -> None:
        self.service = service
        self.descriptor: Optional[RenderDescriptor] = None
        self._last_handle: Any = _UNSET
        self._last_vis_params: Any = _UNSET
        self._last_animate: Any = _UNSET

    def is_current(self, handle: Optional[ObjectHandle], vis_params: Optional[Dict[str, Any]],
                   animate: bool, data_changed: bool = False) -> bool:
        """Return True when `resolve` would reuse the previous descriptor."""
        return (
            not data_changed
            and handle is self._last_handle
            and animate == self._last_animate
            and deep_equal(vis_params, self._last_vis_params)
        )

    async def resolve(
        self,
        handle: Optional[ObjectHandle],
        vis_params: Optional[Dict[str, Any]],
        animate: bool,
        data_changed: bool = False
    ) -> Optional[RenderDescriptor]:
        """
        Resolve the descriptor for `handle` and `vis_params`.

        Args:
            handle: Normalized object, or None when there is nothing to show
            vis_params: Visualization parameters, passed to the service unchanged
            animate: Resolve a FilmstripDescriptor instead of a TiledDescriptor
            data_changed: Force a new round trip even if the inputs look unchanged

        Returns:
            The new descriptor, the previous one if inputs are unchanged, or
            None when `handle` is None

        Raises:
            ContractError: If the handle cannot be used in the requested mode
            RemoteServiceError: If the map evaluation fails
        """
        if self.is_current(handle, vis_params, animate, data_changed):
            logger.debug("Inputs unchanged, reusing descriptor %s", self.descriptor)
            return self.descriptor

        if handle is None:
            self._remember(handle, vis_params, animate, None)
            return None

        descriptor = await self.request(handle, vis_params, animate)
        self._remember(handle, vis_params, animate, descriptor)
        return descriptor

    async def request(
        self,
        handle: ObjectHandle,
        vis_params: Optional[Dict[str, Any]],
        animate: bool
    ) -> RenderDescriptor:
        """Perform the map evaluation round trip without touching resolver state."""
        if not handle.supports_map_eval:
            raise ContractError(f"{handle.kind} object must support map evaluation")
        if animate and not handle.supports_animated_thumbnail:
            raise ContractError(
                f"{handle.kind} object must support animated thumbnail retrieval to animate"
            )

        try:
            result = await run_blocking(self.service.get_map, handle.obj, vis_params)
        except EarthEngineLayerError:
            raise
        except Exception as e:
            raise RemoteServiceError(f"Map evaluation failed: {e}") from e

        map_id = result['mapid']
        if animate:
            return FilmstripDescriptor(map_id=map_id, handle=handle, vis_params=vis_params)
        return TiledDescriptor(map_id=map_id, url_template=result.get('url_format'))

    def commit(self, handle, vis_params, animate, descriptor) -> None:
        """Record a descriptor produced by `request` as the current one."""
        self._remember(handle, vis_params, animate, descriptor)

    def _remember(self, handle, vis_params, animate, descriptor) -> None:
        self._last_handle = handle
        self._last_vis_params = vis_params
        self._last_animate = animate
        self.descriptor = descriptor
