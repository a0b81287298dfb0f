"""
Earth Engine Layer Module

EarthEngineLayer connects an Earth Engine object to a tiled map renderer. On
every property change it initializes the session, normalizes the object and
resolves a render descriptor, in that order. The renderer then calls
get_tile_data() for each visible tile and picks the active frame of the
returned frames.

Main Class:
    EarthEngineLayer: One map layer backed by an Earth Engine object

Example:
    >>> layer = EarthEngineLayer(service=EarthEngineService())
    >>> await layer.set_props(token=token, ee_object=ee.Image('CGIAR/SRTM90_V4'),
    ...                       vis_params={'min': 0, 'max': 4000})
    >>> frames = await layer.get_tile_data(TileRequest.from_xyz(0, 0, 0))
    >>> image = layer.select_frame(frames)
    >>>
    >>> # Animated ImageCollection
    >>> await layer.set_props(ee_object=collection, animate=True, animation_speed=6)
"""
import logging
import time
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np

from .animation import DEFAULT_ANIMATION_SPEED, AnimationClock, AnimationState
from .descriptors import DescriptorResolver, FilmstripDescriptor, RenderDescriptor, TiledDescriptor
from .earth_engine_service import EarthEngineService
from .exceptions import EarthEngineLayerError
from .objects import ObjectHandle, normalize
from .session import SessionContext, default_session
from .tile_fetcher import BoundingBox, TileFetcher, TileRequest, get_cartopy_source, tile_to_bbox

# Recognized layer properties and their defaults
DEFAULT_PROPS: Dict[str, Any] = {
    'token': None,
    'ee_object': None,
    'vis_params': None,
    # Force animation of the object as an ImageCollection
    'animate': False,
    # Frames per second
    'animation_speed': DEFAULT_ANIMATION_SPEED,
    'refinement_strategy': 'no-overlap',
    'min_zoom': None,
    'max_zoom': None,
    'max_cache_size': None,
    'max_cache_byte_size': None,
    'on_viewport_load': None,
    'on_tile_load': None,
    'on_tile_error': None,
}

# Handed to the rendering engine without being examined
PASSTHROUGH_PROPS = (
    'refinement_strategy',
    'on_viewport_load',
    'on_tile_load',
    'on_tile_error',
    'min_zoom',
    'max_zoom',
    'max_cache_size',
    'max_cache_byte_size',
)


@dataclass
class ChangeFlags:
    data_changed: bool = False


@dataclass
class SubLayer:
    image: Any
    bounds: List[float]


@dataclass
class TileLayerConfig:
    """Everything the tiled renderer needs to draw this layer."""

    id: str
    frame: int
    get_tile_data: Callable
    render_sub_layers: Callable
    refinement_strategy: str = 'no-overlap'
    on_viewport_load: Optional[Callable] = None
    on_tile_load: Optional[Callable] = None
    on_tile_error: Optional[Callable] = None
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None
    max_cache_size: Optional[int] = None
    max_cache_byte_size: Optional[int] = None


class EarthEngineLayer:
    """
    Map layer rendering an Earth Engine object as tiles or as an animation.

    Attributes:
        service: BaseRemoteService talking to Earth Engine
        session (SessionContext): Session shared with other layers
        props (dict): Current layer properties, see DEFAULT_PROPS
        handle (Optional[ObjectHandle]): Normalized `ee_object`
        animation_state (AnimationState): Frame count and active frame
        discard_stale_updates (bool): Drop results of superseded update cycles
    """

    layer_name = 'EarthEngineLayer'

    def __init__(
        self,
        service=None,
        session: Optional[SessionContext] = None,
        time_source: Callable[[], float] = time.time,
        discard_stale_updates: bool = True,
        timeout: Optional[float] = None,
        **props
    ) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        if session is None:
            session = default_session
            if service is not None and session.service is not None and session.service is not service:
                self.logger.debug("Default session is bound to %r, using a private session", session.service)
                session = SessionContext(service)
        if service is None:
            service = session.service or EarthEngineService()
        if session.service is None:
            session.service = service
        self.service = service
        self.session = session

        self._check_props(props)
        self.props: Dict[str, Any] = {**DEFAULT_PROPS, **props}
        self.discard_stale_updates = discard_stale_updates

        self.handle: Optional[ObjectHandle] = None
        self.animation_state = AnimationState()
        self.clock = AnimationClock(self.props['animation_speed'], time_source)
        self.resolver = DescriptorResolver(service)
        self.fetcher = TileFetcher(service, self.animation_state, timeout=timeout,
                                   current_descriptor=lambda: self.resolver.descriptor)

        self._generation = 0
        self._normalized_raw: Any = object()
        self._normalized_animate: Optional[bool] = None
        self._data_changed = False
        self._warned_missing_token = False

    @staticmethod
    async def initialize_ee_api(token: Optional[str] = None, session: Optional[SessionContext] = None,
                                service=None) -> None:
        """
        Initialize the Earth Engine client once for every layer sharing `session`.

        Without a token, the credentials stored by `earthengine authenticate` are used.
        """
        session = session if session is not None else default_session
        if service is not None:
            session.service = service
        elif session.service is None:
            session.service = EarthEngineService()

        if token:
            await session.initialize(token)
        else:
            await session.initialize_with_stored_credentials()

    # State

    @property
    def descriptor(self) -> Optional[RenderDescriptor]:
        return self.resolver.descriptor

    @property
    def map_id(self) -> Optional[str]:
        descriptor = self.descriptor
        return descriptor.map_id if descriptor is not None else None

    @property
    def frame(self) -> Optional[int]:
        return self.animation_state.frame

    @property
    def generation(self) -> int:
        return self._generation

    async def set_props(self, data_changed: bool = False, **props) -> None:
        """Merge `props` into the current properties and run an update cycle."""
        self._check_props(props)
        old_props = dict(self.props)
        await self.update_state({**old_props, **props}, old_props, ChangeFlags(data_changed=data_changed))

    async def update_state(self, props: Dict[str, Any], old_props: Optional[Dict[str, Any]] = None,
                           change_flags: Optional[ChangeFlags] = None) -> None:
        """
        Run one update cycle: session, object, descriptor, then animation clock.

        Each step waits for the previous one. When a newer cycle starts while
        this one is suspended, this cycle's results are discarded unless
        `discard_stale_updates` is False.

        `old_props` is accepted for renderer compatibility. Changes are
        detected against the inputs of the last completed normalization and
        resolution, so an interrupted cycle never hides a change from the next.

        Raises:
            AuthError, DeserializationError, ContractError, RemoteServiceError
        """
        self._generation += 1
        generation = self._generation
        if change_flags is not None and change_flags.data_changed:
            self._data_changed = True

        self.props = {**DEFAULT_PROPS, **props}
        self.clock.speed = self.props['animation_speed']

        await self._update_token(self.props)
        if self._superseded(generation, 'session initialization'):
            return

        self._update_ee_object(self.props)
        await self._update_vis_params(self.props, generation)
        self._animate()

    def tick(self) -> Optional[int]:
        """Sample the animation clock; returns the active frame."""
        return self._animate()

    async def _update_token(self, props: Dict[str, Any]) -> None:
        token = props['token'] or self.service.token_from_environment()
        if not token:
            if not self.session.initialized and not self._warned_missing_token:
                warnings.warn(
                    "No Earth Engine token given. Provide it via the token prop, the "
                    "EARTHENGINE_TOKEN environment variable, or EarthEngineLayer.initialize_ee_api().",
                    UserWarning
                )
                self._warned_missing_token = True
            return
        await self.session.initialize(token)

    def _update_ee_object(self, props: Dict[str, Any]) -> None:
        raw, animate = props['ee_object'], props['animate']
        if self._same_object(raw, self._normalized_raw) and animate == self._normalized_animate:
            return

        self.handle = normalize(raw, animate, self.service)
        self._normalized_raw, self._normalized_animate = raw, animate
        self.logger.debug("Normalized ee_object into %s", self.handle)

    @staticmethod
    def _same_object(raw: Any, previous: Any) -> bool:
        # Serialized objects arrive as new strings on every render
        if isinstance(raw, str) and isinstance(previous, str):
            return raw == previous
        return raw is previous

    async def _update_vis_params(self, props: Dict[str, Any], generation: int) -> None:
        handle = self.handle
        vis_params = props['vis_params']
        animate = props['animate']

        if not self.session.initialized:
            self.logger.debug("No session initialized yet, descriptor not resolved")
            return
        if self.resolver.is_current(handle, vis_params, animate, self._data_changed):
            return

        if handle is None:
            descriptor = None
        else:
            descriptor = await self.resolver.request(handle, vis_params, animate)
            if self._superseded(generation, 'descriptor resolution'):
                return

        self.resolver.commit(handle, vis_params, animate, descriptor)
        self._data_changed = False
        if not isinstance(descriptor, FilmstripDescriptor):
            self.animation_state.reset()
        self.logger.debug("Resolved descriptor %s", descriptor)

    def _animate(self) -> Optional[int]:
        return self.clock.update(self.animation_state)

    def _superseded(self, generation: int, step: str) -> bool:
        if not self.discard_stale_updates or generation == self._generation:
            return False
        self.logger.debug("Discarding %s of update cycle %d, cycle %d is current",
                          step, generation, self._generation)
        return True

    @staticmethod
    def _check_props(props: Dict[str, Any]) -> None:
        unknown = set(props) - set(DEFAULT_PROPS)
        if unknown:
            warnings.warn(f"Unknown layer props ignored by the pipeline: {', '.join(sorted(unknown))}",
                          UserWarning)

    # Tiles

    async def get_tile_data(self, request: Union[TileRequest, Dict[str, Any]]) -> Optional[List[Any]]:
        """
        Fetch the frames for one tile using the descriptor current at call time.

        Returns:
            List of decoded images (one in tiled mode), or None when no
            descriptor has been resolved yet

        Raises:
            FetchError, DecodeError, RemoteServiceError
        """
        return await self.fetcher.fetch(self._as_request(request), self.descriptor)

    async def _get_tile_data_with_callbacks(self, request):
        try:
            data = await self.get_tile_data(request)
        except EarthEngineLayerError as e:
            on_tile_error = self.props['on_tile_error']
            if on_tile_error:
                on_tile_error(e)
            raise
        on_tile_load = self.props['on_tile_load']
        if on_tile_load and data is not None:
            on_tile_load(request)
        return data

    def select_frame(self, data: Optional[List[Any]], frame: Optional[int] = None) -> Any:
        """
        Pick the active frame out of the frames returned by get_tile_data().

        A single frame (tiled mode) is returned whatever the active frame is.
        """
        if not data:
            return None
        if len(data) == 1:
            return data[0]
        if frame is None:
            frame = self.frame or 0
        return data[frame] if frame < len(data) else None

    def frame_array(self, data: Optional[List[Any]], frame: Optional[int] = None) -> Optional[np.ndarray]:
        """The active frame as a NumPy array (height, width, channels)."""
        image = self.select_frame(data, frame)
        return np.array(image) if image is not None else None

    def render_sub_layer(self, data: Optional[List[Any]],
                         tile: Union[TileRequest, Dict[str, Any]]) -> Optional[SubLayer]:
        """Image and [west, south, east, north] bounds for one loaded tile."""
        image = self.select_frame(data)
        if image is None:
            return None
        request = self._as_request(tile)
        bbox = request.bbox or tile_to_bbox(request.x, request.y, request.z)
        return SubLayer(image=image, bounds=[bbox.west, bbox.south, bbox.east, bbox.north])

    def render_layers(self) -> Optional[TileLayerConfig]:
        """Tile layer configuration, or None until a map id has been resolved."""
        map_id = self.map_id
        if not map_id:
            return None

        passthrough = {key: self.props[key] for key in PASSTHROUGH_PROPS}
        return TileLayerConfig(
            id=f"{self.layer_name}-{map_id}",
            frame=self.frame or 0,
            get_tile_data=self._get_tile_data_with_callbacks,
            render_sub_layers=self.render_sub_layer,
            **passthrough
        )

    def get_cartopy_source(self):
        """Cartopy tile source for the resolved tiled-mode URL template."""
        descriptor = self.descriptor
        if not isinstance(descriptor, TiledDescriptor) or not descriptor.url_template:
            raise ValueError("No tiled-mode URL template has been resolved for this layer")
        return get_cartopy_source(descriptor.url_template)

    @staticmethod
    def _as_request(request: Union[TileRequest, Dict[str, Any]]) -> TileRequest:
        if isinstance(request, TileRequest):
            return request
        bbox = request.get('bbox')
        if isinstance(bbox, dict):
            bbox = BoundingBox(**bbox)
        return TileRequest(x=request['x'], y=request['y'], z=request['z'], bbox=bbox)

    def __repr__(self) -> str:
        return f"EarthEngineLayer(map_id={self.map_id!r}, animate={self.props['animate']})"
