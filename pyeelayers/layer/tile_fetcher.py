"""
Tile Fetcher Module

Downloads and decodes the imagery for one map tile, in either render mode:

- Tiled mode: the {x}/{y}/{z} tokens of the descriptor's URL template are
  substituted and the resulting image is fetched.
- Filmstrip mode: one thumbnail covering the tile's bounding box is requested
  from the remote service. It holds every animation frame stacked vertically
  and is sliced into tile-sized frames.

Both modes return a list of frames (length 1 in tiled mode) so the rendering
side only ever indexes by the active frame.

Example:
    >>> fetcher = TileFetcher(EarthEngineService())
    >>> frames = await fetcher.fetch_tile(TileRequest(x=3, y=7, z=2), descriptor)
    >>> frames[0].size
    (256, 256)
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Tuple

import cartopy.io.img_tiles as cimgt
import requests
from PIL import Image, UnidentifiedImageError

from .animation import AnimationState
from .descriptors import FilmstripDescriptor, RenderDescriptor, TiledDescriptor
from .exceptions import DecodeError, EarthEngineLayerError, FetchError, RemoteServiceError
from .utils import run_blocking

logger = logging.getLogger(__name__)

TILE_SIZE = 256


@dataclass(frozen=True)
class BoundingBox:
    west: float
    north: float
    east: float
    south: float

    def as_rectangle(self) -> List[float]:
        """Corners in the [west, south, east, north] order rectangles are built from."""
        return [self.west, self.south, self.east, self.north]


@dataclass(frozen=True)
class TileRequest:
    """
    One visible tile, as handed out by the rendering engine.

    Attributes:
        x (int): Tile X coordinate
        y (int): Tile Y coordinate
        z (int): Zoom level
        bbox (Optional[BoundingBox]): Geographic bounds, required in filmstrip mode
    """

    x: int
    y: int
    z: int
    bbox: Optional[BoundingBox] = None

    @classmethod
    def from_xyz(cls, x: int, y: int, z: int) -> 'TileRequest':
        """Build a request whose bbox is derived from the slippy-map tile indices."""
        return cls(x=x, y=y, z=z, bbox=tile_to_bbox(x, y, z))


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> Tuple[int, int]:
    """
    Convert longitude and latitude to tile indices at a given zoom level.

    Example:
        >>> x, y = lonlat_to_tile(-122.4, 37.8, zoom=10)
    """
    lat_rad = math.radians(lat)
    n = 2.0 ** zoom
    x_tile = int((lon + 180.0) / 360.0 * n)
    y_tile = int(
        (1.0 - math.log(math.tan(lat_rad) + (1 / math.cos(lat_rad))) / math.pi)
        / 2.0
        * n
    )
    return x_tile, y_tile


def tile_to_lonlat(x: int, y: int, zoom: int) -> Tuple[float, float]:
    """Return the longitude and latitude of the north-west corner of a tile."""
    n = 2.0 ** zoom
    lon = x / n * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
    return lon, lat


def tile_to_bbox(x: int, y: int, zoom: int) -> BoundingBox:
    """
    Geographic bounds of a tile.

    Example:
        >>> tile_to_bbox(0, 0, 0).west
        -180.0
    """
    west, north = tile_to_lonlat(x, y, zoom)
    east, south = tile_to_lonlat(x + 1, y + 1, zoom)
    return BoundingBox(west=west, north=north, east=east, south=south)


def build_tile_url(url_template: str, x: int, y: int, z: int) -> str:
    """
    Substitute tile coordinates into a URL template.

    Only the first occurrence of each of {x}, {y} and {z} is replaced.

    Example:
        >>> build_tile_url('https://x/{z}/{x}/{y}.png', x=3, y=7, z=2)
        'https://x/2/3/7.png'
    """
    return (
        url_template
        .replace('{x}', str(x), 1)
        .replace('{y}', str(y), 1)
        .replace('{z}', str(z), 1)
    )


def get_cartopy_source(url_template: str) -> cimgt.GoogleTiles:
    """
    Wrap a resolved URL template as a Cartopy tile source for ax.add_image().

    Example:
        >>> ax.add_image(get_cartopy_source(descriptor.url_template), 8)
    """
    class DescriptorTileSource(cimgt.GoogleTiles):
        def _image_url(self, tile):
            x, y, z = tile
            return build_tile_url(url_template, x, y, z)

    return DescriptorTileSource()


class TileFetcher:
    """
    Fetches and decodes tile imagery for the current descriptor.

    Attributes:
        service: BaseRemoteService used for filmstrip thumbnail URLs
        animation_state (AnimationState): Receives the frame count of each filmstrip
        current_descriptor (Optional[Callable]): Returns the descriptor in use; a
            filmstrip fetched for any other descriptor leaves animation_state alone
        tile_size (int): Edge length of a tile and of a filmstrip frame in pixels
        timeout (Optional[float]): Passed to requests; None leaves it to the transport
    """

    def __init__(self, service, animation_state: Optional[AnimationState] = None,
                 timeout: Optional[float] = None,
                 current_descriptor: Optional[Callable[[], Optional[RenderDescriptor]]] = None) -> None:
        self.service = service
        self.animation_state = animation_state if animation_state is not None else AnimationState()
        self.current_descriptor = current_descriptor
        self.tile_size = getattr(service, 'tile_size', None) or TILE_SIZE
        self.timeout = timeout

    async def fetch(self, request: TileRequest,
                    descriptor: Optional[RenderDescriptor]) -> Optional[List[Image.Image]]:
        """Dispatch to the fetch method matching the descriptor type."""
        if isinstance(descriptor, FilmstripDescriptor):
            if request.bbox is None:
                raise FetchError(f"Filmstrip tile {request} has no bounding box")
            return await self.fetch_filmstrip(request.bbox, descriptor)
        return await self.fetch_tile(request, descriptor)

    async def fetch_tile(self, request: TileRequest,
                         descriptor: Optional[TiledDescriptor]) -> Optional[List[Image.Image]]:
        """
        Fetch a single tile in tiled mode.

        Returns:
            One-element list holding the decoded image, or None when no URL
            template has been resolved yet

        Raises:
            FetchError: If the download fails
            DecodeError: If the response is not an image
        """
        if descriptor is None or not descriptor.url_template:
            return None

        url = build_tile_url(descriptor.url_template, request.x, request.y, request.z)
        content = await run_blocking(self._download, url)
        image = await run_blocking(self._decode, content, url)
        return [image]

    async def fetch_filmstrip(self, bbox: BoundingBox,
                              descriptor: FilmstripDescriptor) -> List[Image.Image]:
        """
        Fetch the animation frames covering `bbox`.

        The region is a non-geodesic rectangle so its edges stay straight in
        pixel space and neighbouring tiles line up.

        Returns:
            Frames in time order, each tile_size x tile_size

        Raises:
            RemoteServiceError: If the service cannot produce the thumbnail URL
            FetchError: If the thumbnail download fails
            DecodeError: If the thumbnail is not an image or its height is not a
                multiple of the tile size
        """
        region = self.service.rectangle(bbox.as_rectangle(), self.service.region_crs, False)
        film_args = self.filmstrip_params(descriptor.vis_params, region)

        try:
            url = await run_blocking(self.service.get_filmstrip_thumb_url, descriptor.handle.obj, film_args)
        except EarthEngineLayerError:
            raise
        except Exception as e:
            raise RemoteServiceError(f"Filmstrip thumbnail request failed: {e}") from e

        content = await run_blocking(self._download, url)
        image = await run_blocking(self._decode, content, url)
        frames = await self.slice_filmstrip(image)

        if self.current_descriptor is None or self.current_descriptor() is descriptor:
            self.animation_state.frame_count = len(frames)
        else:
            logger.debug("Descriptor changed during filmstrip fetch, frame count not recorded")
        return frames

    def filmstrip_params(self, vis_params: Optional[Dict[str, Any]], region: Any) -> Dict[str, Any]:
        """Visualization parameters plus the tile geometry; the geometry keys always win."""
        return {
            **(vis_params or {}),
            'dimensions': [self.tile_size, self.tile_size],
            'region': region,
            'crs': self.service.thumbnail_crs,
        }

    async def slice_filmstrip(self, image: Image.Image) -> List[Image.Image]:
        """
        Split a vertically stacked filmstrip into frames.

        Frame i is the tile_size x tile_size window at vertical offset i * tile_size.

        Raises:
            DecodeError: If the height is zero or not a multiple of tile_size
        """
        width, height = image.size
        if height == 0 or height % self.tile_size:
            raise DecodeError(
                f"Filmstrip height {height} is not a multiple of the tile size {self.tile_size}"
            )

        n_frames = height // self.tile_size
        size = self.tile_size
        slices = [
            run_blocking(image.crop, (0, i * size, size, (i + 1) * size))
            for i in range(n_frames)
        ]
        frames = await asyncio.gather(*slices)
        logger.debug("Sliced filmstrip of %dx%d into %d frames", width, height, n_frames)
        return list(frames)

    def _download(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        if response.status_code == 200:
            return response.content
        raise FetchError(f"Failed to fetch tile: HTTP {response.status_code} - {url}")

    @staticmethod
    def _decode(content: bytes, url: str = '') -> Image.Image:
        try:
            image = Image.open(BytesIO(content))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise DecodeError(f"Failed to decode image from {url}: {e}") from e
        return image

    def __repr__(self) -> str:
        return f"TileFetcher(service={self.service!r}, tile_size={self.tile_size})"
