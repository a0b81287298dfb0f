"""
Example usage of EarthEngineLayer.

Requires Earth Engine access: either set EARTHENGINE_TOKEN to an OAuth access
token or run `earthengine authenticate` once beforehand.
"""

import asyncio
import os

import cartopy.crs as ccrs
import ee
import matplotlib.pyplot as plt

from pyeelayers.layer import EarthEngineLayer, EarthEngineService, TileRequest

PROJECT = os.environ.get('EARTHENGINE_PROJECT')


async def example_tiled_layer(service):
    """Resolve tiles for a static image and fetch one of them."""
    print("=" * 60)
    print("Example 1: Tiled Image Layer")
    print("=" * 60)

    layer = EarthEngineLayer(service=service)
    await layer.set_props(
        ee_object=ee.Image('CGIAR/SRTM90_V4'),
        vis_params={'min': 0, 'max': 4000, 'palette': ['006633', 'E5FFCC', '662A00', 'D8D8D8', 'F5F5F5']},
    )
    print(f"Layer: {layer}")
    print(f"URL template: {layer.descriptor.url_template}")

    frames = await layer.get_tile_data(TileRequest.from_xyz(x=163, y=395, z=10))
    tile = layer.select_frame(frames)
    output_file = '/tmp/example_ee_tile.png'
    tile.save(output_file)
    print(f"Saved tile to: {output_file}")
    print()
    return layer


def example_cartopy_integration(layer):
    """Draw the resolved tiles on a Cartopy map."""
    print("=" * 60)
    print("Example 2: Cartopy Integration")
    print("=" * 60)

    source = layer.get_cartopy_source()
    fig = plt.figure(figsize=(8, 6))
    ax = fig.add_subplot(1, 1, 1, projection=source.crs)
    ax.set_extent([-123.0, -121.5, 37.0, 38.2], crs=ccrs.PlateCarree())
    ax.add_image(source, 9)
    ax.coastlines(resolution='10m')

    output_file = '/tmp/example_ee_cartopy.png'
    plt.savefig(output_file, dpi=150, bbox_inches='tight')
    plt.close()
    print(f"Saved map to: {output_file}")
    print()


async def example_animated_layer(service):
    """Animate a year of MODIS NDVI as a filmstrip."""
    print("=" * 60)
    print("Example 3: Animated Filmstrip Layer")
    print("=" * 60)

    collection = (
        ee.ImageCollection('MODIS/061/MOD13A2')
        .filterDate('2022-01-01', '2023-01-01')
        .select('NDVI')
    )
    layer = EarthEngineLayer(service=service)
    await layer.set_props(
        ee_object=collection,
        animate=True,
        animation_speed=6,
        vis_params={'min': 0, 'max': 9000, 'palette': ['FFFFFF', 'CE7E45', 'DF923D', '74A901', '056201']},
    )

    frames = await layer.get_tile_data(TileRequest.from_xyz(x=1, y=1, z=2))
    print(f"Filmstrip frames: {len(frames)}, frame count in state: {layer.animation_state.frame_count}")
    for _ in range(3):
        print(f"Active frame: {layer.tick()}")
        await asyncio.sleep(0.2)
    print()


async def main():
    """Run all examples."""
    print("\n" + "=" * 60)
    print("EarthEngineLayer Usage Examples")
    print("=" * 60 + "\n")

    service = EarthEngineService(project=PROJECT)
    await EarthEngineLayer.initialize_ee_api(token=os.environ.get('EARTHENGINE_TOKEN'), service=service)

    layer = await example_tiled_layer(service)
    example_cartopy_integration(layer)
    await example_animated_layer(service)

    print("=" * 60)
    print("All examples completed!")
    print("Check /tmp/ directory for generated images")
    print("=" * 60)


if __name__ == '__main__':
    asyncio.run(main())
