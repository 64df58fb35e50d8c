"""Taichi-based sphere tracer for analytic molecular surfaces.

This package renders the solvent-excluded envelope of a set of spherical atoms
by sphere tracing a piecewise signed distance field, with support for:
- Atom sphere patches, toroidal patches (two atoms) and spherical-triangle
  patches (three atoms), each solved with a fixed-count Newton iteration
- A uniform voxel grid for local neighbour queries
- Per-pixel temporal accumulation of the marched distance across frames
- Screen-space ambient occlusion over the position/normal G-buffers

Subpackages:
    core: Vector utilities, render configuration, sphere tracer and frame loop
    geometry: Atom primitives, bounding boxes and blend patches
    scene: Atom storage, voxel grid and the aggregate distance field
    camera: Look-at pinhole camera with perspective depth
    postprocess: Screen-space ambient occlusion
    preview: Output processing and image export
"""

__version__ = "0.1.0"
