"""Camera module for primary ray generation and depth projection.

Components:
    pinhole: Look-at pinhole camera with a perspective projection matrix

Ray generation uses normalized image coordinates:
    u in [0, 1]: left to right across image
    v in [0, 1]: bottom to top across image
"""

from .pinhole import (
    PinholeCamera,
    get_camera_basis,
    get_camera_info,
    get_camera_origin,
    get_pixel_ray,
    get_ray,
    get_view_projection,
    linear_depth,
    orbit_camera,
    perspective_matrix,
    setup_camera,
)

__all__ = [
    "PinholeCamera",
    "orbit_camera",
    "perspective_matrix",
    "setup_camera",
    "get_ray",
    "get_pixel_ray",
    "get_camera_origin",
    "get_camera_basis",
    "get_camera_info",
    "get_view_projection",
    "linear_depth",
]
