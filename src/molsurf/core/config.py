"""Render configuration for the molecular surface tracer.

RenderConfig is an immutable bundle of every tunable the frame loop reads:
window size, solvent probe radius, neighbour budget, per-frame step budget,
surface/background colours and the ambient occlusion parameters. Values are
validated on construction; derive modified configs with with_updates().

Example:
    >>> from src.molsurf.core.config import RenderConfig
    >>> config = RenderConfig(width=640, height=480)
    >>> faster = config.with_updates(max_steps=4)
"""

from dataclasses import dataclass, field, replace

# Largest solvent probe radius the voxel grid is sized for
SOLVENT_RADIUS_MAX = 2.0

# Default probe radius of the interactive application
DEFAULT_SOLVENT_RADIUS = 0.71590906

# Close-atom working set holds max_neighbours + 1 entries, bounded by a
# fixed-size per-thread array of CLOSE_SET_CAPACITY
CLOSE_SET_CAPACITY = 32
MAX_NEIGHBOURS_LIMIT = CLOSE_SET_CAPACITY - 1
DEFAULT_MAX_NEIGHBOURS = 15

MAX_STEPS_LIMIT = 64
DEFAULT_MAX_STEPS = 8

# Surface reached once the signed distance rises above -HIT_EPSILON
DEFAULT_HIT_EPSILON = 1e-3

# Maximum supported window size (render buffers are preallocated)
MAX_IMAGE_WIDTH = 1024
MAX_IMAGE_HEIGHT = 1024


def _check_color(name: str, value: tuple[float, float, float]) -> None:
    if len(value) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(value)}")
    if any(c < 0.0 for c in value):
        raise ValueError(f"{name} components must be non-negative, got {value}")


@dataclass(frozen=True)
class RenderConfig:
    """Immutable set of renderer tunables.

    Attributes:
        width: Window width in pixels (1..MAX_IMAGE_WIDTH).
        height: Window height in pixels (1..MAX_IMAGE_HEIGHT).
        solvent_radius: Solvent probe radius R in [0, SOLVENT_RADIUS_MAX].
        max_neighbours: Number of close atoms considered for blend patches,
            in [1, MAX_NEIGHBOURS_LIMIT].
        max_steps: Sphere-tracing steps per pixel per frame, in
            [1, MAX_STEPS_LIMIT].
        hit_epsilon: Surface threshold on the signed distance.
        surface_color: Albedo of the diffuse surface term.
        background_color: Colour for rays that miss or have not converged.
        ssao_enabled: Whether the ambient occlusion pass runs after marching.
        ssao_radius: World-space sampling radius of the occlusion pass.
        ssao_bias: Angular bias subtracted before accumulating occlusion.
        ssao_strength: Scale applied to the normalised occlusion.
        time: Elapsed time in seconds, informational.
    """

    width: int = 512
    height: int = 512
    solvent_radius: float = DEFAULT_SOLVENT_RADIUS
    max_neighbours: int = DEFAULT_MAX_NEIGHBOURS
    max_steps: int = DEFAULT_MAX_STEPS
    hit_epsilon: float = DEFAULT_HIT_EPSILON
    surface_color: tuple[float, float, float] = (0.85, 0.85, 0.85)
    background_color: tuple[float, float, float] = (0.1, 0.1, 0.1)
    ssao_enabled: bool = True
    ssao_radius: float = 0.5
    ssao_bias: float = 0.025
    ssao_strength: float = 1.0
    time: float = field(default=0.0, compare=False)

    def __post_init__(self) -> None:
        if not 1 <= self.width <= MAX_IMAGE_WIDTH or not 1 <= self.height <= MAX_IMAGE_HEIGHT:
            raise ValueError(
                f"Window dimensions ({self.width}x{self.height}) must be within "
                f"1x1 and {MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
            )
        if not 0.0 <= self.solvent_radius <= SOLVENT_RADIUS_MAX:
            raise ValueError(
                f"solvent_radius must be in [0, {SOLVENT_RADIUS_MAX}], got {self.solvent_radius}"
            )
        if not 1 <= self.max_neighbours <= MAX_NEIGHBOURS_LIMIT:
            raise ValueError(
                f"max_neighbours must be in [1, {MAX_NEIGHBOURS_LIMIT}], got {self.max_neighbours}"
            )
        if not 1 <= self.max_steps <= MAX_STEPS_LIMIT:
            raise ValueError(
                f"max_steps must be in [1, {MAX_STEPS_LIMIT}], got {self.max_steps}"
            )
        if self.hit_epsilon <= 0.0:
            raise ValueError(f"hit_epsilon must be positive, got {self.hit_epsilon}")
        _check_color("surface_color", self.surface_color)
        _check_color("background_color", self.background_color)
        if self.ssao_radius <= 0.0:
            raise ValueError(f"ssao_radius must be positive, got {self.ssao_radius}")
        if self.ssao_strength < 0.0:
            raise ValueError(f"ssao_strength must be non-negative, got {self.ssao_strength}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def with_updates(self, **changes) -> "RenderConfig":
        """Return a copy with the given fields replaced (validated again)."""
        return replace(self, **changes)


def clamp_max_neighbours(value: int) -> int:
    """Clamp a user-facing neighbour count (UI range 1..45) to the device limit."""
    return max(1, min(int(value), MAX_NEIGHBOURS_LIMIT))
