#!/usr/bin/env python3
"""Render the molecular surface of a set of atoms.

Builds the voxel grid for the atoms, places an orbit camera around them and
renders frames until every pixel has converged (or the frame limit is hit),
then saves the shaded image and optionally the G-buffer visualisations.

Usage:
    python -m examples.render_molecule [options]

Options:
    --atoms PATH          .npy or text file of x y z radius rows
                          (default: built-in three-atom molecule)
    --width WIDTH         Image width in pixels (default: 512)
    --height HEIGHT       Image height in pixels (default: 512)
    --solvent-radius R    Solvent probe radius (default: 0.71590906)
    --max-neighbours N    Close atoms used for blend patches (default: 15)
    --max-steps N         Sphere-tracing steps per frame (default: 8)
    --frames N            Maximum number of frames (default: 64)
    --yaw DEG             Orbit yaw (default: -90)
    --pitch DEG           Orbit pitch (default: 0)
    --no-ssao             Disable ambient occlusion
    --buffers             Also save normal, depth and state images
    --output OUTPUT       Output file path (default: molecule.png)
    --quiet               Suppress progress output

Example:
    python -m examples.render_molecule --width 256 --height 256 --max-steps 4
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the molecular surface of a set of atoms.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--atoms", type=str, default=None, help="Atom file (.npy or xyzr text)")
    parser.add_argument("--width", type=int, default=512, help="Image width in pixels (default: 512)")
    parser.add_argument("--height", type=int, default=512, help="Image height in pixels (default: 512)")
    parser.add_argument(
        "--solvent-radius",
        type=float,
        default=0.71590906,
        help="Solvent probe radius (default: 0.71590906)",
    )
    parser.add_argument(
        "--max-neighbours",
        type=int,
        default=15,
        help="Close atoms used for blend patches (default: 15)",
    )
    parser.add_argument(
        "--max-steps", type=int, default=8, help="Sphere-tracing steps per frame (default: 8)"
    )
    parser.add_argument("--frames", type=int, default=64, help="Maximum number of frames (default: 64)")
    parser.add_argument("--yaw", type=float, default=-90.0, help="Orbit yaw in degrees (default: -90)")
    parser.add_argument("--pitch", type=float, default=0.0, help="Orbit pitch in degrees (default: 0)")
    parser.add_argument("--no-ssao", action="store_true", help="Disable ambient occlusion")
    parser.add_argument(
        "--buffers", action="store_true", help="Also save normal, depth and state images"
    )
    parser.add_argument(
        "--output", type=str, default="molecule.png", help="Output file path (default: molecule.png)"
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def render_molecule(
    atoms_path: str | None = None,
    width: int = 512,
    height: int = 512,
    solvent_radius: float = 0.71590906,
    max_neighbours: int = 15,
    max_steps: int = 8,
    max_frames: int = 64,
    yaw: float = -90.0,
    pitch: float = 0.0,
    ssao: bool = True,
    save_buffers: bool = False,
    output_path: str = "molecule.png",
    quiet: bool = False,
) -> Path:
    """Render a molecule until converged and save it to file.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.molsurf.core.config import RenderConfig, clamp_max_neighbours
    from src.molsurf.core.renderer import SurfaceRenderer
    from src.molsurf.preview.export import save_png
    from src.molsurf.scene.atoms import AtomStore
    from src.molsurf.scene.presets import create_default_scene, default_camera

    if atoms_path is None:
        atoms = create_default_scene()
    else:
        atoms = AtomStore.load(atoms_path)
    if not quiet:
        print(f"Loaded {len(atoms)} atoms ({width}x{height})...")

    config = RenderConfig(
        width=width,
        height=height,
        solvent_radius=solvent_radius,
        max_neighbours=clamp_max_neighbours(max_neighbours),
        max_steps=max_steps,
        ssao_enabled=ssao,
    )
    renderer = SurfaceRenderer(config)
    grid = renderer.load_atoms(atoms, center=True)
    renderer.set_camera(default_camera(grid, config.aspect_ratio, yaw=yaw, pitch=pitch))

    if not quiet:
        print(f"Grid {grid.dims[0]}x{grid.dims[1]}x{grid.dims[2]} cells of {grid.cell_size:.2f}")
        print(f"Rendering up to {max_frames} frames of {max_steps} steps...")

    start_time = time.time()
    for current, target in renderer.render_progressive(max_frames):
        converged = renderer.converged_fraction()
        if not quiet:
            elapsed = time.time() - start_time
            fps = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Frame {current}/{target} - {100.0 * converged:.1f}% converged "
                f"- {fps:.1f} fps",
                end="",
                flush=True,
            )
        if converged >= 1.0:
            break

    if not quiet:
        print()  # Newline after progress

    output_file = Path(output_path)
    save_png(renderer, str(output_file))
    if save_buffers:
        for name in ("normal", "depth", "state"):
            buffer_file = output_file.with_name(f"{output_file.stem}_{name}{output_file.suffix}")
            save_png(renderer, str(buffer_file), buffer=name)
            if not quiet:
                print(f"Saved {name} buffer to: {buffer_file.absolute()}")

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {total_time:.2f}s")

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except Exception:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    try:
        render_molecule(
            atoms_path=args.atoms,
            width=args.width,
            height=args.height,
            solvent_radius=args.solvent_radius,
            max_neighbours=args.max_neighbours,
            max_steps=args.max_steps,
            max_frames=args.frames,
            yaw=args.yaw,
            pitch=args.pitch,
            ssao=not args.no_ssao,
            save_buffers=args.buffers,
            output_path=args.output,
            quiet=args.quiet,
        )
        return 0
    except (OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
