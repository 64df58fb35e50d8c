"""Host-side atom storage.

AtomStore holds an immutable (N, 4) float32 array of atom centers and radii.
It is the single host representation handed to the voxel grid builder and the
device upload.

Example:
    >>> import numpy as np
    >>> from src.molsurf.scene.atoms import AtomStore
    >>> store = AtomStore.from_arrays([[0, 0, 0], [2, 0, 0]], [1.0, 1.0])
    >>> store.max_radius
    1.0
"""

from collections.abc import Iterable, Sequence
from pathlib import Path

import numpy as np

from src.molsurf.geometry.aabb import BoundingBox


class AtomStore:
    """Immutable collection of spherical atoms.

    Attributes:
        data: Read-only float32 array of shape (N, 4) holding x, y, z, radius.
    """

    def __init__(self, data):
        arr = np.array(data, dtype=np.float32, copy=True)
        if arr.size == 0:
            arr = np.zeros((0, 4), dtype=np.float32)
        if arr.ndim != 2 or arr.shape[1] != 4:
            raise ValueError(f"Atom data must have shape (N, 4), got {arr.shape}")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Atom data contains non-finite values")
        if np.any(arr[:, 3] <= 0.0):
            raise ValueError("Atom radii must be positive")
        arr.setflags(write=False)
        self._data = arr

    @classmethod
    def from_arrays(cls, centers, radii) -> "AtomStore":
        """Build a store from separate center and radius arrays.

        Args:
            centers: Array-like of shape (N, 3).
            radii: Array-like of shape (N,), or a scalar applied to every atom.
        """
        c = np.asarray(centers, dtype=np.float32).reshape(-1, 3)
        r = np.broadcast_to(np.asarray(radii, dtype=np.float32), (len(c),))
        return cls(np.column_stack([c, r]))

    @classmethod
    def from_tuples(
        cls, atoms: Iterable[tuple[Sequence[float], float]]
    ) -> "AtomStore":
        """Build a store from ((x, y, z), radius) pairs."""
        rows = [(float(c[0]), float(c[1]), float(c[2]), float(r)) for c, r in atoms]
        return cls(np.array(rows, dtype=np.float32).reshape(-1, 4))

    @classmethod
    def load(cls, path: str | Path) -> "AtomStore":
        """Load atoms from a .npy file or a whitespace-separated xyzr text file.

        Raises:
            ValueError: If the file does not hold an (N, 4) array.
        """
        path = Path(path)
        if path.suffix == ".npy":
            data = np.load(path)
        else:
            data = np.loadtxt(path, dtype=np.float32, ndmin=2)
        return cls(data)

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def centers(self) -> np.ndarray:
        return self._data[:, :3]

    @property
    def radii(self) -> np.ndarray:
        return self._data[:, 3]

    @property
    def max_radius(self) -> float:
        """Largest atom radius, or 0 for an empty store."""
        if len(self) == 0:
            return 0.0
        return float(self.radii.max())

    def bounding_box(self, padding: float = 0.0) -> BoundingBox:
        """Box around the atom centers, grown by padding.

        Raises:
            ValueError: If the store is empty.
        """
        return BoundingBox.from_points(self.centers, padding=padding)

    def centered(self) -> "AtomStore":
        """Return a copy translated so the centers' bounding box is centred at the origin."""
        if len(self) == 0:
            return self
        shift = self.bounding_box().center.astype(np.float32)
        data = self._data.copy()
        data[:, :3] -= shift
        return AtomStore(data)

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def __getitem__(self, index: int) -> tuple[tuple[float, float, float], float]:
        row = self._data[index]
        return (float(row[0]), float(row[1]), float(row[2])), float(row[3])

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        return f"AtomStore(num_atoms={len(self)}, max_radius={self.max_radius:.3f})"
