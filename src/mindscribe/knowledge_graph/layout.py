from __future__ import annotations

import random

import numpy as np

from .models import GraphLayout


def random_position(rng: random.Random, layout: GraphLayout) -> tuple[float, float]:
    return rng.random() * layout.width, rng.random() * layout.height


def force_directed(
    positions: np.ndarray,
    edge_index: np.ndarray,
    weights: np.ndarray,
    layout: GraphLayout,
    iterations: int,
) -> np.ndarray:
    """Run a fixed number of force-directed steps and return the new positions.

    positions: (n, 2) float array.
    edge_index: (m, 2) int array of (source row, target row).
    weights: (m,) edge weights.

    Every pair of nodes repels with ``repulsion / d**2``; every edge pulls its
    endpoints together with ``attraction * d * weight``. Forces are applied as
    ``pos += force * damping`` and the result is clipped to the layout bounds.
    Coincident points are treated as distance 1. The step is fully
    deterministic for fixed inputs.
    """
    pos = np.array(positions, dtype=float, copy=True).reshape(-1, 2)
    n = pos.shape[0]
    if n == 0 or iterations <= 0:
        return pos

    edge_index = np.asarray(edge_index, dtype=int).reshape(-1, 2)
    weights = np.asarray(weights, dtype=float).reshape(-1)
    src, dst = edge_index[:, 0], edge_index[:, 1]

    for _ in range(iterations):
        forces = np.zeros_like(pos)

        if n > 1:
            diff = pos[:, None, :] - pos[None, :, :]  # (n, n, 2): i minus j
            dist = np.sqrt((diff**2).sum(axis=-1))
            dist[dist == 0] = 1.0
            magnitude = layout.repulsion / dist**2
            np.fill_diagonal(magnitude, 0.0)
            forces += (diff / dist[..., None] * magnitude[..., None]).sum(axis=1)

        if src.size:
            delta = pos[dst] - pos[src]
            dist = np.sqrt((delta**2).sum(axis=-1))
            dist[dist == 0] = 1.0
            pull = delta / dist[:, None] * (layout.attraction * dist * weights)[:, None]
            np.add.at(forces, src, pull)
            np.add.at(forces, dst, -pull)

        pos += forces * layout.damping
        pos[:, 0] = np.clip(pos[:, 0], 0.0, layout.width)
        pos[:, 1] = np.clip(pos[:, 1], 0.0, layout.height)

    return pos
