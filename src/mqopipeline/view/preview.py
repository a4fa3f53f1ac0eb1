"""
Mesh Preview
============
Quick 3D look at converted meshes with matplotlib.

Each geometry batch gets its own color so batch splits and material
assignments are visible at a glance. This is a debugging aid, not a
renderer: there is no lighting and no texture.
"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from mqopipeline.model.geometry_utils import transform_points

if TYPE_CHECKING:
    import numpy.typing as npt
    from mpl_toolkits.mplot3d import Axes3D

    from mqopipeline.builder.content import MeshContent
    from mqopipeline.pipeline import ConvertedScene

logger = logging.getLogger(__name__)


def batch_triangles(content: MeshContent, transform: Optional[npt.NDArray[np.float64]] = None) -> list[npt.NDArray[np.float64]]:
    """
    Triangle corner positions of every batch.

    Args:
        content: Built mesh content.
        transform: Optional 4x4 transform applied to the positions.

    Returns:
        One (T, 3, 3) array per batch.
    """
    positions = content.positions
    if transform is not None and len(positions):
        positions = transform_points(positions, transform)

    result = []
    for batch in content.geometries:
        corner_positions = np.asarray(batch.position_indices, dtype=np.int64)[np.asarray(batch.indices, dtype=np.int64)]
        result.append(positions[corner_positions].reshape(-1, 3, 3))
    return result


def plot_mesh_content(
    content: MeshContent,
    ax: Optional[Axes3D] = None,
    transform: Optional[npt.NDArray[np.float64]] = None,
    cmap_name: str = "gist_rainbow",
) -> Axes3D:
    """
    Draw the triangles of ``content``.

    Args:
        content: Built mesh content.
        ax: 3D axes to draw into; a new figure is created when omitted.
        transform: Optional transform to world space.
        cmap_name: Colormap used to tell batches apart.

    Returns:
        The axes that were drawn into.
    """
    if ax is None:
        plt.rcParams["figure.constrained_layout.use"] = True
        fig = plt.figure()
        ax = fig.add_subplot(projection="3d")

    triangles = batch_triangles(content, transform)
    cmap = plt.get_cmap(cmap_name, max(1, len(triangles)))

    for i, (batch, tris) in enumerate(zip(content.geometries, triangles)):
        if not len(tris):
            continue
        label = batch.material.name if batch.material is not None else f"batch {i}"
        collection = Poly3DCollection(tris, facecolor=cmap(i % cmap.N), edgecolor="black", linewidths=0.2, alpha=0.6, label=label)
        ax.add_collection3d(collection)

    _fit_axes(ax, [t.reshape(-1, 3) for t in triangles if len(t)])
    ax.set_title(content.name)
    logger.debug(f"Plotted '{content.name}': {sum(len(t) for t in triangles)} triangles")
    return ax


def plot_converted_scene(converted: ConvertedScene, show: bool = True) -> Axes3D:
    """Draw every mesh node of ``converted`` in world space into one figure."""
    plt.rcParams["figure.constrained_layout.use"] = True
    fig = plt.figure()
    ax = fig.add_subplot(projection="3d")

    points = []
    for node in converted.mesh_nodes():
        plot_mesh_content(node.content, ax=ax, transform=node.absolute_transform)
        if node.content.position_count:
            points.append(transform_points(node.content.positions, node.absolute_transform))

    _fit_axes(ax, points)
    ax.set_title("Converted scene")
    if show:
        plt.show()
    return ax


def _fit_axes(ax: Axes3D, point_sets: list[npt.NDArray[np.float64]]) -> None:
    """Set equal axis ranges around all points."""
    if not point_sets:
        return
    points = np.vstack(point_sets)
    lo = points.min(axis=0)
    hi = points.max(axis=0)
    center = (lo + hi) * 0.5
    radius = max(float((hi - lo).max()) * 0.5, 1e-6)
    ax.set_xlim(center[0] - radius, center[0] + radius)
    ax.set_ylim(center[1] - radius, center[1] + radius)
    ax.set_zlim(center[2] - radius, center[2] + radius)
