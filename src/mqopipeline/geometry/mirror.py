"""
Mirror Generator
================
Duplicates an object's geometry across its mirror planes.

Each enabled axis (X, then Y, then Z) doubles the geometry present at that
point, so an object mirrored on X and Y ends up with four copies. In
``CONNECT`` mode the open (boundary) edges of the original faces are stitched
to their mirror images with bridge quads.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from mqopipeline.config import MIRROR_EPSILON
from mqopipeline.model.geometry_utils import scale_matrix, transform_points
from mqopipeline.model.mesh import Channel, Face, Mesh
from mqopipeline.model.scene import MirrorAxis, MirrorSettings, MirrorType

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

AXIS_SCALES = (
    (MirrorAxis.X, (-1.0, 1.0, 1.0)),
    (MirrorAxis.Y, (1.0, -1.0, 1.0)),
    (MirrorAxis.Z, (1.0, 1.0, -1.0)),
)


def apply_mirroring(mesh: Mesh, node_transform: npt.NDArray[np.float64]) -> tuple[int, int]:
    """
    Apply the owner's mirror settings to ``mesh`` in place.

    Args:
        mesh: Mesh in object-local space.
        node_transform: Absolute transform of the owning object.

    Returns:
        (vertices added, faces added).
    """
    owner = mesh.owner
    settings = owner.mirror if owner is not None else None
    if settings is None or not settings.enabled:
        return 0, 0

    num_vertices = len(mesh.vertices)
    num_faces = len(mesh.faces)

    for axis, scale in AXIS_SCALES:
        if axis in settings.axis:
            _mirror_axis(mesh, settings, scale_matrix(scale), node_transform)

    added = (len(mesh.vertices) - num_vertices, len(mesh.faces) - num_faces)
    logger.debug(f"Mirror '{owner.name}': +{added[0]} vertices, +{added[1]} faces")
    return added


def _mirror_axis(
    mesh: Mesh,
    settings: MirrorSettings,
    mirror: npt.NDArray[np.float64],
    node_transform: npt.NDArray[np.float64],
) -> None:
    """Mirror the current geometry of ``mesh`` across one plane."""
    xform = mirror
    if not settings.is_local:
        xform = node_transform @ mirror @ np.linalg.inv(node_transform)

    connect = settings.type == MirrorType.CONNECT
    if connect:
        mesh.generate_edge_information()

    num_faces = len(mesh.faces)
    original = mesh.positions
    mirrored = transform_points(original, xform)
    coincident = np.linalg.norm(mirrored - original, axis=1) < MIRROR_EPSILON

    # vertex index -> index of its mirror image
    new_vertices: list[int] = []
    for i, pos in enumerate(mirrored):
        if coincident[i]:
            new_vertices.append(i)
        else:
            new_vertices.append(mesh.add_position(pos).index)

    limit = None
    if settings.distance is not None:
        limit = settings.distance * 2.0

    for face_idx in range(num_faces):
        org_face = mesh.faces[face_idx]
        if org_face.is_degenerate:
            continue

        # reversed winding keeps the twin facing outwards
        twin_vertices = [new_vertices[v] for v in reversed(org_face.vertices)]
        twin = mesh.add_face(twin_vertices, list(reversed(org_face.channels)))
        twin.copy_info_from(org_face)

        if connect:
            _connect_boundary(mesh, org_face, new_vertices, coincident, original, mirrored, limit)


def _connect_boundary(
    mesh: Mesh,
    org_face: Face,
    new_vertices: list[int],
    coincident: npt.NDArray[np.bool_],
    original: npt.NDArray[np.float64],
    mirrored: npt.NDArray[np.float64],
    limit: float | None,
) -> None:
    """Add bridge quads between the boundary edges of a face and their images."""
    for edge in mesh.face_edges(org_face):
        if not edge.is_boundary:
            continue

        idx0, idx1 = mesh.edge_indices_in_face(org_face, edge)
        v0 = org_face.vertices[idx0]
        v1 = org_face.vertices[idx1]

        # edge lies on the mirror plane, the bridge would have no area
        if coincident[v0] and coincident[v1]:
            continue

        if limit is not None:
            if np.linalg.norm(mirrored[v0] - original[v0]) >= limit:
                continue
            if np.linalg.norm(mirrored[v1] - original[v1]) >= limit:
                continue

        c0: Channel = org_face.channels[idx0]
        c1: Channel = org_face.channels[idx1]
        bridge = mesh.add_face(
            [v0, v1, new_vertices[v1], new_vertices[v0]],
            [c0, c1, c1, c0],
        )
        bridge.copy_info_from(org_face)
