"""
Lathe Generator
===============
Revolves the two-vertex seed faces of an object around a world axis.

Every seed vertex becomes a ring of ``segments`` vertices and every seed face
becomes a double-sided band of quads between the rings of its two vertices.
The rotation happens in absolute space, so an object that is itself rotated
still revolves around the world axis.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, TYPE_CHECKING

import numpy as np

from mqopipeline.model.geometry_utils import transform_point
from mqopipeline.model.mesh import Mesh
from mqopipeline.model.scene import LatheAxis

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

AXIS_VECTORS: dict[LatheAxis, tuple[float, float, float]] = {
    LatheAxis.X: (1.0, 0.0, 0.0),
    LatheAxis.Y: (0.0, 1.0, 0.0),
    LatheAxis.Z: (0.0, 0.0, 1.0),
}

RING_DIRECTIONS: dict[LatheAxis, Callable[[float], tuple[float, float, float]]] = {
    LatheAxis.X: lambda a: (0.0, math.cos(a), math.sin(a)),
    LatheAxis.Y: lambda a: (math.cos(a), 0.0, math.sin(a)),
    LatheAxis.Z: lambda a: (math.cos(a), math.sin(a), 0.0),
}


def apply_lathe(mesh: Mesh, node_transform: npt.NDArray[np.float64]) -> tuple[int, int]:
    """
    Apply the owner's lathe settings to ``mesh`` in place.

    Args:
        mesh: Mesh in object-local space.
        node_transform: Absolute transform of the owning object.

    Returns:
        (vertices added, faces added).
    """
    owner = mesh.owner
    settings = owner.lathe if owner is not None else None
    if settings is None or not settings.enabled or not mesh.lathe_faces:
        return 0, 0

    segments = settings.segments
    if segments < 1:
        logger.warning(f"Lathe '{owner.name}': {segments} segments, nothing generated")
        return 0, 0

    num_vertices = len(mesh.vertices)
    num_faces = len(mesh.faces)

    axis = np.array(AXIS_VECTORS[settings.axis], dtype=np.float64)
    direction = RING_DIRECTIONS[settings.axis]
    step = 2.0 * math.pi / segments
    inverse = np.linalg.inv(node_transform)

    # seed vertex index -> index of the first vertex of its ring
    ring_start: dict[int, int] = {}
    for face in mesh.lathe_faces:
        for vertex_idx in face.vertices:
            if vertex_idx in ring_start:
                continue
            ring_start[vertex_idx] = len(mesh.vertices)

            pos = transform_point(mesh.vertices[vertex_idx].position, node_transform)
            center = pos * axis
            radius = np.linalg.norm(pos - center)
            for i in range(segments):
                ring_pos = center + np.array(direction(i * step)) * radius
                mesh.add_position(transform_point(ring_pos, inverse))

    # iterate over a snapshot, the generated quads are appended to mesh.faces
    for face in list(mesh.lathe_faces):
        base0 = ring_start[face.vertices[0]]
        base1 = ring_start[face.vertices[1]]
        idx0 = base0 + segments - 1
        idx1 = base1 + segments - 1

        for i in range(segments):
            idx2 = base0 + i
            idx3 = base1 + i

            quad = mesh.add_face([idx0, idx2, idx3, idx1])
            quad.copy_info_from(face)
            quad = mesh.add_face([idx0, idx1, idx3, idx2])
            quad.copy_info_from(face)

            idx0, idx1 = idx2, idx3

    added = (len(mesh.vertices) - num_vertices, len(mesh.faces) - num_faces)
    logger.debug(f"Lathe '{owner.name}': +{added[0]} vertices, +{added[1]} faces")
    return added
