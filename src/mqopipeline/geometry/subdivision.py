"""
Catmull-Clark Subdivision
=========================
One refinement pass of the Catmull-Clark scheme over a polygon mesh.

Every face of n corners is replaced by n quads built from three kinds of new
points:

* face point: the centroid of the face;
* edge point: the mean of the edge endpoints and the adjacent face points
  (the plain midpoint on boundary edges);
* vertex point: ``P (n-2)/n + sum(neighbors)/n^2 + sum(face points)/n^2``,
  with boundary vertices kept in place.

Two-vertex lathe seeds are not subdivided.
"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

import numpy as np

from mqopipeline.model.mesh import Edge, EdgeKey, Face, Mesh

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class SubDivider:
    """
    Catmull-Clark subdivider.

    The point caches live for a single :meth:`subdivide` call; one instance
    can be reused for any number of meshes.
    """

    def __init__(self) -> None:
        self._source: Optional[Mesh] = None
        self._target: Optional[Mesh] = None
        self._face_points: dict[int, int] = {}
        self._edge_points: dict[EdgeKey, int] = {}
        self._vertex_points: dict[int, int] = {}

    def subdivide(self, original: Mesh) -> Mesh:
        """
        Run one subdivision pass.

        Args:
            original: Mesh to refine. Its edge information is regenerated.

        Returns:
            A new mesh with the same owner; ``original`` keeps its geometry.
        """
        original.generate_edge_information()

        self._source = original
        self._target = Mesh(owner=original.owner)
        self._face_points = {}
        self._edge_points = {}
        self._vertex_points = {}

        try:
            faces = [face for face in original.faces if not face.is_degenerate]
            for face in faces:
                self._face_points[face.index] = self._target.add_position(original.face_center(face)).index

            for face in faces:
                self._subdivide_face(face)

            target = self._target
        finally:
            self._source = None
            self._target = None

        logger.debug(
            f"Subdivided {len(original.faces)} faces / {len(original.vertices)} vertices into "
            f"{len(target.faces)} faces / {len(target.vertices)} vertices"
        )
        return target

    def subdivide_levels(self, mesh: Mesh, levels: int) -> Mesh:
        """Apply :meth:`subdivide` ``levels`` times (zero returns ``mesh`` itself)."""
        for _ in range(levels):
            mesh = self.subdivide(mesh)
        return mesh

    def _subdivide_face(self, face: Face) -> None:
        source = self._source
        count = len(face.vertices)

        for vertex_idx in face.vertices:
            self._vertex_point(vertex_idx)
        edges = source.face_edges(face)
        for edge in edges:
            self._edge_point(edge)

        face_point = self._face_points[face.index]
        center_channel = face.center_channel()

        # edges[i] joins corner i and corner i + 1
        prev_corner = count - 1
        for corner in range(count):
            new_face = self._target.add_face(
                [
                    self._edge_points[edges[prev_corner].key],
                    self._vertex_points[face.vertices[corner]],
                    self._edge_points[edges[corner].key],
                    face_point,
                ],
                [
                    face.edge_midpoint_channel(prev_corner),
                    face.channels[corner],
                    face.edge_midpoint_channel(corner),
                    center_channel,
                ],
            )
            new_face.copy_info_from(face)
            new_face.has_bone_weights = any(c.bone_weights is not None for c in new_face.channels)

            prev_corner = corner

    def _vertex_point(self, vertex_idx: int) -> int:
        cached = self._vertex_points.get(vertex_idx)
        if cached is not None:
            return cached

        source = self._source
        vertex = source.vertices[vertex_idx]
        faces = [f for f in vertex.faces if f in self._face_points]
        edges = [source.edge(key) for key in vertex.edges]

        if any(edge.is_boundary for edge in edges):
            position = vertex.position
        else:
            n = float(len(faces))
            factor = 1.0 / (n * n)
            # double-sided geometry has more faces than edges around a vertex
            edge_factor = factor
            if len(faces) != len(edges):
                edge_factor *= n / len(edges)

            e = np.zeros(3, dtype=np.float64)
            for edge in edges:
                e += source.vertices[edge.other_side(vertex_idx)].position * edge_factor

            f = np.zeros(3, dtype=np.float64)
            for face_idx in faces:
                f += self._target.vertices[self._face_points[face_idx]].position * factor

            position = vertex.position * ((n - 2.0) / n) + e + f

        index = self._target.add_position(position).index
        self._vertex_points[vertex_idx] = index
        return index

    def _edge_point(self, edge: Edge) -> int:
        key = edge.key
        cached = self._edge_points.get(key)
        if cached is not None:
            return cached

        source = self._source
        p0: npt.NDArray[np.float64] = source.vertices[edge.vertex0].position
        p1: npt.NDArray[np.float64] = source.vertices[edge.vertex1].position

        if len(edge.faces) >= 2:
            factor = 1.0 / (len(edge.faces) + 2)
            position = (p0 + p1) * factor
            for face_idx in edge.faces:
                position = position + self._target.vertices[self._face_points[face_idx]].position * factor
        else:
            position = (p0 + p1) * 0.5

        index = self._target.add_position(position).index
        self._edge_points[key] = index
        return index
