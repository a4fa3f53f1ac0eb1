"""
Mesh Builder
============
Turns topology meshes into render-ready :class:`MeshContent`.

Why is this file needed?
------------------------
1. Triangulation: Faces may be triangles or quads; render batches are plain
   triangle lists.
2. Normals: The modeler stores no normals. Face normals are computed here and
   blended into vertex normals according to the object's smoothing angle.
3. Batching: Faces of one object can mix materials and vertex channels
   (texture coordinates, colors, bone weights). Every combination gets its
   own :class:`GeometryBatch`, and batches are split so that 16-bit index
   buffers stay valid.
"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

import numpy as np

from mqopipeline.builder.content import GeometryBatch, MeshContent, VertexChannelFlags
from mqopipeline.config import NORMAL_EPSILON, SIXTEEN_BIT_INDEX_LIMIT
from mqopipeline.errors import ConsistencyError
from mqopipeline.model.mesh import Face, Mesh
from mqopipeline.model.scene import smooth_falloff_for

if TYPE_CHECKING:
    import numpy.typing as npt

    from mqopipeline.model.materials import Material

logger = logging.getLogger(__name__)

QUAD_TRIANGLES = ((0, 1, 2), (2, 3, 0))

# Marker for "use the smoothing angle of the mesh owner".
FROM_OWNER = object()

# Squared length under which a blended vertex normal is considered cancelled.
BLENDED_NORMAL_EPSILON = 1e-8


def compute_face_normal(positions: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """
    Normal of a (possibly non-planar) polygon.

    The normalized corner normals ``(next - cur) x (cur - prev)`` are averaged,
    which is less sensitive to uneven edge lengths than a single cross
    product.

    Args:
        positions: (n, 3) corner positions in winding order.

    Returns:
        Unit normal, or the zero vector for a degenerate polygon.
    """
    count = len(positions)
    normal = np.zeros(3, dtype=np.float64)
    for i in range(count):
        prev = positions[i - 1]
        cur = positions[i]
        nxt = positions[(i + 1) % count]
        n = np.cross(nxt - cur, cur - prev)
        length_sq = float(np.dot(n, n))
        if length_sq > NORMAL_EPSILON:
            normal += n / np.sqrt(length_sq)

    length_sq = float(np.dot(normal, normal))
    if length_sq > NORMAL_EPSILON:
        normal /= np.sqrt(length_sq)
        return normal
    return np.zeros(3, dtype=np.float64)


class MeshBuilder:
    """
    Accumulates meshes into one :class:`MeshContent`.

    Usage::

        builder = MeshBuilder()
        builder.begin_build(MeshContent("Body"))
        builder.add_mesh(mesh)
        content = builder.end_build()
    """

    def __init__(self, use_sixteen_bits_index: bool = True) -> None:
        self.use_sixteen_bits_index = use_sixteen_bits_index
        self._content: Optional[MeshContent] = None
        self._batches: dict[tuple[int, VertexChannelFlags], GeometryBatch] = {}

    @property
    def is_building(self) -> bool:
        return self._content is not None

    def begin_build(self, content: MeshContent) -> None:
        """Start filling ``content``. Raises ConsistencyError while another build is open."""
        if self._content is not None:
            raise ConsistencyError("begin_build called twice without end_build.")
        self._content = content
        self._batches = {}

    def end_build(self) -> MeshContent:
        """
        Finish the current build.

        Returns:
            The filled content, with duplicate vertices merged.
        """
        if self._content is None:
            raise ConsistencyError("end_build called without begin_build.")

        content = self._content
        content.merge_duplicate_vertices()

        self._content = None
        self._batches = {}
        return content

    def add_mesh(self, mesh: Mesh, smooth_angle: Optional[float] | object = FROM_OWNER) -> None:
        """
        Triangulate ``mesh`` and append it to the content being built.

        Args:
            mesh: Mesh in object-local space.
            smooth_angle: Smoothing angle in radians, None for flat shading.
                Taken from the mesh owner when omitted.
        """
        if self._content is None:
            raise ConsistencyError("add_mesh called without begin_build.")

        if smooth_angle is FROM_OWNER:
            owner = mesh.owner
            smooth_angle = owner.smooth_angle if owner is not None else None
        smooth_falloff = smooth_falloff_for(smooth_angle)

        content = self._content
        position_indices = [content.add_position(v.position) for v in mesh.vertices]

        # local vertex index -> faces using it
        vertex_to_faces: list[list[Face]] = [[] for _ in mesh.vertices]
        polygons: list[Face] = []
        for face in mesh.faces:
            if face.is_degenerate:
                continue
            face.normal = compute_face_normal(mesh.face_positions(face))
            for vertex_idx in face.vertices:
                vertex_to_faces[vertex_idx].append(face)
            polygons.append(face)

        triangle_count = 0
        for face in polygons:
            corner_sets = QUAD_TRIANGLES if len(face.vertices) == 4 else QUAD_TRIANGLES[:1]
            for corners in corner_sets:
                batch = self._get_batch(face)
                for corner in corners:
                    vertex_idx = face.vertices[corner]
                    if smooth_angle is None:
                        normal = face.normal
                    else:
                        normal = self._vertex_normal(face, vertex_to_faces[vertex_idx], smooth_falloff)
                    channel = face.channels[corner]
                    index = batch.add_vertex(
                        position_indices[vertex_idx],
                        normal,
                        texcoord=channel.texcoord,
                        color=channel.color,
                        bone_weights=channel.bone_weights,
                    )
                    batch.indices.append(index)
                triangle_count += 1

        logger.debug(f"'{content.name}': added {triangle_count} triangles from {len(polygons)} faces")

    @staticmethod
    def _vertex_normal(face: Face, neighbors: list[Face], falloff: Optional[float]) -> npt.NDArray[np.float64]:
        """
        Blend the normals of the faces around one corner of ``face``.

        Neighbors whose normal is within the falloff cone of the face normal
        contribute with weight ``clamp(0.8 + (dot - falloff) / (1 - falloff))^2``.
        """
        if falloff is None or falloff >= 1.0:
            return face.normal

        ratio = 1.0 / (1.0 - falloff)
        normal = np.zeros(3, dtype=np.float64)
        count = 0
        for neighbor in neighbors:
            dot = float(np.dot(face.normal, neighbor.normal))
            if dot > falloff:
                t = min(max(0.8 + (dot - falloff) * ratio, 0.0), 1.0)
                normal += neighbor.normal * (t * t)
                count += 1

        length_sq = float(np.dot(normal, normal))
        if count == 0 or length_sq < BLENDED_NORMAL_EPSILON:
            return face.normal
        return normal / np.sqrt(length_sq)

    def _get_batch(self, face: Face) -> GeometryBatch:
        """Batch for the face's material and channels, sealing full ones."""
        flags = VertexChannelFlags.from_face(face)
        key = (id(face.material), flags)

        batch = self._batches.get(key)
        if batch is not None and self.use_sixteen_bits_index:
            if len(batch.indices) + 3 >= SIXTEEN_BIT_INDEX_LIMIT:
                logger.debug(f"'{self._content.name}': batch sealed at {len(batch.indices)} indices")
                batch = None

        if batch is None:
            batch = self._new_batch(face.material, flags)
            self._batches[key] = batch
        return batch

    def _new_batch(self, material: Optional[Material], flags: VertexChannelFlags) -> GeometryBatch:
        batch = GeometryBatch(material=material, flags=flags)
        self._content.geometries.append(batch)
        return batch
