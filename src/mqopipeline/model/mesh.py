"""
Mesh Topology Model
===================
In-memory polygon mesh as read from a scene file: vertices, faces and, on
demand, edges.

Ownership runs one way: the :class:`Mesh` owns its vertices and faces, every
other link (vertex -> faces, face -> vertices, edge -> faces) is an index or an
edge key into the mesh's containers.

Edges are not kept up to date while faces are appended. Algorithms that need
them (connected mirroring, subdivision) call
:meth:`Mesh.generate_edge_information` first; any face added afterwards
invalidates the edge information until it is generated again.
"""
from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

import numpy as np

from mqopipeline.errors import ConsistencyError
from mqopipeline.model.geometry_utils import as_vector3

if TYPE_CHECKING:
    import numpy.typing as npt

    from mqopipeline.model.materials import Material
    from mqopipeline.model.scene import SceneObject

EdgeKey = tuple[int, int]
BoneWeights = tuple[tuple[str, float], ...]

MAX_FACE_VERTICES = 4


def edge_key(v0: int, v1: int) -> EdgeKey:
    """Canonical id of the unordered vertex pair ``(v0, v1)``."""
    return (v0, v1) if v0 <= v1 else (v1, v0)


def accumulate_bone_weights(
    sources: Iterable[tuple[Optional[BoneWeights], float]],
) -> Optional[BoneWeights]:
    """
    Blend several bone-weight lists.

    Weights of the same bone add up; bones keep the order in which they are
    first seen.

    Args:
        sources: Pairs of (bone weights or None, scale factor).

    Returns:
        The blended weights, or None when no source carries weights.
    """
    blended: dict[str, float] = {}
    has_weights = False
    for weights, scale in sources:
        if weights is None:
            continue
        has_weights = True
        for bone_name, weight in weights:
            blended[bone_name] = blended.get(bone_name, 0.0) + weight * scale

    if not has_weights:
        return None
    return tuple(blended.items())


@dataclass(frozen=True)
class Channel:
    """
    Per-corner attributes of a face.

    Attributes:
        texcoord: Texture coordinate (u, v).
        color: Vertex color (r, g, b, a) in the 0..1 range.
        bone_weights: Sparse (bone name, weight) pairs, None when unweighted.
    """
    texcoord: tuple[float, float] = (0.0, 0.0)
    color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)
    bone_weights: Optional[BoneWeights] = None


class Vertex:
    """
    A mesh vertex.

    The index is assigned when the vertex is appended to its mesh and never
    changes.
    """
    __slots__ = ("index", "position", "faces", "edges")

    def __init__(self, index: int, position: Sequence[float] | npt.NDArray[np.float64]) -> None:
        self.index = index
        self.position: npt.NDArray[np.float64] = as_vector3(position)
        self.faces: list[int] = []
        self.edges: Optional[list[EdgeKey]] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(index={self.index}, position={self.position})"


class Edge:
    """An unordered vertex pair and the faces that use it."""
    __slots__ = ("vertex0", "vertex1", "faces")

    def __init__(self, vertex0: int, vertex1: int) -> None:
        self.vertex0 = vertex0
        self.vertex1 = vertex1
        self.faces: list[int] = []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.vertex0}, {self.vertex1}, faces={self.faces})"

    @property
    def key(self) -> EdgeKey:
        return edge_key(self.vertex0, self.vertex1)

    @property
    def is_boundary(self) -> bool:
        """True when exactly one face uses this edge."""
        return len(self.faces) == 1

    def other_side(self, vertex: int) -> int:
        """Return the endpoint opposite to ``vertex``."""
        return self.vertex1 if vertex == self.vertex0 else self.vertex0


@dataclass(eq=False)
class Face:
    """
    A polygon of 2 to 4 vertices.

    Two-vertex faces are lathe seeds: they are never triangulated and only
    feed the lathe generator.
    """
    index: int
    vertices: list[int]
    channels: list[Channel] = field(default_factory=list)
    material: Optional[Material] = None
    material_index: int = -1
    has_texcoord: bool = False
    has_vertex_color: bool = False
    has_bone_weights: bool = False
    edges: Optional[list[EdgeKey]] = None
    normal: npt.NDArray[np.float64] = field(default_factory=lambda: np.zeros(3, dtype=np.float64))

    def __post_init__(self) -> None:
        if not self.channels:
            self.channels = [Channel() for _ in self.vertices]
        self.check_consistency()

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def is_degenerate(self) -> bool:
        """True for two-vertex lathe seed faces."""
        return len(self.vertices) == 2

    def check_consistency(self) -> None:
        """Raise ConsistencyError when the per-corner arrays are out of step."""
        count = len(self.vertices)
        if len(self.channels) != count:
            raise ConsistencyError(
                f"Face {self.index} has {count} vertices but {len(self.channels)} channels."
            )
        if self.edges is not None and len(self.edges) != count:
            raise ConsistencyError(
                f"Face {self.index} has {count} vertices but {len(self.edges)} edges."
            )

    def copy_info_from(self, other: Face) -> None:
        """Copy the material and the attribute flags of ``other``."""
        self.material = other.material
        self.material_index = other.material_index
        self.has_texcoord = other.has_texcoord
        self.has_vertex_color = other.has_vertex_color
        self.has_bone_weights = other.has_bone_weights

    def next_corner(self, corner: int) -> int:
        return corner + 1 if corner < len(self.vertices) - 1 else 0

    def center_channel(self) -> Channel:
        """
        Channel value at the face centroid.

        Texture coordinates and colors are averaged over all corners; bone
        weights are accumulated with an equal 1/corner-count weighting.
        """
        factor = 1.0 / len(self.channels)
        texcoord = np.zeros(2, dtype=np.float64)
        color = np.zeros(4, dtype=np.float64)
        for channel in self.channels:
            texcoord += np.asarray(channel.texcoord) * factor
            color += np.asarray(channel.color) * factor

        weights = accumulate_bone_weights((c.bone_weights, factor) for c in self.channels)
        return Channel(
            texcoord=(float(texcoord[0]), float(texcoord[1])),
            color=tuple(float(c) for c in color),
            bone_weights=weights,
        )

    def edge_midpoint_channel(self, corner: int) -> Channel:
        """
        Channel value halfway along the edge from ``corner`` to the next corner.

        Args:
            corner: Local index of the edge's first corner.

        Returns:
            The linearly interpolated channel.
        """
        a = self.channels[corner]
        b = self.channels[self.next_corner(corner)]
        texcoord = (np.asarray(a.texcoord) + np.asarray(b.texcoord)) * 0.5
        color = (np.asarray(a.color) + np.asarray(b.color)) * 0.5
        weights = accumulate_bone_weights(((a.bone_weights, 0.5), (b.bone_weights, 0.5)))
        return Channel(
            texcoord=(float(texcoord[0]), float(texcoord[1])),
            color=tuple(float(c) for c in color),
            bone_weights=weights,
        )


class Mesh:
    """
    Vertices and faces of one scene object.

    Vertices are append-only so their indices stay dense and stable. Faces with
    two vertices are additionally listed in :attr:`lathe_faces`.
    """

    def __init__(self, owner: Optional[SceneObject] = None) -> None:
        self._owner: Optional[weakref.ReferenceType[SceneObject]] = None
        self.vertices: list[Vertex] = []
        self.faces: list[Face] = []
        self.lathe_faces: list[Face] = []
        self.edges: Optional[dict[EdgeKey, Edge]] = None
        self.owner = owner

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(vertices={len(self.vertices)}, "
            f"faces={len(self.faces)}, lathe_faces={len(self.lathe_faces)})"
        )

    @property
    def owner(self) -> Optional[SceneObject]:
        """The scene object this mesh belongs to (held weakly)."""
        return self._owner() if self._owner is not None else None

    @owner.setter
    def owner(self, value: Optional[SceneObject]) -> None:
        self._owner = weakref.ref(value) if value is not None else None

    @property
    def has_edge_information(self) -> bool:
        return self.edges is not None

    @property
    def positions(self) -> npt.NDArray[np.float64]:
        """Vertex positions as an (N, 3) array (a copy)."""
        if not self.vertices:
            return np.empty((0, 3), dtype=np.float64)
        return np.array([v.position for v in self.vertices], dtype=np.float64)

    def add_position(self, position: Sequence[float] | npt.NDArray[np.float64]) -> Vertex:
        """
        Append a vertex.

        Args:
            position: Vertex position.

        Returns:
            The new vertex; its index is the previous vertex count.
        """
        vertex = Vertex(len(self.vertices), position)
        self.vertices.append(vertex)
        return vertex

    def add_face(self, vertex_indices: Sequence[int], channels: Optional[Sequence[Channel]] = None) -> Face:
        """
        Append a face referencing existing vertices.

        Args:
            vertex_indices: 2 to 4 vertex indices.
            channels: Optional per-corner channels (defaults otherwise).

        Returns:
            The new face.
        """
        count = len(vertex_indices)
        if count < 2 or count > MAX_FACE_VERTICES:
            raise ConsistencyError(f"A face needs 2 to {MAX_FACE_VERTICES} vertices, got {count}.")
        for idx in vertex_indices:
            if idx < 0 or idx >= len(self.vertices):
                raise ConsistencyError(f"Vertex index {idx} out of range (mesh has {len(self.vertices)}).")

        face = Face(
            index=len(self.faces),
            vertices=list(vertex_indices),
            channels=list(channels) if channels is not None else [],
        )
        self.faces.append(face)
        if face.is_degenerate:
            self.lathe_faces.append(face)

        for idx in face.vertices:
            self.vertices[idx].faces.append(face.index)

        return face

    def face_positions(self, face: Face) -> npt.NDArray[np.float64]:
        return np.array([self.vertices[idx].position for idx in face.vertices], dtype=np.float64)

    def face_center(self, face: Face) -> npt.NDArray[np.float64]:
        """Arithmetic mean of the face's corner positions."""
        return self.face_positions(face).mean(axis=0)

    def generate_edge_information(self) -> None:
        """
        Build the edge map and the vertex/face edge links from the current faces.

        Edge identity is the unordered vertex pair, so two faces that share a
        pair share the edge regardless of their winding. Lathe seed faces do
        not contribute edges.
        """
        self.edges = {}
        for vertex in self.vertices:
            vertex.edges = []

        for face in self.faces:
            if face.is_degenerate:
                face.edges = None
                continue

            face.edges = []
            for corner, vertex_idx in enumerate(face.vertices):
                next_idx = face.vertices[face.next_corner(corner)]
                edge = self._add_edge(vertex_idx, next_idx)
                face.edges.append(edge.key)
                edge.faces.append(face.index)

    def clear_edge_information(self) -> None:
        self.edges = None
        for vertex in self.vertices:
            vertex.edges = None
        for face in self.faces:
            face.edges = None

    def edge(self, key: EdgeKey) -> Edge:
        """Look up a materialised edge."""
        if self.edges is None:
            raise ConsistencyError("Edge information has not been generated.")
        try:
            return self.edges[key]
        except KeyError:
            raise ConsistencyError(f"Edge {key} does not exist in the mesh.") from None

    def face_edges(self, face: Face) -> list[Edge]:
        """The edges of ``face``, aligned with its corners."""
        if face.edges is None:
            raise ConsistencyError(f"Face {face.index} has no edge information.")
        face.check_consistency()
        return [self.edge(key) for key in face.edges]

    def get_edge(self, face: Face, corner0: int, corner1: int) -> Edge:
        """
        Return the face edge joining two of its corners.

        Args:
            face: Face owning the edge.
            corner0: Local index of one endpoint.
            corner1: Local index of the other endpoint.

        Returns:
            The matching edge.
        """
        va = face.vertices[corner0]
        vb = face.vertices[corner1]
        for edge in self.face_edges(face):
            if edge.key == edge_key(va, vb):
                return edge

        raise ConsistencyError(f"Edge ({va}, {vb}) not found on face {face.index}.")

    def edge_indices_in_face(self, face: Face, edge: Edge) -> tuple[int, int]:
        """
        Local corner indices of ``edge`` within ``face``.

        Returns:
            ``(corner, previous_corner)`` such that the face walks from
            ``previous_corner`` to ``corner`` along the edge.
        """
        count = len(face.vertices)
        prev = count - 1
        for idx in range(count):
            if edge_key(face.vertices[idx], face.vertices[prev]) == edge.key:
                return idx, prev
            prev = idx

        raise ConsistencyError(f"Edge {edge.key} is not part of face {face.index}.")

    def _add_edge(self, v0: int, v1: int) -> Edge:
        key = edge_key(v0, v1)
        edge = self.edges.get(key)
        if edge is not None:
            return edge

        edge = Edge(v0, v1)
        self.vertices[v0].edges.append(key)
        self.vertices[v1].edges.append(key)
        self.edges[key] = edge
        return edge
