"""
Render Mesh Content
===================
Output containers of the mesh builder.

A :class:`MeshContent` owns the positions of one object and a list of
:class:`GeometryBatch` objects. Each batch is an indexed triangle list that
shares one material and one set of vertex channels, so it can be drawn with
a single call.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag
import logging
from typing import Optional, TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

    from mqopipeline.model.materials import Material
    from mqopipeline.model.mesh import BoneWeights, Face

logger = logging.getLogger(__name__)


class VertexChannelFlags(IntFlag):
    """Optional vertex channels of a batch. Normals are always present."""
    NONE = 0
    TEXCOORD = 1
    COLOR = 2
    WEIGHTS = 4

    @classmethod
    def from_face(cls, face: Face) -> VertexChannelFlags:
        """
        Channel set needed by ``face``.

        Skinned rendering needs texture coordinates, so bone weights imply
        the TEXCOORD channel.
        """
        flags = cls.NONE
        if face.has_texcoord:
            flags |= cls.TEXCOORD
        if face.has_vertex_color:
            flags |= cls.COLOR
        if face.has_bone_weights:
            flags |= cls.WEIGHTS | cls.TEXCOORD
        return flags


@dataclass(eq=False)
class GeometryBatch:
    """
    An indexed triangle list with a uniform material and channel set.

    Vertex attributes are parallel lists; a channel not listed in
    :attr:`flags` stays empty.
    """
    material: Optional[Material]
    flags: VertexChannelFlags = VertexChannelFlags.NONE
    position_indices: list[int] = field(default_factory=list)
    normals: list[tuple[float, float, float]] = field(default_factory=list)
    texcoords: list[tuple[float, float]] = field(default_factory=list)
    colors: list[tuple[float, float, float, float]] = field(default_factory=list)
    bone_weights: list[Optional[BoneWeights]] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)

    def __repr__(self) -> str:
        name = self.material.name if self.material is not None else None
        return (
            f"{self.__class__.__name__}(material={name!r}, flags={self.flags!r}, "
            f"vertices={self.vertex_count}, triangles={self.triangle_count})"
        )

    @property
    def vertex_count(self) -> int:
        return len(self.position_indices)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def has_texcoords(self) -> bool:
        return VertexChannelFlags.TEXCOORD in self.flags

    @property
    def has_colors(self) -> bool:
        return VertexChannelFlags.COLOR in self.flags

    @property
    def has_bone_weights(self) -> bool:
        return VertexChannelFlags.WEIGHTS in self.flags

    def add_vertex(
        self,
        position_index: int,
        normal: npt.NDArray[np.float64],
        texcoord: tuple[float, float] = (0.0, 0.0),
        color: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0),
        bone_weights: Optional[BoneWeights] = None,
    ) -> int:
        """
        Append a vertex. Channels outside :attr:`flags` are ignored.

        Returns:
            Index of the new vertex within the batch.
        """
        self.position_indices.append(position_index)
        self.normals.append((float(normal[0]), float(normal[1]), float(normal[2])))
        if self.has_texcoords:
            self.texcoords.append((float(texcoord[0]), float(texcoord[1])))
        if self.has_colors:
            self.colors.append(tuple(float(c) for c in color))
        if self.has_bone_weights:
            self.bone_weights.append(bone_weights)
        return len(self.position_indices) - 1

    def vertex_key(self, index: int) -> tuple:
        """All attributes of one vertex, usable as a dictionary key."""
        return (
            self.position_indices[index],
            self.normals[index],
            self.texcoords[index] if self.has_texcoords else None,
            self.colors[index] if self.has_colors else None,
            self.bone_weights[index] if self.has_bone_weights else None,
        )

    def merge_duplicate_vertices(self) -> int:
        """
        Merge vertices whose attributes are exactly equal.

        The first occurrence is kept and the index list is remapped.

        Returns:
            The number of vertices removed.
        """
        first_seen: dict[tuple, int] = {}
        remap: list[int] = []
        keep: list[int] = []
        for i in range(self.vertex_count):
            key = self.vertex_key(i)
            target = first_seen.get(key)
            if target is None:
                target = len(keep)
                first_seen[key] = target
                keep.append(i)
            remap.append(target)

        removed = self.vertex_count - len(keep)
        if removed == 0:
            return 0

        self.position_indices = [self.position_indices[i] for i in keep]
        self.normals = [self.normals[i] for i in keep]
        if self.has_texcoords:
            self.texcoords = [self.texcoords[i] for i in keep]
        if self.has_colors:
            self.colors = [self.colors[i] for i in keep]
        if self.has_bone_weights:
            self.bone_weights = [self.bone_weights[i] for i in keep]
        self.indices = [remap[i] for i in self.indices]
        return removed


class MeshContent:
    """Positions and geometry batches produced for one scene object."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._positions: list[npt.NDArray[np.float64]] = []
        self.geometries: list[GeometryBatch] = []

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name!r}, positions={len(self._positions)}, "
            f"geometries={len(self.geometries)})"
        )

    @property
    def positions(self) -> npt.NDArray[np.float64]:
        """Object-space positions as an (N, 3) array."""
        if not self._positions:
            return np.empty((0, 3), dtype=np.float64)
        return np.array(self._positions, dtype=np.float64)

    @property
    def position_count(self) -> int:
        return len(self._positions)

    @property
    def triangle_count(self) -> int:
        return sum(g.triangle_count for g in self.geometries)

    def add_position(self, position: npt.NDArray[np.float64]) -> int:
        self._positions.append(np.array(position, dtype=np.float64))
        return len(self._positions) - 1

    def merge_duplicate_vertices(self) -> int:
        """Merge duplicate vertices in every batch. Returns the total removed."""
        removed = sum(g.merge_duplicate_vertices() for g in self.geometries)
        if removed:
            logger.debug(f"'{self.name}': merged {removed} duplicate vertices")
        return removed
