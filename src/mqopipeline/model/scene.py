"""
Scene Model
===========
Objects, materials and the per-object generator settings read from a scene
file.

Classes:
    MirrorSettings: Mirror axes, mode and stitch distance of an object.
    LatheSettings: Revolve axis and segment count of an object.
    SceneObject: One named object: transform, shading, settings and mesh.
    Scene: Materials and objects of a file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag
import logging
import math
from typing import Optional, TYPE_CHECKING

import numpy as np

from mqopipeline.config import DEFAULT_LATHE_SEGMENTS, DEFAULT_SMOOTH_ANGLE, SMOOTH_FALLOFF_SCALE
from mqopipeline.errors import FormatError
from mqopipeline.model.geometry_utils import compose_transform
from mqopipeline.model.materials import Material, create_default_material
from mqopipeline.model.mesh import Mesh

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def smooth_falloff_for(angle: Optional[float]) -> Optional[float]:
    """Cosine of the falloff angle for a smoothing angle in radians (None stays None)."""
    if angle is None:
        return None
    return math.cos(min(math.pi, angle * SMOOTH_FALLOFF_SCALE))


class PatchType(IntEnum):
    POLYGON = 0
    SPLINE1 = 1  # unsupported
    SPLINE2 = 2  # unsupported
    CATMULL_CLARK = 3


class MirrorType(IntEnum):
    NONE = 0
    SPLIT = 1
    CONNECT = 2


class MirrorAxis(IntFlag):
    NONE = 0
    X = 1
    Y = 2
    Z = 4
    LOCAL = 8  # mirror in object-local space instead of absolute space


class LatheType(IntEnum):
    NONE = 0
    DOUBLE_SIDED = 3


class LatheAxis(IntEnum):
    X = 0
    Y = 1
    Z = 2


class Shading(Enum):
    FLAT = 0
    SMOOTH = 1


@dataclass
class MirrorSettings:
    type: MirrorType = MirrorType.NONE
    axis: MirrorAxis = MirrorAxis.NONE
    distance: Optional[float] = None  # stitch limit for CONNECT mode

    @property
    def enabled(self) -> bool:
        return self.type != MirrorType.NONE

    @property
    def is_local(self) -> bool:
        return MirrorAxis.LOCAL in self.axis


@dataclass
class LatheSettings:
    type: LatheType = LatheType.NONE
    axis: LatheAxis = LatheAxis.Y
    segments: int = DEFAULT_LATHE_SEGMENTS

    @property
    def enabled(self) -> bool:
        return self.type != LatheType.NONE


class SceneObject:
    """
    A named object of the scene.

    The transform is recomputed whenever translation, rotation or scale is
    assigned. Rotation is kept in degrees as written in the file.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.parent: Optional[str] = None
        self._translation = np.zeros(3, dtype=np.float64)
        self._rotation = np.zeros(3, dtype=np.float64)
        self._scale = np.ones(3, dtype=np.float64)
        self.transform: npt.NDArray[np.float64] = np.identity(4, dtype=np.float64)

        self.shading: Shading = Shading.SMOOTH
        self.facet_angle: float = DEFAULT_SMOOTH_ANGLE
        self.is_visible: bool = True
        self.patch_type: PatchType = PatchType.POLYGON
        self.patch_segments: int = 0
        self.mirror: Optional[MirrorSettings] = None
        self.lathe: Optional[LatheSettings] = None
        self.has_alpha_vertex_color: bool = False
        self.mesh: Optional[Mesh] = None

        self._compute_transform()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, parent={self.parent!r}, mesh={self.mesh})"

    @property
    def translation(self) -> npt.NDArray[np.float64]:
        return self._translation

    @translation.setter
    def translation(self, value) -> None:
        self._translation = np.array(value, dtype=np.float64)
        self._compute_transform()

    @property
    def rotation(self) -> npt.NDArray[np.float64]:
        """Rotation about (x, y, z) in degrees."""
        return self._rotation

    @rotation.setter
    def rotation(self, value) -> None:
        self._rotation = np.array(value, dtype=np.float64)
        self._compute_transform()

    @property
    def scale(self) -> npt.NDArray[np.float64]:
        return self._scale

    @scale.setter
    def scale(self, value) -> None:
        self._scale = np.array(value, dtype=np.float64)
        self._compute_transform()

    @property
    def smooth_angle(self) -> Optional[float]:
        """Smoothing angle in radians, None for flat shading."""
        if self.shading == Shading.FLAT:
            return None
        return self.facet_angle

    @property
    def smooth_limit(self) -> Optional[float]:
        """Cosine of the smoothing angle, None for flat shading."""
        angle = self.smooth_angle
        return math.cos(angle) if angle is not None else None

    @property
    def smooth_falloff(self) -> Optional[float]:
        """Cosine of the angle at which neighbor normals stop contributing."""
        return smooth_falloff_for(self.smooth_angle)

    @property
    def is_catmull_clark(self) -> bool:
        return self.patch_type == PatchType.CATMULL_CLARK

    def ensure_mirror_settings(self) -> MirrorSettings:
        if self.mirror is None:
            self.mirror = MirrorSettings()
        return self.mirror

    def ensure_lathe_settings(self) -> LatheSettings:
        if self.lathe is None:
            self.lathe = LatheSettings()
        return self.lathe

    def ensure_mesh(self) -> Mesh:
        if self.mesh is None:
            self.mesh = Mesh(owner=self)
        return self.mesh

    def _compute_transform(self) -> None:
        self.transform = compose_transform(self._scale, self._rotation, self._translation)


@dataclass
class Scene:
    """Materials and objects read from one file."""
    materials: list[Material] = field(default_factory=list)
    objects: list[SceneObject] = field(default_factory=list)
    _default_material: Optional[Material] = field(default=None, repr=False)
    # set once convert_scene has moved the meshes to local space
    converted: bool = field(default=False, repr=False)

    def get_material(self, index: int) -> Material:
        """
        Resolve a face material index.

        Args:
            index: Index into :attr:`materials`, or -1 for the default material.

        Returns:
            The material. The default material is created on first use and
            appended to :attr:`materials`.
        """
        if index == -1:
            if self._default_material is None:
                self._default_material = create_default_material()
                self.materials.append(self._default_material)
                logger.debug("Default material created.")
            return self._default_material

        if index < 0 or index >= len(self.materials):
            raise FormatError(f"Material index {index} out of range ({len(self.materials)} materials)")
        return self.materials[index]

    def find_object(self, name: str) -> Optional[SceneObject]:
        for obj in self.objects:
            if obj.name == name:
                return obj
        return None
