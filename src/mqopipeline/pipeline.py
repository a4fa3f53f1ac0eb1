"""
Scene Conversion
================
Turns a parsed :class:`~mqopipeline.model.scene.Scene` into render meshes.

Why is this file needed?
------------------------
1. Hierarchy: It decides which objects are converted (visible ones and their
   ancestors) and computes each object's absolute transform from its parent
   chain.
2. Space: The file stores every vertex in world space. Meshes are converted
   to the local space of their object before any generator runs.
3. Stages: It runs the generators in a fixed order for every object:
   mirror, lathe, Catmull-Clark subdivision, then the mesh builder.

Conversion modifies the scene's meshes in place (local space, generated
geometry), so a scene can be converted only once.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterator, Optional, TYPE_CHECKING

import numpy as np

from mqopipeline.builder.content import MeshContent
from mqopipeline.builder.mesh_builder import MeshBuilder
from mqopipeline.config import ReadSettings
from mqopipeline.errors import ConsistencyError
from mqopipeline.geometry.lathe import apply_lathe
from mqopipeline.geometry.mirror import apply_mirroring
from mqopipeline.geometry.subdivision import SubDivider
from mqopipeline.io.reader import read_scene
from mqopipeline.model.geometry_utils import transform_points

if TYPE_CHECKING:
    import numpy.typing as npt

    from mqopipeline.model.materials import Material
    from mqopipeline.model.scene import Scene, SceneObject

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ConvertedNode:
    """
    One converted object.

    Attributes:
        name: Object name.
        parent: Name of the parent node, None for root nodes.
        transform: Local transform relative to the parent.
        absolute_transform: Transform from object space to world space.
        content: Render mesh, None for objects without geometry.
        has_alpha_vertex_color: Some face corner has a vertex color alpha below 1.
        source: The scene object the node was built from.
    """
    name: str
    parent: Optional[str]
    transform: npt.NDArray[np.float64]
    absolute_transform: npt.NDArray[np.float64]
    content: Optional[MeshContent] = None
    has_alpha_vertex_color: bool = False
    source: Optional[SceneObject] = field(default=None, repr=False)


@dataclass
class ConvertedScene:
    """Converted nodes in file order plus the materials they reference."""
    nodes: list[ConvertedNode] = field(default_factory=list)
    materials: list[Material] = field(default_factory=list)

    def find_node(self, name: str) -> Optional[ConvertedNode]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def mesh_nodes(self) -> Iterator[ConvertedNode]:
        """Nodes that carry a render mesh."""
        return (node for node in self.nodes if node.content is not None)

    @property
    def triangle_count(self) -> int:
        return sum(node.content.triangle_count for node in self.mesh_nodes())


def employed_objects(scene: Scene, import_invisible_objects: bool = False) -> list[SceneObject]:
    """
    Objects to convert, in file order.

    Args:
        scene: Parsed scene.
        import_invisible_objects: Convert hidden objects as well.

    Returns:
        Every visible object (every object when importing invisible ones)
        and all of its ancestors.
    """
    by_name = {obj.name: obj for obj in scene.objects}
    employed: set[str] = set()

    for obj in scene.objects:
        if not (import_invisible_objects or obj.is_visible):
            continue
        current: Optional[SceneObject] = obj
        while current is not None and current.name not in employed:
            employed.add(current.name)
            current = by_name.get(current.parent) if current.parent else None

    return [obj for obj in scene.objects if obj.name in employed]


def convert_scene(scene: Scene, settings: Optional[ReadSettings] = None) -> ConvertedScene:
    """
    Convert every employed object of ``scene``.

    Args:
        scene: Parsed scene; its meshes are modified in place.
        settings: Conversion options.

    Returns:
        The converted nodes and the scene materials.
    """
    settings = settings or ReadSettings()
    if scene.converted:
        raise ConsistencyError("Scene has already been converted.")
    scene.converted = True

    objects = employed_objects(scene, settings.import_invisible_objects)
    by_name = {obj.name: obj for obj in objects}
    absolute: dict[str, npt.NDArray[np.float64]] = {}
    result = ConvertedScene()

    for obj in objects:
        parent = obj.parent if obj.parent in by_name else None
        if obj.parent and parent is None:
            logger.warning(f"Object '{obj.name}': parent '{obj.parent}' not found, attached to the root")

        # parents precede their children in the file
        parent_transform = absolute.get(parent) if parent else None
        node_transform = obj.transform if parent_transform is None else obj.transform @ parent_transform
        absolute[obj.name] = node_transform

        node = ConvertedNode(
            name=obj.name,
            parent=parent,
            transform=obj.transform,
            absolute_transform=node_transform,
            has_alpha_vertex_color=obj.has_alpha_vertex_color,
            source=obj,
        )
        if obj.mesh is not None:
            node.content = convert_object(scene, obj, node_transform, settings)
        result.nodes.append(node)

    result.materials = list(scene.materials)
    logger.info(
        f"Converted {len(result.nodes)} nodes, {sum(1 for _ in result.mesh_nodes())} meshes, "
        f"{result.triangle_count} triangles"
    )
    return result


def convert_object(
    scene: Scene,
    obj: SceneObject,
    node_transform: npt.NDArray[np.float64],
    settings: ReadSettings,
) -> MeshContent:
    """
    Run the generator stages and the mesh builder for one object.

    ``obj.mesh`` ends up in local space with mirror and lathe geometry
    applied; the subdivided mesh only exists inside the built content.
    """
    mesh = obj.mesh
    mesh.owner = obj

    # vertices are stored in world space
    if mesh.vertices:
        local = transform_points(mesh.positions, np.linalg.inv(node_transform))
        for vertex, position in zip(mesh.vertices, local):
            vertex.position = position

    for face in mesh.faces:
        face.material = scene.get_material(face.material_index)

    apply_mirroring(mesh, node_transform)
    apply_lathe(mesh, node_transform)

    if obj.is_catmull_clark and obj.patch_segments > 0:
        mesh = SubDivider().subdivide_levels(mesh, obj.patch_segments)

    builder = MeshBuilder(use_sixteen_bits_index=settings.use_sixteen_bits_index)
    builder.begin_build(MeshContent(obj.name))
    builder.add_mesh(mesh)
    content = builder.end_build()

    logger.info(
        f"Object '{obj.name}': {content.position_count} positions, "
        f"{len(content.geometries)} batches, {content.triangle_count} triangles"
    )
    return content


def convert_file(path: str | os.PathLike, settings: Optional[ReadSettings] = None) -> ConvertedScene:
    """Read a scene file and convert it."""
    settings = settings or ReadSettings()
    return convert_scene(read_scene(path, settings), settings)
