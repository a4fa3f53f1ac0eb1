"""
Wavefront OBJ Export
====================
Writes a converted scene as one ``.obj`` file with a companion ``.mtl``.

Positions and normals are written in world space (each node's absolute
transform applied), so the file can be inspected in any OBJ viewer without
a scene graph. Every batch becomes a run of faces under its own ``usemtl``.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TextIO, TYPE_CHECKING

import numpy as np

from mqopipeline.errors import ResourceError
from mqopipeline.model.geometry_utils import transform_points

if TYPE_CHECKING:
    import numpy.typing as npt

    from mqopipeline.model.materials import Material
    from mqopipeline.pipeline import ConvertedNode, ConvertedScene

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^0-9A-Za-z_.\-]+")


def sanitize_name(name: str) -> str:
    """OBJ/MTL statement arguments end at whitespace; replace anything unusual."""
    cleaned = _UNSAFE_NAME.sub("_", name).strip("_")
    return cleaned or "unnamed"


def _material_names(materials: list[Material]) -> dict[int, str]:
    """Unique MTL names keyed by material identity."""
    names: dict[int, str] = {}
    used: set[str] = set()
    for material in materials:
        base = sanitize_name(material.name)
        name = base
        suffix = 1
        while name in used:
            suffix += 1
            name = f"{base}_{suffix}"
        used.add(name)
        names[id(material)] = name
    return names


def _normal_matrix(transform: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Row-vector matrix that carries normals through ``transform``."""
    return np.linalg.inv(transform[:3, :3]).T


def _texture_path(path: str) -> str:
    return path.replace("\\", "/")


def write_mtl(stream: TextIO, materials: list[Material], names: dict[int, str]) -> None:
    for material in materials:
        kd = material.diffuse_color
        ks = material.specular_color
        ke = material.emissive_color
        stream.write(f"newmtl {names[id(material)]}\n")
        stream.write(f"Kd {kd[0]:.6f} {kd[1]:.6f} {kd[2]:.6f}\n")
        stream.write(f"Ks {ks[0]:.6f} {ks[1]:.6f} {ks[2]:.6f}\n")
        stream.write(f"Ke {ke[0]:.6f} {ke[1]:.6f} {ke[2]:.6f}\n")
        stream.write(f"Ns {material.specular_power:.6f}\n")
        stream.write(f"d {material.alpha:.6f}\n")
        if material.texture:
            stream.write(f"map_Kd {_texture_path(material.texture)}\n")
        if material.alpha_texture:
            stream.write(f"map_d {_texture_path(material.alpha_texture)}\n")
        if material.bump_texture:
            stream.write(f"map_Bump {_texture_path(material.bump_texture)}\n")
        stream.write("\n")


def _write_node(
    stream: TextIO,
    node: ConvertedNode,
    names: dict[int, str],
    bases: list[int],
) -> None:
    """Write one node. ``bases`` holds the running (v, vt, vn) index offsets."""
    content = node.content
    v_base, vt_base, vn_base = bases

    stream.write(f"o {sanitize_name(node.name)}\n")
    for x, y, z in transform_points(content.positions, node.absolute_transform):
        stream.write(f"v {x:.6f} {y:.6f} {z:.6f}\n")

    normal_matrix = _normal_matrix(node.absolute_transform)
    for batch in content.geometries:
        for u, v in (batch.texcoords if batch.has_texcoords else [(0.0, 0.0)] * batch.vertex_count):
            # OBJ puts v = 0 at the bottom of the image
            stream.write(f"vt {u:.6f} {1.0 - v:.6f}\n")

        for normal in batch.normals:
            n = np.asarray(normal) @ normal_matrix
            length = np.linalg.norm(n)
            if length > 0.0:
                n = n / length
            stream.write(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}\n")

        if batch.material is not None:
            stream.write(f"usemtl {names[id(batch.material)]}\n")
        for i in range(0, len(batch.indices), 3):
            corners = []
            for index in batch.indices[i:i + 3]:
                corners.append(
                    f"{v_base + batch.position_indices[index]}/{vt_base + index}/{vn_base + index}"
                )
            stream.write(f"f {' '.join(corners)}\n")

        vt_base += batch.vertex_count
        vn_base += batch.vertex_count

    bases[:] = [v_base + content.position_count, vt_base, vn_base]


def write_obj(converted: ConvertedScene, path: str | os.PathLike) -> Path:
    """
    Write ``converted`` to an OBJ file and a material library next to it.

    Args:
        converted: Result of the scene conversion.
        path: Output ``.obj`` path; the ``.mtl`` gets the same stem.

    Returns:
        Path of the written OBJ file.
    """
    obj_path = Path(path)
    mtl_path = obj_path.with_suffix(".mtl")
    names = _material_names(converted.materials)

    try:
        obj_path.parent.mkdir(parents=True, exist_ok=True)
        with mtl_path.open("w", encoding="utf-8", newline="\n") as f:
            write_mtl(f, converted.materials, names)

        # OBJ indices are 1-based and global to the file
        bases = [1, 1, 1]
        with obj_path.open("w", encoding="utf-8", newline="\n") as f:
            f.write(f"mtllib {mtl_path.name}\n")
            for node in converted.mesh_nodes():
                _write_node(f, node, names, bases)
    except OSError as e:
        raise ResourceError(f"Cannot write '{obj_path}': {e}") from e

    logger.info(f"Wrote {obj_path} ({converted.triangle_count} triangles)")
    return obj_path
