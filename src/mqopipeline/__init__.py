"""
Metasequoia scene conversion.

Reads .mqo text scenes and turns every object into triangulated, batched
render meshes::

    from mqopipeline import convert_file

    converted = convert_file("model.mqo")
    for node in converted.mesh_nodes():
        print(node.name, node.content.triangle_count)
"""
from mqopipeline.config import ReadSettings
from mqopipeline.errors import (
    ConsistencyError,
    FormatError,
    LicenseRestrictionError,
    MqError,
    ResourceError,
)
from mqopipeline.io.reader import SceneReader, read_scene
from mqopipeline.pipeline import ConvertedNode, ConvertedScene, convert_file, convert_scene

__version__ = "0.1.0"

__all__ = [
    "ConsistencyError",
    "ConvertedNode",
    "ConvertedScene",
    "FormatError",
    "LicenseRestrictionError",
    "MqError",
    "ReadSettings",
    "ResourceError",
    "SceneReader",
    "convert_file",
    "convert_scene",
    "read_scene",
]
