"""
Scene File Reader
=================
Builds a :class:`~mqopipeline.model.scene.Scene` from a Metasequoia text file.

Why is this file needed?
------------------------
1. Grammar: It drives the tokenizer through the chunk structure of the file
   (header, Scene, Material, Object, Eof) and rejects anything it does not
   know. The grammar is closed: an unknown chunk or key is a FormatError.
2. Geometry: It turns the ``vertex`` and ``face`` sub-chunks of each object
   into a :class:`~mqopipeline.model.mesh.Mesh`.
3. Hierarchy: It resolves each object's parent from the ``depth`` markers.

Vertex positions are left exactly as stored in the file (absolute space);
converting them to object space is part of the scene conversion.
"""
from __future__ import annotations

import logging
import math
import os
from typing import Callable, Optional

from mqopipeline.config import ReadSettings, SUPPORTED_VERSIONS
from mqopipeline.errors import FormatError, LicenseRestrictionError
from mqopipeline.io.tokenizer import CLOSE_BRACE, OPEN_BRACE, Tokenizer, parse_int
from mqopipeline.model.materials import Material
from mqopipeline.model.mesh import Channel, MAX_FACE_VERTICES
from mqopipeline.model.scene import (
    LatheAxis,
    LatheType,
    MirrorAxis,
    MirrorType,
    PatchType,
    Scene,
    SceneObject,
    Shading,
)

logger = logging.getLogger(__name__)

HEADER_TOKENS = ("Metasequoia", "Document", "Format", "Text", "Ver")

# Ignored keys and the tokenizer reader that consumes their value.
IGNORED_SCENE_KEYS = {
    "pos": "get_vector3",
    "lookat": "get_vector3",
    "head": "get_single",
    "pich": "get_single",
    "bank": "get_single",
    "ortho": "get_single",
    "zoom2": "get_single",
    "amb": "get_vector3",
    "dirlights": "skip_chunk",
}

IGNORED_MATERIAL_KEYS = {
    "shader": "get_int32",
    "amb": "get_single",
    "proj_type": "get_token",
    "proj_pos": "get_vector3",
    "proj_scale": "get_vector3",
    "proj_angle": "get_vector3",
}

IGNORED_OBJECT_KEYS = {
    "color": "get_vector3",
    "color_type": "get_int32",
    "folding": "get_token",
    "locking": "get_token",
    "patchtri": "get_token",
    "blob": "skip_chunk",
    "bvertex": "skip_chunk",
}

DEFAULT_MATERIAL_COLOR = (0.8, 0.8, 0.8, 1.0)
DEFAULT_DIFFUSE = 0.8
DEFAULT_SPECULAR_POWER = 5.0


class SceneReader:
    """
    Reads one scene file.

    Use :func:`read_scene` for files on disk and :meth:`from_text` for
    in-memory sources.
    """

    def __init__(self, tokenizer: Tokenizer, settings: Optional[ReadSettings] = None, source: str = "<memory>") -> None:
        self.tokenizer = tokenizer
        self.settings = settings or ReadSettings()
        self.source = source
        self.scene = Scene()
        # Names of the objects at each depth; the bottom entry is the root.
        self._names: list[Optional[str]] = [None]

        self._chunk_handlers: dict[str, Callable[[], None]] = {
            "scene": self._read_scene_chunk,
            "trialnoise": self._read_trial_noise_chunk,
            "thumbnail": self.tokenizer.skip_chunk,
            "includexml": self.tokenizer.skip_chunk,
            "backimage": self.tokenizer.skip_chunk,
            "material": self._read_material_chunk,
            "object": self._read_object_chunk,
            "eof": lambda: None,
        }

    @classmethod
    def from_text(cls, text: str, settings: Optional[ReadSettings] = None) -> SceneReader:
        return cls(Tokenizer.from_text(text), settings)

    def read(self) -> Scene:
        """
        Parse the whole file.

        Returns:
            The scene with its materials and (visible) objects.
        """
        t = self.tokenizer
        if not t.ensure_tokens(*HEADER_TOKENS):
            raise FormatError(f"'{self.source}' is not a Metasequoia document", t.line_number)

        version = t.get_token()
        if version not in SUPPORTED_VERSIONS:
            raise FormatError(f"Unsupported format version in '{self.source}'", t.line_number, version)

        token = t.get_token()
        while token is not None:
            handler = self._chunk_handlers.get(token.lower())
            if handler is None:
                raise FormatError("Unknown chunk", t.line_number, token)
            logger.debug(f"Reading chunk '{token}' at line {t.line_number}")
            handler()
            token = t.get_token()

        logger.info(
            f"Read '{self.source}': {len(self.scene.materials)} materials, "
            f"{len(self.scene.objects)} objects"
        )
        return self.scene

    # --- CHUNK READERS ---

    def _read_trial_noise_chunk(self) -> None:
        raise LicenseRestrictionError(self.tokenizer.line_number)

    def _read_scene_chunk(self) -> None:
        self._expect_open_brace()
        self._read_ignored_block(IGNORED_SCENE_KEYS)

    def _read_material_chunk(self) -> None:
        t = self.tokenizer
        count = t.get_int32()
        self._expect_open_brace()

        first_material = len(self.scene.materials)
        material: Optional[Material] = None
        values = self._default_material_values()

        while True:
            token = self._next_token()

            # A quoted token starts the next material.
            if token.startswith('"'):
                if material is not None:
                    self._add_material(material, values)
                    values = self._default_material_values()
                material = Material(name=token.strip('"'))
                continue

            key = token.lower()
            if key == CLOSE_BRACE:
                break
            if key in IGNORED_MATERIAL_KEYS:
                getattr(t, IGNORED_MATERIAL_KEYS[key])()
                continue
            if material is None:
                raise FormatError("Material property before material name", t.line_number, token)

            if key == "col":
                values["color"] = t.get_vector4()
            elif key == "vcol":
                material.vertex_color_enabled = t.get_int32() == 1
            elif key in ("dif", "emi", "spc", "power"):
                values[key] = t.get_single()
            elif key == "tex":
                material.texture = t.get_string()
            elif key == "aplane":
                material.alpha_texture = t.get_string()
            elif key == "bump":
                material.bump_texture = t.get_string()
            else:
                raise FormatError("Unknown material key", t.line_number, token)

        if material is not None:
            self._add_material(material, values)

        read_count = len(self.scene.materials) - first_material
        if count != read_count:
            logger.warning(f"Material chunk declared {count} materials but contained {read_count}")

    def _read_object_chunk(self) -> None:
        t = self.tokenizer
        name = t.get_string()
        self._expect_open_brace()

        obj = SceneObject(name)
        done = False
        has_depth = False
        while not done:
            token = self._next_token()
            key = token.lower()

            if key in IGNORED_OBJECT_KEYS:
                getattr(t, IGNORED_OBJECT_KEYS[key])()
            elif key == "depth":
                has_depth = True
                depth = t.get_int32() + 1
                while depth < len(self._names):
                    self._names.pop()
                obj.parent = self._names[-1]
            elif key == "vertex":
                self._read_vertices(obj)
            elif key == "face":
                self._read_faces(obj)
            elif key == "facet":
                obj.facet_angle = math.radians(t.get_single())
            elif key == "shading":
                obj.shading = Shading.FLAT if t.get_int32() == 0 else Shading.SMOOTH
            elif key == "lathe":
                obj.ensure_lathe_settings().type = self._read_enum(LatheType, t.get_int32())
            elif key == "lathe_axis":
                obj.ensure_lathe_settings().axis = self._read_enum(LatheAxis, t.get_int32())
            elif key == "lathe_seg":
                obj.ensure_lathe_settings().segments = t.get_int32()
            elif key == "mirror":
                obj.ensure_mirror_settings().type = self._read_enum(MirrorType, t.get_int32())
            elif key == "mirror_axis":
                obj.ensure_mirror_settings().axis = MirrorAxis(t.get_int32())
            elif key == "mirror_dis":
                obj.ensure_mirror_settings().distance = t.get_single()
            elif key == "patch":
                obj.patch_type = self._read_enum(PatchType, t.get_int32())
                if obj.patch_type not in (PatchType.POLYGON, PatchType.CATMULL_CLARK):
                    logger.warning(f"Object '{name}': spline patches are not supported, remaining data skipped")
                    t.skip_tokens()
                    done = True
            elif key == "segment":
                obj.patch_segments = t.get_int32()
            elif key == "translation":
                obj.translation = t.get_vector3()
            elif key == "rotation":
                obj.rotation = t.get_vector3()
            elif key == "scale":
                obj.scale = t.get_vector3()
            elif key == "visible":
                obj.is_visible = t.get_int32() != 0
                if not obj.is_visible and not self.settings.import_invisible_objects:
                    logger.debug(f"Object '{name}' is invisible, skipped")
                    t.skip_tokens()
                    done = True
            elif key == CLOSE_BRACE:
                done = True
            else:
                raise FormatError("Unknown object key", t.line_number, token)

        # objects without a depth marker sit at the root
        if not has_depth:
            del self._names[1:]

        if obj.is_visible or self.settings.import_invisible_objects:
            self._names.append(obj.name)
            self.scene.objects.append(obj)

    def _read_vertices(self, obj: SceneObject) -> None:
        t = self.tokenizer
        mesh = obj.ensure_mesh()

        count = t.get_int32()
        self._expect_open_brace()
        for _ in range(count):
            mesh.add_position(t.get_vector3())
        t.skip_tokens()

    def _read_faces(self, obj: SceneObject) -> None:
        """
        Read a ``face`` sub-chunk.

        Each record starts with its vertex count and is followed by keyed
        lists: ``V`` vertex indices, ``M`` material, ``UV`` and ``COL``.
        The start of the next record is recognised by its integer count.
        """
        t = self.tokenizer
        mesh = obj.ensure_mesh()

        count = t.get_int32()
        if count == 0:
            t.skip_chunk()
            return

        self._expect_open_brace()

        num_verts = t.get_int32()
        closed = False
        for _ in range(count):
            if closed:
                raise FormatError(f"Face chunk declared {count} faces but ended early", t.line_number)
            record_verts = num_verts
            if record_verts > MAX_FACE_VERTICES:
                raise FormatError(f"Faces may have at most {MAX_FACE_VERTICES} vertices", t.line_number, str(record_verts))

            indices: list[int] = []
            texcoords: Optional[list[tuple[float, float]]] = None
            colors: Optional[list[tuple[float, float, float, float]]] = None
            material_index = -1
            material_line = vertex_line = t.line_number

            while True:
                token = self._next_token()
                key = token.lower()
                if key == "v":
                    indices = [t.get_int32() for _ in range(record_verts)]
                    vertex_line = t.line_number
                elif key == "m":
                    material_index = t.get_int32()
                    material_line = t.line_number
                elif key == "uv":
                    texcoords = [t.get_vector2() for _ in range(record_verts)]
                elif key == "col":
                    colors = [t.get_color() for _ in range(record_verts)]
                elif key == CLOSE_BRACE:
                    closed = True
                    break
                else:
                    next_count = parse_int(token)
                    if next_count is None:
                        raise FormatError("Unknown face key", t.line_number, token)
                    num_verts = next_count
                    break

            # single-vertex records carry no geometry
            if record_verts < 2:
                continue

            for idx in indices:
                if idx < 0 or idx >= len(mesh.vertices):
                    raise FormatError("Face vertex index out of range", vertex_line, str(idx))
            if len(indices) != record_verts:
                raise FormatError("Face record without vertex indices", t.line_number)
            num_materials = len(self.scene.materials)
            if material_index != -1 and not 0 <= material_index < num_materials:
                raise FormatError(
                    f"Face material index out of range ({num_materials} materials)", material_line, str(material_index)
                )

            self._add_face(obj, indices, material_index, texcoords, colors)

    # --- HELPERS ---

    def _add_face(
        self,
        obj: SceneObject,
        indices: list[int],
        material_index: int,
        texcoords: Optional[list[tuple[float, float]]],
        colors: Optional[list[tuple[float, float, float, float]]],
    ) -> None:
        material = self.scene.get_material(material_index)

        channels = []
        for corner in range(len(indices)):
            channels.append(Channel(
                texcoord=texcoords[corner] if texcoords is not None else (0.0, 0.0),
                color=colors[corner] if colors is not None else (1.0, 1.0, 1.0, 1.0),
            ))

        face = obj.mesh.add_face(indices, channels)
        face.material = material
        face.material_index = material_index
        face.has_texcoord = material.has_texture and texcoords is not None

        if colors is not None:
            if any(color[3] < 1.0 for color in colors):
                obj.has_alpha_vertex_color = True
            face.has_vertex_color = bool(material.vertex_color_enabled)

    def _add_material(self, material: Material, values: dict) -> None:
        built = Material.from_mqo(
            name=material.name,
            color=values["color"],
            dif=values["dif"],
            emi=values["emi"],
            spc=values["spc"],
            power=values["power"],
        )
        built.vertex_color_enabled = material.vertex_color_enabled
        built.texture = material.texture
        built.alpha_texture = material.alpha_texture
        built.bump_texture = material.bump_texture
        self.scene.materials.append(built)

    @staticmethod
    def _default_material_values() -> dict:
        return {
            "color": DEFAULT_MATERIAL_COLOR,
            "dif": DEFAULT_DIFFUSE,
            "emi": 0.0,
            "spc": 0.0,
            "power": DEFAULT_SPECULAR_POWER,
        }

    def _read_ignored_block(self, ignored_keys: dict[str, str]) -> None:
        """Consume a chunk made only of ignored keys, up to its closing brace."""
        t = self.tokenizer
        while True:
            token = self._next_token()
            key = token.lower()
            if key == CLOSE_BRACE:
                return
            if key not in ignored_keys:
                raise FormatError("Unknown key", t.line_number, token)
            getattr(t, ignored_keys[key])()

    def _read_enum(self, enum_type, value: int):
        try:
            return enum_type(value)
        except ValueError:
            raise FormatError(f"Invalid {enum_type.__name__} value", self.tokenizer.line_number, str(value)) from None

    def _expect_open_brace(self) -> None:
        if not self.tokenizer.ensure_tokens(OPEN_BRACE):
            raise FormatError("Expected '{'", self.tokenizer.line_number)

    def _next_token(self) -> str:
        token = self.tokenizer.get_token()
        if token is None:
            raise FormatError("Unexpected end of file", self.tokenizer.line_number)
        return token


def read_scene(path: str | os.PathLike, settings: Optional[ReadSettings] = None) -> Scene:
    """
    Read a scene file from disk.

    Args:
        path: Path of the .mqo file.
        settings: Read options (encoding, invisible objects).

    Returns:
        The parsed scene.
    """
    settings = settings or ReadSettings()
    logger.info(f"Reading scene: {path}")
    with Tokenizer.open(path, encoding=settings.encoding) as tokenizer:
        return SceneReader(tokenizer, settings, source=os.fspath(path)).read()
