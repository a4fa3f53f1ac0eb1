"""
Configuration & Constants
=========================
This module serves as the central registry for the conversion settings and
the numeric constants shared by the parser and the geometry stages.

Why is this file needed?
------------------------
1. Abstraction: It keeps tolerances and limits (mirror epsilon, index limits)
   out of the algorithms so they are tuned in one place.
2. Settings: It defines the options a caller passes to the reader and the
   scene conversion (text encoding, invisible objects, 16-bit indices).

Exports:
    DEFAULT_ENCODING (str): Text encoding of .mqo files written by the modeler.
    ReadSettings: Options for reading and converting one scene.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

# Metasequoia writes its text files in the Japanese legacy code page.
DEFAULT_ENCODING: str = "shift_jis"

SUPPORTED_VERSIONS: tuple[str, ...] = ("1.0", "1.1")

# Distance below which a mirrored vertex is merged with its source vertex.
MIRROR_EPSILON: float = 1e-3

# Squared length below which a normal contribution is ignored.
NORMAL_EPSILON: float = 1e-12

# 16-bit indices top out at 65,535, but some GPUs treat 0xFFFF as the strip
# restart index, so batches are split below that.
SIXTEEN_BIT_INDEX_LIMIT: int = 65530

# The smoothing falloff ends 10% beyond the object's smoothing angle.
SMOOTH_FALLOFF_SCALE: float = 1.1

DEFAULT_SMOOTH_ANGLE: float = math.pi

DEFAULT_LATHE_SEGMENTS: int = 12


@dataclass
class ReadSettings:
    """
    Options for reading and converting a scene file.

    Attributes:
        encoding: Text encoding used to decode the file.
        import_invisible_objects: Build objects flagged ``visible 0`` as well.
        use_sixteen_bits_index: Split batches so every index fits in 16 bits.
    """
    encoding: str = DEFAULT_ENCODING
    import_invisible_objects: bool = False
    use_sixteen_bits_index: bool = True
