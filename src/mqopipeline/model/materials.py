"""
Material Definitions
====================
Defines the material data read from a scene file.

Texture paths are stored as written in the file; resolving them and
compositing alpha planes is left to the caller.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING
import logging

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL_NAME = "Default"

# Specular powers this close to zero are replaced by 1.0 to keep the
# specular term well defined.
MIN_SPECULAR_POWER = 1e-5


def _rgb(values: tuple[float, float, float] | npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    return np.array(values, dtype=np.float64)


@dataclass(eq=False)
class Material:
    """
    A surface material.

    Materials compare by identity: two materials with identical values but
    read from different blocks still produce separate batches.
    """
    name: str
    diffuse_color: npt.NDArray[np.float64] = field(default_factory=lambda: _rgb((0.8, 0.8, 0.8)))
    emissive_color: npt.NDArray[np.float64] = field(default_factory=lambda: _rgb((0.0, 0.0, 0.0)))
    specular_color: npt.NDArray[np.float64] = field(default_factory=lambda: _rgb((0.0, 0.0, 0.0)))
    specular_power: float = 5.0
    alpha: float = 1.0
    vertex_color_enabled: Optional[bool] = None
    texture: Optional[str] = None
    alpha_texture: Optional[str] = None
    bump_texture: Optional[str] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, alpha={self.alpha}, texture={self.texture!r})"

    @classmethod
    def from_mqo(
        cls,
        name: str,
        color: tuple[float, float, float, float] | npt.NDArray[np.float64],
        dif: float,
        emi: float,
        spc: float,
        power: float,
    ) -> Material:
        """
        Build a material from the modeler's factor-based description.

        Args:
            name: Material name.
            color: Base color (r, g, b, a).
            dif: Diffuse factor applied to the base color.
            emi: Emissive factor applied to the base color.
            spc: Specular intensity (grey).
            power: Specular exponent.

        Returns:
            The material, with absolute diffuse/emissive/specular colors.
        """
        rgb = np.array(color[:3], dtype=np.float64)
        if abs(power) < MIN_SPECULAR_POWER:
            logger.debug(f"Material '{name}': specular power {power} replaced by 1.0")
            power = 1.0
        return cls(
            name=name,
            diffuse_color=rgb * dif,
            emissive_color=rgb * emi,
            specular_color=_rgb((spc, spc, spc)),
            specular_power=float(power),
            alpha=float(color[3]),
        )

    @property
    def has_texture(self) -> bool:
        """True when any texture (base, alpha plane or bump) is referenced."""
        return any(tex is not None for tex in (self.texture, self.alpha_texture, self.bump_texture))

    def has_alpha(self) -> Optional[bool]:
        """
        Whether rendering this material needs alpha blending.

        Returns:
            True when the material is translucent or has an alpha plane,
            None when only the base texture could carry alpha (undecidable
            without loading it), False otherwise.
        """
        if self.alpha < 1.0 or self.alpha_texture is not None:
            return True
        if self.texture is not None:
            return None
        return False


def create_default_material() -> Material:
    """Material used by faces that reference no material (index -1)."""
    return Material(
        name=DEFAULT_MATERIAL_NAME,
        diffuse_color=_rgb((0.8, 0.8, 0.8)),
        specular_color=_rgb((0.0, 0.0, 0.0)),
    )
