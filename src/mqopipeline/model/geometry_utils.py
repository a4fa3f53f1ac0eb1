"""
Transform helpers
=================
Small 4x4 matrix helpers shared by the scene model and the geometry stages.

Matrices use the row-vector convention of the source modeler's toolchain:
a point is transformed as ``[x, y, z, 1] @ M``. Consequently transforms compose
left to right, ``scale @ rotation @ translation`` applies the scale first, and
an object's absolute transform is ``local @ parent_absolute``.

Note: This module should be pure Python/NumPy.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from math import pi
import numpy as np

if TYPE_CHECKING:
    from numpy import typing as npt


def deg2rad(degrees: float) -> float:
    return degrees * pi / 180


def as_vector3(values: Sequence[float] | npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Copy ``values`` into a new float64 3-vector."""
    vec = np.array(values, dtype=np.float64)
    if vec.shape != (3,):
        raise ValueError(f"Expected 3 components, got shape {vec.shape}.")
    return vec


def scale_matrix(scale: Sequence[float] | npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Non-uniform scale matrix."""
    m = np.identity(4, dtype=np.float64)
    m[0, 0], m[1, 1], m[2, 2] = scale
    return m


def translation_matrix(offset: Sequence[float] | npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Translation matrix (translation lives in the last row)."""
    m = np.identity(4, dtype=np.float64)
    m[3, :3] = offset
    return m


def rotation_x(angle: float) -> npt.NDArray[np.float64]:
    c, s = np.cos(angle), np.sin(angle)
    m = np.identity(4, dtype=np.float64)
    m[1, 1], m[1, 2] = c, s
    m[2, 1], m[2, 2] = -s, c
    return m


def rotation_y(angle: float) -> npt.NDArray[np.float64]:
    c, s = np.cos(angle), np.sin(angle)
    m = np.identity(4, dtype=np.float64)
    m[0, 0], m[0, 2] = c, -s
    m[2, 0], m[2, 2] = s, c
    return m


def rotation_z(angle: float) -> npt.NDArray[np.float64]:
    c, s = np.cos(angle), np.sin(angle)
    m = np.identity(4, dtype=np.float64)
    m[0, 0], m[0, 1] = c, s
    m[1, 0], m[1, 1] = -s, c
    return m


def yaw_pitch_roll_matrix(yaw: float, pitch: float, roll: float) -> npt.NDArray[np.float64]:
    """
    Rotation applying roll (Z), then pitch (X), then yaw (Y).

    Args:
        yaw: Rotation about the Y axis in radians.
        pitch: Rotation about the X axis in radians.
        roll: Rotation about the Z axis in radians.

    Returns:
        The 4x4 rotation matrix.
    """
    return rotation_z(roll) @ rotation_x(pitch) @ rotation_y(yaw)


def compose_transform(
    scale: Sequence[float] | npt.NDArray[np.float64],
    rotation_degrees: Sequence[float] | npt.NDArray[np.float64],
    translation: Sequence[float] | npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """
    Build an object transform from its scale, rotation and translation.

    Args:
        scale: Non-uniform scale (x, y, z).
        rotation_degrees: Rotation about (x, y, z) in degrees; x is the pitch,
            y the yaw (heading) and z the roll (bank).
        translation: Translation (x, y, z).

    Returns:
        ``scale @ rotation @ translation``.
    """
    rx, ry, rz = (deg2rad(float(a)) for a in rotation_degrees)
    return (
        scale_matrix(scale)
        @ yaw_pitch_roll_matrix(yaw=ry, pitch=rx, roll=rz)
        @ translation_matrix(translation)
    )


def transform_point(
    point: Sequence[float] | npt.NDArray[np.float64],
    matrix: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Transform a 3D point by a 4x4 row-vector matrix."""
    p = np.append(np.asarray(point, dtype=np.float64), 1.0) @ matrix
    return p[:3]


def transform_points(points: npt.NDArray[np.float64], matrix: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Transform an (N, 3) array of points by a 4x4 row-vector matrix."""
    if len(points) == 0:
        return np.empty((0, 3), dtype=np.float64)
    homogeneous = np.hstack((points, np.ones((len(points), 1), dtype=np.float64)))
    return (homogeneous @ matrix)[:, :3]
