import math
import unittest

import numpy as np

from mqopipeline.builder.content import GeometryBatch, MeshContent, VertexChannelFlags
from mqopipeline.builder.mesh_builder import MeshBuilder, compute_face_normal
from mqopipeline.errors import ConsistencyError
from mqopipeline.model.materials import Material
from mqopipeline.model.mesh import Channel, Mesh


def square(split: bool) -> Mesh:
    """Unit square in the XY plane, as one quad or two triangles."""
    mesh = Mesh()
    for p in ((0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)):
        mesh.add_position(p)
    if split:
        mesh.add_face([0, 1, 2])
        mesh.add_face([2, 3, 0])
    else:
        mesh.add_face([0, 1, 2, 3])
    return mesh


def fold() -> Mesh:
    """Two quads meeting at a right angle along the edge (1, 4)."""
    mesh = Mesh()
    for p in ((0, 0, 0), (1, 0, 0), (1, 0, 1), (0, 0, 1), (1, 1, 0), (1, 1, 1)):
        mesh.add_position(p)
    mesh.add_face([0, 1, 2, 3])
    mesh.add_face([1, 4, 5, 2])
    return mesh


def build(mesh: Mesh, smooth_angle=None, sixteen_bits: bool = True) -> MeshContent:
    builder = MeshBuilder(use_sixteen_bits_index=sixteen_bits)
    builder.begin_build(MeshContent("test"))
    builder.add_mesh(mesh, smooth_angle)
    return builder.end_build()


class TestFaceNormal(unittest.TestCase):
    def test_counter_clockwise_square_faces_negative_z(self) -> None:
        normal = compute_face_normal(np.array([(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)], dtype=float))
        np.testing.assert_allclose(normal, [0, 0, -1])

    def test_non_planar_quad_is_averaged(self) -> None:
        normal = compute_face_normal(np.array([(0, 0, 0), (1, 0, 0), (1, 1, 0.2), (0, 1, 0)], dtype=float))
        self.assertAlmostEqual(float(np.linalg.norm(normal)), 1.0)
        self.assertLess(normal[2], -0.9)

    def test_degenerate(self) -> None:
        normal = compute_face_normal(np.array([(0, 0, 0), (1, 0, 0), (2, 0, 0)], dtype=float))
        np.testing.assert_allclose(normal, [0, 0, 0])


class TestMeshBuilder(unittest.TestCase):
    def test_quad_is_triangulated(self) -> None:
        content = build(square(split=False))
        self.assertEqual(content.position_count, 4)
        self.assertEqual(len(content.geometries), 1)

        batch = content.geometries[0]
        self.assertEqual(batch.flags, VertexChannelFlags.NONE)
        corners = [batch.position_indices[i] for i in batch.indices]
        self.assertEqual(corners, [0, 1, 2, 2, 3, 0])
        # flat quad: one vertex per position after merging
        self.assertEqual(batch.vertex_count, 4)
        for normal in batch.normals:
            np.testing.assert_allclose(normal, [0, 0, -1])

    def test_coplanar_smoothing(self) -> None:
        content = build(square(split=True), smooth_angle=math.pi)
        batch = content.geometries[0]
        self.assertEqual(batch.triangle_count, 2)
        self.assertEqual(batch.vertex_count, 4)
        for normal in batch.normals:
            np.testing.assert_allclose(normal, [0, 0, -1], atol=1e-12)

    def test_flat_shading_keeps_face_normals(self) -> None:
        batch = build(fold(), smooth_angle=None).geometries[0]
        # the shared edge is duplicated, once per face normal
        self.assertEqual(batch.vertex_count, 8)
        normals = {tuple(np.round(n, 9)) for n in batch.normals}
        self.assertEqual(normals, {(0.0, 1.0, 0.0), (-1.0, 0.0, 0.0)})

    def test_smooth_shading_blends_across_edge(self) -> None:
        batch = build(fold(), smooth_angle=math.pi).geometries[0]
        self.assertEqual(batch.vertex_count, 6)
        diagonal = np.array([-1.0, 1.0, 0.0]) / math.sqrt(2.0)
        shared = [n for i, n in enumerate(batch.normals) if batch.position_indices[i] in (1, 2)]
        self.assertEqual(len(shared), 2)
        for normal in shared:
            np.testing.assert_allclose(normal, diagonal, atol=1e-12)

    def test_smoothing_angle_limits_blending(self) -> None:
        batch = build(fold(), smooth_angle=math.radians(30)).geometries[0]
        self.assertEqual(batch.vertex_count, 8)

    def test_smoothing_from_owner(self) -> None:
        from mqopipeline.model.scene import SceneObject, Shading

        obj = SceneObject("fold")
        obj.shading = Shading.FLAT
        mesh = fold()
        mesh.owner = obj

        builder = MeshBuilder()
        builder.begin_build(MeshContent("fold"))
        builder.add_mesh(mesh)
        self.assertEqual(builder.end_build().geometries[0].vertex_count, 8)

    def test_batches_per_material_and_channels(self) -> None:
        red = Material("red")
        blue = Material("blue")
        mesh = Mesh()
        for p in ((0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)):
            mesh.add_position(p)
        a = mesh.add_face([0, 1, 2])
        b = mesh.add_face([0, 2, 3])
        c = mesh.add_face([0, 1, 3])
        a.material = b.material = c.material = red
        c.material = blue
        b.has_vertex_color = True

        content = build(mesh)
        keys = [(g.material.name, g.flags) for g in content.geometries]
        self.assertEqual(
            keys,
            [("red", VertexChannelFlags.NONE), ("red", VertexChannelFlags.COLOR), ("blue", VertexChannelFlags.NONE)],
        )
        self.assertEqual(len(content.geometries[1].colors), 3)
        self.assertEqual(content.geometries[0].colors, [])

    def test_bone_weights_imply_texcoords(self) -> None:
        mesh = Mesh()
        for p in ((0, 0, 0), (1, 0, 0), (1, 1, 0)):
            mesh.add_position(p)
        face = mesh.add_face([0, 1, 2], [Channel(texcoord=(0.5, 0.5), bone_weights=(("root", 1.0),))] * 3)
        face.has_bone_weights = True

        batch = build(mesh).geometries[0]
        self.assertEqual(batch.flags, VertexChannelFlags.WEIGHTS | VertexChannelFlags.TEXCOORD)
        self.assertEqual(batch.texcoords[0], (0.5, 0.5))
        self.assertEqual(batch.bone_weights[0], (("root", 1.0),))

    def test_lathe_seeds_are_not_built(self) -> None:
        mesh = square(split=False)
        mesh.add_face([0, 2])
        content = build(mesh)
        self.assertEqual(content.triangle_count, 2)

    def test_sixteen_bit_batch_split(self) -> None:
        mesh = Mesh()
        for p in ((0, 0, 0), (1, 0, 0), (0, 1, 0)):
            mesh.add_position(p)
        for _ in range(21844):
            mesh.add_face([0, 1, 2])

        content = build(mesh)
        self.assertEqual([len(g.indices) for g in content.geometries], [65529, 3])
        self.assertEqual(content.triangle_count, 21844)

        content = build(mesh, sixteen_bits=False)
        self.assertEqual([len(g.indices) for g in content.geometries], [65532])

    def test_build_state(self) -> None:
        builder = MeshBuilder()
        with self.assertRaises(ConsistencyError):
            builder.add_mesh(square(split=False))
        with self.assertRaises(ConsistencyError):
            builder.end_build()

        builder.begin_build(MeshContent("a"))
        self.assertTrue(builder.is_building)
        with self.assertRaises(ConsistencyError):
            builder.begin_build(MeshContent("b"))

        builder.end_build()
        self.assertFalse(builder.is_building)
        builder.begin_build(MeshContent("c"))

    def test_several_meshes_share_content(self) -> None:
        builder = MeshBuilder()
        builder.begin_build(MeshContent("two"))
        builder.add_mesh(square(split=False), None)
        builder.add_mesh(square(split=False), None)
        content = builder.end_build()
        self.assertEqual(content.position_count, 8)
        self.assertEqual(len(content.geometries), 1)
        self.assertEqual(sorted(set(content.geometries[0].position_indices)), list(range(8)))


class TestGeometryBatch(unittest.TestCase):
    def test_merge_duplicate_vertices(self) -> None:
        batch = GeometryBatch(material=None, flags=VertexChannelFlags.TEXCOORD)
        up = np.array([0.0, 0.0, 1.0])
        for position, texcoord in ((0, (0, 0)), (1, (1, 0)), (0, (0, 0)), (0, (0, 1))):
            batch.indices.append(batch.add_vertex(position, up, texcoord=texcoord))

        self.assertEqual(batch.merge_duplicate_vertices(), 1)
        self.assertEqual(batch.position_indices, [0, 1, 0])
        self.assertEqual(batch.texcoords, [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)])
        self.assertEqual(batch.indices, [0, 1, 0, 2])
        self.assertEqual(batch.merge_duplicate_vertices(), 0)

    def test_channels_outside_flags_are_ignored(self) -> None:
        batch = GeometryBatch(material=None)
        batch.add_vertex(0, np.zeros(3), texcoord=(1.0, 1.0), color=(0.0, 0.0, 0.0, 0.0))
        self.assertEqual(batch.texcoords, [])
        self.assertEqual(batch.colors, [])
        self.assertEqual(batch.normals, [(0.0, 0.0, 0.0)])


if __name__ == "__main__":
    unittest.main()
