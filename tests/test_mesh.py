import math
import unittest

import numpy as np

from mqopipeline.errors import ConsistencyError, FormatError
from mqopipeline.model.geometry_utils import compose_transform, transform_point, transform_points
from mqopipeline.model.materials import Material
from mqopipeline.model.mesh import Channel, Face, Mesh, accumulate_bone_weights, edge_key
from mqopipeline.model.scene import Scene, SceneObject, Shading, smooth_falloff_for


def two_triangles() -> Mesh:
    """Unit square split along its diagonal (0, 2)."""
    mesh = Mesh()
    for p in ((0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)):
        mesh.add_position(p)
    mesh.add_face([0, 1, 2])
    mesh.add_face([0, 2, 3])
    return mesh


class TestMesh(unittest.TestCase):
    def test_add_position_assigns_dense_indices(self) -> None:
        mesh = Mesh()
        self.assertEqual(mesh.add_position((1, 2, 3)).index, 0)
        self.assertEqual(mesh.add_position(np.array([4.0, 5.0, 6.0])).index, 1)
        np.testing.assert_allclose(mesh.positions, [[1, 2, 3], [4, 5, 6]])

    def test_add_face_links_vertices(self) -> None:
        mesh = two_triangles()
        self.assertEqual(mesh.vertices[0].faces, [0, 1])
        self.assertEqual(mesh.vertices[1].faces, [0])
        self.assertEqual(mesh.lathe_faces, [])

    def test_add_face_rejects_bad_input(self) -> None:
        mesh = two_triangles()
        with self.assertRaises(ConsistencyError):
            mesh.add_face([0])
        with self.assertRaises(ConsistencyError):
            mesh.add_face([0, 1, 2, 3, 0])
        with self.assertRaises(ConsistencyError):
            mesh.add_face([0, 1, 9])

    def test_two_vertex_faces_are_lathe_seeds(self) -> None:
        mesh = two_triangles()
        face = mesh.add_face([1, 2])
        self.assertTrue(face.is_degenerate)
        self.assertEqual(mesh.lathe_faces, [face])

    def test_channel_count_must_match(self) -> None:
        with self.assertRaises(ConsistencyError):
            Face(index=0, vertices=[0, 1, 2], channels=[Channel()])

    def test_edge_information(self) -> None:
        mesh = two_triangles()
        mesh.add_face([1, 3])
        mesh.generate_edge_information()

        # the lathe seed (1, 3) contributes no edge
        self.assertEqual(len(mesh.edges), 5)
        self.assertNotIn(edge_key(1, 3), mesh.edges)

        diagonal = mesh.edge(edge_key(2, 0))
        self.assertFalse(diagonal.is_boundary)
        self.assertEqual(diagonal.faces, [0, 1])
        self.assertTrue(mesh.edge(edge_key(0, 1)).is_boundary)

        face = mesh.faces[0]
        self.assertEqual(face.edges, [(0, 1), (1, 2), (0, 2)])
        self.assertEqual(sorted(mesh.vertices[0].edges), [(0, 1), (0, 2), (0, 3)])
        self.assertIsNone(mesh.faces[2].edges)

    def test_edge_lookup_helpers(self) -> None:
        mesh = two_triangles()
        mesh.generate_edge_information()
        face = mesh.faces[1]  # (0, 2, 3)

        edge = mesh.get_edge(face, 2, 0)
        self.assertEqual(edge.key, (0, 3))
        self.assertEqual(edge.other_side(3), 0)
        # the face walks from corner 2 (vertex 3) to corner 0 (vertex 0)
        self.assertEqual(mesh.edge_indices_in_face(face, edge), (0, 2))

        with self.assertRaises(ConsistencyError):
            mesh.edge_indices_in_face(face, mesh.edge(edge_key(0, 1)))
        with self.assertRaises(ConsistencyError):
            mesh.edge((1, 3))

    def test_edges_require_generation(self) -> None:
        mesh = two_triangles()
        self.assertFalse(mesh.has_edge_information)
        with self.assertRaises(ConsistencyError):
            mesh.face_edges(mesh.faces[0])

        mesh.generate_edge_information()
        self.assertTrue(mesh.has_edge_information)
        mesh.clear_edge_information()
        self.assertIsNone(mesh.faces[0].edges)

    def test_face_center(self) -> None:
        mesh = two_triangles()
        np.testing.assert_allclose(mesh.face_center(mesh.faces[0]), [2 / 3, 1 / 3, 0])

    def test_owner_is_weak(self) -> None:
        obj = SceneObject("o")
        mesh = obj.ensure_mesh()
        self.assertIs(mesh.owner, obj)
        self.assertIs(obj.ensure_mesh(), mesh)


class TestChannels(unittest.TestCase):
    def make_face(self) -> Face:
        channels = [
            Channel(texcoord=(0.0, 0.0), color=(1.0, 0.0, 0.0, 1.0), bone_weights=(("a", 1.0),)),
            Channel(texcoord=(1.0, 0.0), color=(0.0, 1.0, 0.0, 1.0), bone_weights=(("b", 1.0),)),
            Channel(texcoord=(1.0, 1.0), color=(0.0, 0.0, 1.0, 1.0)),
            Channel(texcoord=(0.0, 1.0), color=(0.0, 0.0, 0.0, 0.0)),
        ]
        return Face(index=0, vertices=[0, 1, 2, 3], channels=channels)

    def test_center_channel(self) -> None:
        center = self.make_face().center_channel()
        self.assertEqual(center.texcoord, (0.5, 0.5))
        self.assertEqual(center.color, (0.25, 0.25, 0.25, 0.75))
        self.assertEqual(center.bone_weights, (("a", 0.25), ("b", 0.25)))

    def test_edge_midpoint_channel_wraps(self) -> None:
        face = self.make_face()
        mid = face.edge_midpoint_channel(3)
        self.assertEqual(mid.texcoord, (0.0, 0.5))
        self.assertEqual(mid.color, (0.5, 0.0, 0.0, 0.5))
        self.assertEqual(mid.bone_weights, (("a", 0.5),))

        self.assertIsNone(face.edge_midpoint_channel(2).bone_weights)

    def test_accumulate_without_weights(self) -> None:
        self.assertIsNone(accumulate_bone_weights([(None, 1.0), (None, 0.5)]))
        self.assertEqual(
            accumulate_bone_weights([((("a", 0.5), ("b", 0.5)), 0.5), ((("b", 1.0),), 0.5)]),
            (("a", 0.25), ("b", 0.75)),
        )

    def test_copy_info(self) -> None:
        material = Material("m")
        src = self.make_face()
        src.material = material
        src.material_index = 3
        src.has_texcoord = True
        dst = Face(index=1, vertices=[0, 1, 2])
        dst.copy_info_from(src)
        self.assertIs(dst.material, material)
        self.assertEqual(dst.material_index, 3)
        self.assertTrue(dst.has_texcoord)
        self.assertFalse(dst.has_vertex_color)


class TestTransforms(unittest.TestCase):
    def test_translation(self) -> None:
        m = compose_transform((1, 1, 1), (0, 0, 0), (1, 2, 3))
        np.testing.assert_allclose(transform_point((1, 1, 1), m), [2, 3, 4])

    def test_scale_then_rotate_then_translate(self) -> None:
        # yaw of 90 degrees turns +X into -Z
        m = compose_transform((2, 1, 1), (0, 90, 0), (0, 0, 5))
        np.testing.assert_allclose(transform_point((1, 0, 0), m), [0, 0, 3], atol=1e-12)

    def test_pitch_and_roll(self) -> None:
        pitch = compose_transform((1, 1, 1), (90, 0, 0), (0, 0, 0))
        np.testing.assert_allclose(transform_point((0, 1, 0), pitch), [0, 0, 1], atol=1e-12)
        roll = compose_transform((1, 1, 1), (0, 0, 90), (0, 0, 0))
        np.testing.assert_allclose(transform_point((1, 0, 0), roll), [0, 1, 0], atol=1e-12)

    def test_transform_points_matches_single(self) -> None:
        m = compose_transform((1, 2, 3), (10, 20, 30), (4, 5, 6))
        points = np.array([[1.0, 0.0, 0.0], [0.5, -2.0, 3.0]])
        expected = [transform_point(p, m) for p in points]
        np.testing.assert_allclose(transform_points(points, m), expected)
        self.assertEqual(transform_points(np.empty((0, 3)), m).shape, (0, 3))


class TestScene(unittest.TestCase):
    def test_object_transform_follows_setters(self) -> None:
        obj = SceneObject("o")
        np.testing.assert_allclose(obj.transform, np.identity(4))
        obj.translation = (1, 2, 3)
        np.testing.assert_allclose(obj.transform[3, :3], [1, 2, 3])

    def test_smoothing(self) -> None:
        obj = SceneObject("o")
        self.assertEqual(obj.smooth_angle, math.pi)
        self.assertAlmostEqual(obj.smooth_falloff, -1.0)

        obj.facet_angle = math.radians(60)
        self.assertAlmostEqual(obj.smooth_limit, 0.5)
        self.assertAlmostEqual(obj.smooth_falloff, math.cos(math.radians(66)))

        obj.shading = Shading.FLAT
        self.assertIsNone(obj.smooth_angle)
        self.assertIsNone(obj.smooth_limit)
        self.assertIsNone(smooth_falloff_for(None))

    def test_default_material_created_once(self) -> None:
        scene = Scene()
        default = scene.get_material(-1)
        self.assertIs(scene.get_material(-1), default)
        self.assertEqual(scene.materials, [default])
        self.assertIs(scene.get_material(0), default)

    def test_material_index_out_of_range(self) -> None:
        scene = Scene()
        with self.assertRaises(FormatError):
            scene.get_material(0)
        with self.assertRaises(FormatError):
            scene.get_material(-2)


if __name__ == "__main__":
    unittest.main()
