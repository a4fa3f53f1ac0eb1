"""
Triangulation, normals and batching of meshes into render content.
"""
