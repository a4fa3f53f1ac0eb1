"""
Geometry Generators
===================
Stages that add or refine geometry of a mesh in object-local space.

Why is this file needed?
------------------------
1. Mirroring: Objects modelled as one half get their mirror image.
2. Lathe: Profile edges are revolved into surfaces of revolution.
3. Subdivision: Catmull-Clark objects are refined before triangulation.

All stages work on :class:`~mqopipeline.model.mesh.Mesh` and know nothing
about render batches.
"""
