"""
The MODEL layer contains the scene as read from the file.
It deals with topology (vertices, faces, edges), materials, objects and their
transforms. It has NO knowledge of the render batches built from it.
"""
