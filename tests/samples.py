"""Scene file snippets shared by the test modules."""
from __future__ import annotations

import textwrap

HEADER = "Metasequoia Document\nFormat Text Ver 1.0\n\n"

SCENE_CHUNK = textwrap.dedent("""\
    Scene {
    	pos 0.0000 0.0000 1500.0000
    	lookat 0.0000 0.0000 0.0000
    	head -0.5236
    	pich 0.5236
    	bank 0.0000
    	ortho 0
    	zoom2 5.0000
    	amb 0.250 0.250 0.250
    	dirlights 1 {
    		light {
    			dir 0.408 0.408 0.816
    			color 1.000 1.000 1.000
    		}
    	}
    }
    """)

MATERIAL_CHUNK = textwrap.dedent("""\
    Material 2 {
    	"mat1" shader(3) col(1.000 0.500 0.250 1.000) dif(0.800) amb(0.600) emi(0.000) spc(0.000) power(5.00)
    	"mat2" shader(3) vcol(1) col(1.000 1.000 1.000 0.500) dif(1.000) amb(0.600) emi(0.500) spc(0.200) power(0.00) tex("tex\\body.png")
    }
    """)

QUAD_OBJECT = textwrap.dedent("""\
    Object "quad" {
    	depth 0
    	folding 0
    	scale 1.000000 1.000000 1.000000
    	rotation 0.000000 0.000000 0.000000
    	translation 0.000000 0.000000 0.000000
    	visible 15
    	locking 0
    	shading 1
    	facet 59.5
    	color 0.898 0.498 0.698
    	color_type 0
    	vertex 4 {
    		0.0000 0.0000 0.0000
    		1.0000 0.0000 0.0000
    		1.0000 1.0000 0.0000
    		0.0000 1.0000 0.0000
    	}
    	face 1 {
    		4 V(0 1 2 3) M(0) UV(0.00000 0.00000 1.00000 0.00000 1.00000 1.00000 0.00000 1.00000)
    	}
    }
    """)


def document(*chunks: str, header: str = HEADER) -> str:
    """A complete scene file made of ``chunks`` followed by Eof."""
    return header + "".join(chunks) + "Eof\n"


def object_chunk(name: str, body: str) -> str:
    """Wrap object keys (one per line) into an Object chunk."""
    return f'Object "{name}" {{\n{textwrap.indent(textwrap.dedent(body), chr(9))}}}\n'
