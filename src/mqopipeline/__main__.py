"""
Command-line entry point.

Converts one .mqo file, prints a per-node summary and optionally writes an
OBJ export or opens a matplotlib preview::

    python -m mqopipeline model.mqo --obj out/model.obj --verbose
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from mqopipeline.config import DEFAULT_ENCODING, ReadSettings
from mqopipeline.errors import MqError
from mqopipeline.logging_config import setup_logging
from mqopipeline.pipeline import ConvertedScene, convert_file

logger = logging.getLogger("mqopipeline.cli")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="mqopipeline",
        description="Convert a Metasequoia .mqo scene into triangulated render meshes.",
    )
    ap.add_argument("input", type=Path, help="Input .mqo file")
    ap.add_argument("--obj", type=Path, default=None, help="Write the converted meshes to this OBJ file")
    ap.add_argument("--encoding", default=DEFAULT_ENCODING, help=f"Text encoding of the input (default: {DEFAULT_ENCODING})")
    ap.add_argument("--import-invisible", action="store_true", help="Also convert objects hidden in the modeler")
    ap.add_argument("--no-sixteen-bit-index", action="store_true", help="Do not split batches for 16-bit index buffers")
    ap.add_argument("--plot", action="store_true", help="Show a matplotlib preview of the result")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    ap.add_argument("--log-file", default=None, help="Also write the log to this file")
    return ap


def format_summary(converted: ConvertedScene) -> str:
    lines = []
    for node in converted.nodes:
        parent = f" (parent: {node.parent})" if node.parent else ""
        if node.content is None:
            lines.append(f"{node.name}{parent}: no mesh")
            continue
        lines.append(
            f"{node.name}{parent}: {node.content.position_count} positions, "
            f"{node.content.triangle_count} triangles in {len(node.content.geometries)} batches"
        )
        for batch in node.content.geometries:
            material = batch.material.name if batch.material is not None else "-"
            lines.append(
                f"    [{material}] flags={int(batch.flags)} "
                f"vertices={batch.vertex_count} triangles={batch.triangle_count}"
            )
    lines.append(f"Total: {len(converted.nodes)} nodes, {converted.triangle_count} triangles")
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    settings = ReadSettings(
        encoding=args.encoding,
        import_invisible_objects=args.import_invisible,
        use_sixteen_bits_index=not args.no_sixteen_bit_index,
    )

    try:
        converted = convert_file(args.input, settings)
        print(format_summary(converted))

        if args.obj is not None:
            from mqopipeline.io.obj_writer import write_obj
            write_obj(converted, args.obj)
    except MqError as e:
        logger.error(f"Conversion of '{args.input}' failed: {e}")
        return 1

    if args.plot:
        from mqopipeline.view.preview import plot_converted_scene
        plot_converted_scene(converted)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
