"""
jyt_admin.codegen.__main__

CLI: `python -m jyt_admin.codegen <models_file> <ModelName> [--out DIR] [--dry-run]`.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from jyt_admin.codegen.generator import generate, write
from jyt_admin.codegen.parser import ModelNotFound


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m jyt_admin.codegen",
        description="Generate CRUD workflows and admin routes for a model.",
    )
    parser.add_argument("models_file", type=Path, help="Python file with declarative models")
    parser.add_argument("model", help="Model class name, e.g. Partner")
    parser.add_argument("--out", type=Path, default=Path("src/jyt_admin"), help="package root")
    parser.add_argument("--package", default="jyt_admin", help="import package of --out")
    parser.add_argument("--dry-run", action="store_true", help="print files instead of writing")
    parser.add_argument("--force", action="store_true", help="overwrite existing files")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        source = args.models_file.read_text(encoding="utf-8")
        files = generate(source, args.model, out_dir=args.out, package=args.package)
    except (OSError, ModelNotFound) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        for f in files:
            print(f"# --- {f.path}")
            print(f.content)
        return 0

    try:
        written = write(files, force=args.force)
    except FileExistsError as e:
        print(f"error: refusing to overwrite {e} (use --force)", file=sys.stderr)
        return 1
    for path in written:
        print(f"wrote {path}")
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
