"""
jyt_admin.codegen.generator

Plan and write the generated files for one model.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jyt_admin.codegen.naming import snake
from jyt_admin.codegen.parser import find_model
from jyt_admin.codegen.templates import render_router, render_workflows


@dataclass(frozen=True, slots=True)
class GeneratedFile:
    path: Path
    content: str


def generate(
    models_source: str,
    model_name: str,
    *,
    out_dir: Path,
    package: str = "jyt_admin",
) -> list[GeneratedFile]:
    model = find_model(models_source, model_name)
    module = snake(model.name)
    workflows_module = f"{package}.workflows.{module}"
    return [
        GeneratedFile(out_dir / "workflows" / f"{module}.py", render_workflows(model)),
        GeneratedFile(
            out_dir / "api" / "routers" / f"{module}.py",
            render_router(model, workflows_module=workflows_module),
        ),
    ]


def write(files: list[GeneratedFile], *, force: bool = False) -> list[Path]:
    existing = [f.path for f in files if f.path.exists()]
    if existing and not force:
        raise FileExistsError(", ".join(str(p) for p in existing))
    for f in files:
        f.path.parent.mkdir(parents=True, exist_ok=True)
        f.path.write_text(f.content, encoding="utf-8")
    return [f.path for f in files]
