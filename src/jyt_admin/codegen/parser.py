"""
jyt_admin.codegen.parser

Extract model definitions from a SQLAlchemy declarative models file.

The file is read as text (never imported): class names, `__tablename__` and
`name: Mapped[T] = mapped_column(...)` fields are matched with regular expressions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_CLASS = re.compile(r"^class\s+(\w+)\s*\(([^)]*)\)\s*:", re.MULTILINE)
_TABLENAME = re.compile(r"__tablename__\s*=\s*[\"']([^\"']+)[\"']")
_FIELD = re.compile(
    r"^[ \t]+(\w+)\s*:\s*Mapped\[([^\n]+?)\]\s*=\s*mapped_column\((.*?)\)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)
_COLUMN_NAME = re.compile(r"^\s*[\"'](\w+)[\"']")

_MIXIN_FIELDS = {
    "IdMixin": ["id"],
    "TimestampMixin": ["created_at", "updated_at"],
    "SoftDeleteMixin": ["deleted_at"],
}

_PY_TYPES = {
    "str": "str",
    "int": "int",
    "float": "float",
    "bool": "bool",
    "datetime": "datetime",
    "date": "date",
    "uuid.UUID": "uuid.UUID",
}


@dataclass(frozen=True, slots=True)
class FieldDef:
    name: str
    column: str
    annotation: str
    optional: bool
    primary_key: bool = False
    has_default: bool = False

    @property
    def python_type(self) -> str:
        base = self.annotation.replace("| None", "").strip()
        if base.startswith("Optional[") and base.endswith("]"):
            base = base[len("Optional[") : -1]
        if base.startswith(("dict", "list")):
            return base
        # Enums and other custom types travel as strings in the API schema.
        return _PY_TYPES.get(base, "str")


@dataclass(slots=True)
class ModelDef:
    name: str
    tablename: str | None
    bases: list[str]
    fields: list[FieldDef] = field(default_factory=list)

    @property
    def inherited_fields(self) -> list[str]:
        out: list[str] = []
        for base in self.bases:
            out.extend(_MIXIN_FIELDS.get(base, []))
        return out

    @property
    def soft_delete(self) -> bool:
        return "SoftDeleteMixin" in self.bases

    def writable_fields(self) -> list[FieldDef]:
        return [f for f in self.fields if not f.primary_key]


class ModelNotFound(LookupError):
    pass


def _class_blocks(source: str) -> list[tuple[str, list[str], str]]:
    matches = list(_CLASS.finditer(source))
    blocks: list[tuple[str, list[str], str]] = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(source)
        bases = [b.strip() for b in match.group(2).split(",") if b.strip()]
        blocks.append((match.group(1), bases, source[match.end() : end]))
    return blocks


def parse_models(source: str) -> dict[str, ModelDef]:
    models: dict[str, ModelDef] = {}
    for name, bases, body in _class_blocks(source):
        table = _TABLENAME.search(body)
        model = ModelDef(name=name, tablename=table.group(1) if table else None, bases=bases)
        for fm in _FIELD.finditer(body):
            attr, annotation, args = fm.group(1), fm.group(2).strip(), fm.group(3)
            column = _COLUMN_NAME.match(args)
            model.fields.append(
                FieldDef(
                    name=attr,
                    column=column.group(1) if column else attr,
                    annotation=annotation,
                    optional="None" in annotation or "nullable=True" in args,
                    primary_key="primary_key=True" in args,
                    has_default="default=" in args,
                )
            )
        if model.tablename or model.fields:
            models[name] = model
    return models


def find_model(source: str, name: str) -> ModelDef:
    models = parse_models(source)
    if name not in models:
        available = ", ".join(sorted(models)) or "none"
        raise ModelNotFound(f"Model {name} not found (available: {available})")
    return models[name]
