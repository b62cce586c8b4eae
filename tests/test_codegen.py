from __future__ import annotations

from pathlib import Path

import pytest

from jyt_admin.codegen.__main__ import main
from jyt_admin.codegen.generator import generate, write
from jyt_admin.codegen.naming import kebab, pascal, plural, snake
from jyt_admin.codegen.parser import ModelNotFound, find_model, parse_models
from jyt_admin.codegen.templates import render_router, render_workflows

MODELS = '''
from datetime import date
from typing import Any

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from jyt_admin.db.base import Base, IdMixin, SoftDeleteMixin, TimestampMixin


class Supplier(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)


class ShippingLabel(IdMixin, Base):
    __tablename__ = "shipping_labels"

    carrier: Mapped[str] = mapped_column(String(64))
    shipped_on: Mapped[date | None] = mapped_column(nullable=True)
'''


def test_naming() -> None:
    assert snake("HTTPRequestLog") == "http_request_log"
    assert kebab("ShippingLabel") == "shipping-label"
    assert pascal("shipping_label") == "ShippingLabel"
    assert [plural(w) for w in ("category", "box", "day", "label")] == [
        "categories",
        "boxes",
        "days",
        "labels",
    ]


def test_parse_models() -> None:
    models = parse_models(MODELS)
    assert sorted(models) == ["ShippingLabel", "Supplier"]

    supplier = models["Supplier"]
    assert supplier.tablename == "suppliers"
    assert supplier.soft_delete
    assert supplier.inherited_fields == ["id", "created_at", "updated_at", "deleted_at"]
    by_name = {f.name: f for f in supplier.fields}
    assert not by_name["name"].optional
    assert by_name["contact_email"].optional
    assert by_name["rating"].has_default
    assert by_name["metadata_"].column == "metadata"
    assert by_name["metadata_"].python_type == "dict[str, Any]"

    label = models["ShippingLabel"]
    assert not label.soft_delete
    assert {f.name: f.python_type for f in label.fields} == {
        "carrier": "str",
        "shipped_on": "date",
    }


def test_find_model_lists_available() -> None:
    with pytest.raises(ModelNotFound, match="available: ShippingLabel, Supplier"):
        find_model(MODELS, "Invoice")


def test_render_soft_delete_model() -> None:
    model = find_model(MODELS, "Supplier")
    workflows = render_workflows(model)
    router = render_router(model, workflows_module="jyt_admin.workflows.supplier")
    compile(workflows, "<workflows>", "exec")
    compile(router, "<router>", "exec")

    assert "create_supplier_workflow = Workflow(" in workflows
    assert ".soft_delete(id)" in workflows
    assert "restore(as_uuid(id))" in workflows
    assert '"delete-supplier", _delete, _undo_delete' in workflows

    assert 'prefix="/admin/suppliers"' in router
    assert "    name: str\n" in router
    assert "    metadata: dict[str, Any] | None = None" in router
    assert "from datetime" not in router


def test_render_hard_delete_model() -> None:
    model = find_model(MODELS, "ShippingLabel")
    workflows = render_workflows(model)
    router = render_router(model, workflows_module="jyt_admin.workflows.shipping_label")
    compile(workflows, "<workflows>", "exec")
    compile(router, "<router>", "exec")

    assert ".delete(id)" in workflows
    assert '"delete-shipping-label", _delete, None' in workflows
    assert 'prefix="/admin/shipping-labels"' in router
    assert "from datetime import date\n" in router
    assert "    shipped_on: date | None = None" in router


def test_generate_and_write(tmp_path: Path) -> None:
    files = generate(MODELS, "Supplier", out_dir=tmp_path, package="acme")
    assert [f.path.relative_to(tmp_path).as_posix() for f in files] == [
        "workflows/supplier.py",
        "api/routers/supplier.py",
    ]
    assert "from acme.workflows.supplier import (" in files[1].content

    written = write(files)
    assert all(p.exists() for p in written)
    with pytest.raises(FileExistsError):
        write(files)
    assert write(files, force=True) == written


def test_cli(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "models.py"
    source.write_text(MODELS, encoding="utf-8")
    out = tmp_path / "pkg"

    assert main([str(source), "ShippingLabel", "--out", str(out), "--dry-run"]) == 0
    printed = capsys.readouterr().out
    assert "# --- " in printed
    assert "delete_shipping_label_workflow" in printed
    assert not out.exists()

    assert main([str(source), "ShippingLabel", "--out", str(out)]) == 0
    assert (out / "workflows" / "shipping_label.py").exists()
    capsys.readouterr()

    assert main([str(source), "ShippingLabel", "--out", str(out)]) == 1
    assert "refusing to overwrite" in capsys.readouterr().err
    assert main([str(source), "ShippingLabel", "--out", str(out), "--force"]) == 0

    assert main([str(source), "Invoice", "--out", str(out)]) == 1
    assert "Model Invoice not found" in capsys.readouterr().err
    assert main([str(tmp_path / "missing.py"), "Supplier"]) == 1
