import json
from pathlib import Path

from typer.testing import CliRunner

from nodes2py.cli import app
from nodes2py.graphs import save_graph_yaml
from nodes2py.ir import Edge, Graph, const_node

runner = CliRunner()


def _template(tmp_path: Path, name: str) -> Path:
    result = runner.invoke(app, ["template", "--name", name, "--outdir", str(tmp_path)])
    assert result.exit_code == 0, result.output
    return tmp_path / f"{name}.yaml"


def test_template_validate_explain(tmp_path: Path):
    path = _template(tmp_path, "order_total")
    assert path.exists()
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 0, result.output
    assert "Validation Report" in result.output
    result = runner.invoke(app, ["explain", str(path)])
    assert result.exit_code == 0
    assert "# ASCII Plan (topological order)" in result.output


def test_unknown_template(tmp_path: Path):
    result = runner.invoke(app, ["template", "--name", "nope", "--outdir", str(tmp_path)])
    assert result.exit_code == 1


def test_validate_fails_on_broken_graph(tmp_path: Path):
    path = tmp_path / "broken.yaml"
    save_graph_yaml(Graph(nodes=[const_node("c", 1)], edges=[Edge(source="c", target="ghost")]), path)
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 1


def test_run_with_record(tmp_path: Path):
    path = _template(tmp_path, "order_total")
    record = tmp_path / "row.json"
    record.write_text(json.dumps({"price": 10, "quantity": 2, "discount": 0.5, "customer": {"name": "Ann"}}))
    result = runner.invoke(app, ["run", str(path), "--record", str(record)])
    assert result.exit_code == 0, result.output
    assert "greeting" in result.output
    assert "10.0" in result.output


def test_compile_writes_module(tmp_path: Path):
    path = _template(tmp_path, "list_stats")
    out = tmp_path / "build" / "list_stats.py"
    result = runner.invoke(app, ["compile", str(path), "--out", str(out)])
    assert result.exit_code == 0, result.output
    ns = {}
    exec(compile(out.read_text(), str(out), "exec"), ns)
    assert ns["compute"]({})["sum"] == 6


def test_ops_and_fields():
    result = runner.invoke(app, ["ops"])
    assert result.exit_code == 0
    assert "add" in result.output
    result = runner.invoke(app, ["fields"])
    assert result.exit_code == 0
    assert "price" in result.output


def test_run_all_nodes_uses_sample_record(tmp_path: Path):
    path = _template(tmp_path, "order_total")
    result = runner.invoke(app, ["run", str(path), "--all"])
    assert result.exit_code == 0, result.output
    assert "subtotal" in result.output
    assert "Jane Doe" in result.output
