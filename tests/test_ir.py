from pathlib import Path

import pytest

from nodes2py.graphs import generate_graph_from_template, load_graph, save_graph_yaml, template_names
from nodes2py.ir import Graph, GraphIndex, const_node, link, operator_node, output_node
from nodes2py.validator import validate_graph_from_file
from nodes2py.visualize import ascii_plan


@pytest.mark.parametrize("name", template_names())
def test_generate_and_validate(tmp_path: Path, name):
    g = generate_graph_from_template(name)
    path = tmp_path / f"{name}.yaml"
    save_graph_yaml(g, path)
    ok, messages = validate_graph_from_file(path)
    assert ok, messages
    assert not [m for m in messages if not m.startswith("OK:")], messages


def test_save_and_load_keeps_graph(tmp_path: Path):
    g = generate_graph_from_template("countdown")
    path = tmp_path / "countdown.yaml"
    save_graph_yaml(g, path)
    text = path.read_text()
    assert "opId: while_loop" in text
    assert "sourceHandle: body" in text
    assert load_graph(path).model_dump() == g.model_dump()


def test_unknown_template():
    with pytest.raises(ValueError):
        generate_graph_from_template("nope")


def test_editor_json_uses_camel_case():
    g = Graph(**{
        "nodes": [
            {"id": "c", "type": "const", "data": {"value": 2, "dtype": "number"}},
            {"id": "x", "type": "operator", "data": {"opId": "add"}, "position": {"x": 10, "y": 20}},
            {"id": "o", "type": "output", "data": {"label": "sum", "result": None}},
        ],
        "edges": [{"id": "e1", "source": "c", "sourceHandle": None, "target": "x", "targetHandle": "a"}],
    })
    assert g.nodes[1].data.op_id == "add"
    assert g.edges[0].target_handle == "a"
    assert g.node_map()["o"].data.label == "sum"


def test_last_edge_into_a_port_wins():
    nodes = [const_node("one", 1), const_node("ten", 10), operator_node("add", "add")]
    edges = [link("one", "add", "a"), link("ten", "add", "a")]
    index = GraphIndex(nodes, edges)
    assert index.input_edge("add", "a").source == "ten"
    assert index.input_edge("add", "b") is None


def test_scope_edges_carry_no_data():
    nodes = [operator_node("w", "while_loop"), operator_node("n", "not"), output_node("o")]
    edges = [link("w", "n", "scope", source_handle="body"), link("n", "o")]
    index = GraphIndex(nodes, edges)
    assert index.is_scope_edge(edges[0])
    assert index.data_in("n") == []
    assert index.data_out("w") == []
    assert index.value_edge("o").source == "n"


def test_ascii_plan_lists_nodes_in_order(tmp_path: Path):
    path = tmp_path / "order_total.yaml"
    save_graph_yaml(generate_graph_from_template("order_total"), path)
    plan = ascii_plan(path)
    lines = plan.splitlines()
    assert lines[0] == "# ASCII Plan (topological order)"
    assert plan.index(". subtotal [multiply]") < plan.index(". total [multiply]")
    assert "    └─▶ subtotal  (out->a)" in lines


def test_ascii_plan_tolerates_cycles(tmp_path: Path):
    g = Graph(nodes=[operator_node("a", "add"), operator_node("b", "add")],
              edges=[link("a", "b", "a"), link("b", "a", "a")])
    path = tmp_path / "cycle.yaml"
    save_graph_yaml(g, path)
    assert "01. a [add]" in ascii_plan(path)
