import pytest

from nodes2py.errors import TypeMismatch
from nodes2py.ir import Graph, const_node, link, operator_node
from nodes2py.session import AddEdge, AddNode, EditConst, EditorSession, IdGenerator, RemoveNode, reduce


def _sum_session():
    s = EditorSession()
    a = s.add_const(2)
    b = s.add_const(3)
    add = s.add_operator("add")
    out = s.add_output("sum")
    s.connect(a, add, "a")
    s.connect(b, add, "b")
    s.connect(add, out)
    return s, out


def test_id_generator_is_per_session():
    ids = IdGenerator()
    assert [ids.next("const"), ids.next("op"), ids.next()] == ["const_1", "op_2", "n_3"]
    assert IdGenerator().next("const") == "const_1"


def test_reduce_is_pure():
    g0 = Graph()
    g1 = reduce(g0, AddNode(node=const_node("c", 1)))
    g2 = reduce(g1, AddNode(node=operator_node("x", "not")))
    g3 = reduce(g2, AddEdge(edge=link("c", "x", "a")))
    assert g0.nodes == []
    assert len(g2.edges) == 0
    assert [n.id for n in g3.nodes] == ["c", "x"]
    g4 = reduce(g3, RemoveNode(node_id="c"))
    assert [n.id for n in g4.nodes] == ["x"]
    assert g4.edges == []
    assert len(g3.edges) == 1


def test_edit_const_replaces_the_node():
    g = Graph(nodes=[const_node("c", 1, "number")])
    before = g.nodes[0]
    after = reduce(g, EditConst(node_id="c", raw="12"))
    assert after.nodes[0].data.value == 12
    assert before.data.value == 1
    assert after.nodes[0] is not before
    as_list = reduce(g, EditConst(node_id="c", raw="[1, 2]", dtype="list"))
    assert as_list.nodes[0].data.dtype == "list"
    assert as_list.nodes[0].data.value == [1, 2]


def test_connect_rejects_type_mismatch():
    s = EditorSession()
    n = s.add_const(5)
    neg = s.add_operator("not")
    with pytest.raises(TypeMismatch) as exc:
        s.connect(n, neg, "a")
    assert exc.value.source_dtype == "number"
    assert exc.value.target_dtype == "boolean"
    assert s.graph.edges == []
    with pytest.raises(TypeMismatch):
        s.connect(neg, n)


def test_preview_fills_output_results():
    s, out = _sum_session()
    outputs = s.preview({})
    assert [(o.id, o.data.label, o.data.result) for o in outputs] == [(out, "sum", 5)]
    assert s.graph.node_map()[out].data.result is None


def test_preview_defaults_to_sample_record():
    s = EditorSession()
    price = s.add_field("price", "number")
    out = s.add_output("price")
    s.connect(price, out)
    assert s.preview()[0].data.result == 99.99


def test_edits_flow_into_preview_and_code():
    s, out = _sum_session()
    assert "results['sum'] = (2 + 3)" in s.python()
    s.edit_const("const_1", "40")
    assert s.preview({})[0].data.result == 43
    assert "results['sum'] = (40 + 3)" in s.python()
    s.remove_node("op_3")
    assert s.preview({})[0].data.result is None
    assert all("op_3" not in (e.source, e.target) for e in s.graph.edges)
