from nodes2py.ir import GraphIndex, const_node, field_node, link, operator_node, output_node
from nodes2py.scope import Root, nearest_loops, select_roots, topological_order


def _nested():
    nodes = [operator_node("w1", "while_loop"), operator_node("a", "add_assign"),
             operator_node("w2", "while_loop"), operator_node("b", "add"), operator_node("c", "not"),
             output_node("o_outer"), output_node("o_inner"), const_node("k", 1)]
    edges = [link("w1", "a", "scope", source_handle="body"), link("a", "o_outer"),
             link("w2", "b", "scope", source_handle="body"), link("a", "b", "a"),
             link("b", "c", "a"), link("c", "o_inner"), link("k", "b", "b")]
    return GraphIndex(nodes, edges)


def test_nearest_loop_wins():
    loops = nearest_loops(_nested())
    assert loops == {"w1": None, "a": "w1", "w2": None, "b": "w2", "c": "w2",
                     "o_outer": "w1", "o_inner": "w2", "k": None}


def test_scope_edges_to_missing_nodes_are_ignored():
    index = GraphIndex([operator_node("w", "while_loop")], [link("w", "ghost", source_handle="body")])
    assert nearest_loops(index) == {"w": None}


def test_output_nodes_are_the_roots():
    index = GraphIndex([output_node("o1", "total"), const_node("k", 1), output_node("o2", "")], [])
    assert select_roots(index) == [Root("o1", "total"), Root("o2", "result_2")]


def test_implicit_roots_skip_while_nodes_and_dedupe_labels():
    nodes = [field_node("f", "customer.name"), const_node("k1", 1), const_node("k2", 2),
             operator_node("w", "while_loop"), operator_node("t", "add", label="Total"),
             operator_node("t2", "multiply", label="Total")]
    index = GraphIndex(nodes, [link("k1", "t", "a")])
    assert [r.label for r in select_roots(index)] == ["customer_name", "const", "total", "total_2"]


def test_topological_order_keeps_listing_order_for_ties():
    nodes = [operator_node("c", "add"), operator_node("b", "add"), operator_node("a", "add")]
    index = GraphIndex(nodes, [link("a", "c", "a")])
    assert topological_order(index, ["c", "b", "a"]) == ["b", "a", "c"]
    assert topological_order(index, ["ghost", "c"]) == ["c"]


def test_topological_order_with_cycles():
    nodes = [operator_node("x", "add"), operator_node("y", "add"), operator_node("z", "add"),
             operator_node("after", "not")]
    edges = [link("z", "y", "a"), link("y", "z", "a"), link("y", "after", "a")]
    index = GraphIndex(nodes, edges)
    assert topological_order(index, [n.id for n in nodes]) == ["x", "y", "z", "after"]
