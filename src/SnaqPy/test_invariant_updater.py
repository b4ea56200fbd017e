import pytest
import numpy as np
from SnaqPy.Network import Network, InvalidTopologyError
from SnaqPy.InvariantUpdater import derive_markers, current_markers, \
                                    full_update, check_network, clear_cycle, \
                                    cycle_sequence, update
from SnaqPy.Move import MoveType, make_move, IllegalMoveTargetError
from SnaqPy.Settings import NO_CYCLE


#######################
#### TEST NETWORKS ####
#######################

def build_six_taxon_tree() -> Network:
    """
    ((A,(B,C)c)a,((D,E)d,F)b)r with unit branch lengths.
    """
    return Network.from_edge_list([
        ("r", "a", 1.0),
        ("r", "b", 1.0),
        ("a", "A", 1.0),
        ("a", "c", 1.0),
        ("c", "B", 1.0),
        ("c", "C", 1.0),
        ("b", "d", 1.0),
        ("b", "F", 1.0),
        ("d", "D", 1.0),
        ("d", "E", 1.0),
    ])

def build_long_cycle_network() -> Network:
    """
    A hybrid H below the root-side path r-a-c-p and the minor parent q, giving
    a cycle H, q, b, r, a, c, p (the degree-2 root does not count).
    """
    return Network.from_edge_list([
        ("r", "a", 1.0),
        ("r", "b", 1.0),
        ("a", "A", 1.0),
        ("a", "c", 1.0),
        ("c", "B", 1.0),
        ("c", "p", 1.0),
        ("p", "C", 1.0),
        ("p", "H", 1.0, 0.8),
        ("b", "q", 1.0),
        ("b", "F", 1.0),
        ("q", "E", 1.0),
        ("q", "H", 1.0, 0.2),
        ("H", "G", 1.0),
    ])

def build_diamond_network(hybrid_child_leaf : bool = True) -> Network:
    """
    A 4-cycle H, z, u, v through the degree-2 root r. The node opposite the
    hybrid, u, carries the leaf B. With a leaf below the hybrid the cycle is
    a bad diamond of type I, otherwise of type II.
    """
    edges = [
        ("r", "u", 1.0),
        ("r", "v", 1.0),
        ("u", "B", 1.0),
        ("u", "z", 1.0),
        ("z", "A", 1.0),
        ("z", "H", 1.0, 0.4),
        ("v", "H", 1.0, 0.6),
        ("v", "D", 1.0),
    ]
    if hybrid_child_leaf:
        edges.append(("H", "C", 1.0))
    else:
        edges += [("H", "w", 1.0), ("w", "C", 1.0), ("w", "E", 1.0)]
    return Network.from_edge_list(edges)


####################
#### TEST CASES ####
####################

def test_tree_markers():
    net = build_six_taxon_tree()
    assert all(e.in_cycle == NO_CYCLE for e in net.edges.values())
    assert all(e.contain_root for e in net.edges.values())
    assert all(n.root_compatible for n in net.nodes.values())

    for edge in net.edges.values():
        if net.nodes[edge.child].leaf:
            assert not edge.identifiable

    # the two root edges only inform their sum
    root_edges = sorted(net.get_root().edges)
    assert net.edges[root_edges[0]].identifiable
    assert not net.edges[root_edges[1]].identifiable

def test_long_cycle_markers():
    net = build_long_cycle_network()
    h = net.node_named("H")
    assert h.k == 6
    assert not h.is_bad_triangle
    assert not h.is_bad_diamond_i and not h.is_bad_diamond_ii

    seq, edges = cycle_sequence(net, h)
    names = [net.nodes[n].name for n in seq]
    assert names == ["H", "q", "b", "r", "a", "c", "p"]
    assert len(edges) == 7
    for n in seq:
        assert net.nodes[n].in_cycle == h.number

    # edges below the hybrid cannot hold the root
    below = net.child_edges(h)[0]
    assert not below.contain_root
    assert not h.root_compatible
    assert not net.node_named("G").root_compatible
    assert net.node_named("E").root_compatible

    minor = net.minor_hybrid_edge(h)
    assert minor.identifiable
    check_network(net)

def test_bad_diamond_markers():
    net = build_diamond_network()
    h = net.node_named("H")
    assert h.k == 4
    assert h.is_bad_diamond_i
    assert not h.is_bad_diamond_ii
    for edge in net.edges.values():
        if edge.in_cycle == h.number:
            assert not edge.identifiable
    check_network(net)

def test_bad_diamond_ii_markers():
    net = build_diamond_network(hybrid_child_leaf = False)
    h = net.node_named("H")
    assert h.k == 4
    assert h.is_bad_diamond_ii
    assert not h.is_bad_diamond_i

    # cycle edges at the opposite node u are not identifiable
    assert not net.child_edges(net.node_named("u"))[1].identifiable
    assert not net.parent_edges(net.node_named("u"))[0].identifiable
    assert net.minor_hybrid_edge(h).identifiable
    assert net.major_hybrid_edge(h).identifiable
    check_network(net)

def test_derive_markers_is_pure():
    net = build_long_cycle_network()
    before = net.snapshot()
    net.journal.begin()
    derive_markers(net)
    assert len(net.journal) == 0
    net.journal.commit()
    assert net.snapshot() == before

def test_full_update_matches_derivation():
    net = build_long_cycle_network()
    for edge in net.edges.values():
        edge.identifiable = not edge.identifiable
        edge.in_cycle = NO_CYCLE
    report = full_update(net)
    assert report.valid and bool(report)
    assert current_markers(net) == derive_markers(net)

def test_check_network_catches_stale_markers():
    net = build_six_taxon_tree()
    net.edges[0].identifiable = not net.edges[0].identifiable
    with pytest.raises(InvalidTopologyError):
        check_network(net)

def test_clear_cycle_then_update():
    net = build_long_cycle_network()
    h = net.node_named("H")
    expected = current_markers(net)

    cleared = clear_cycle(net, h)
    assert len(cleared) == 7
    assert h.k == -1
    assert all(e.in_cycle == NO_CYCLE for e in net.edges.values())

    report = update(net, cleared, [h.number])
    assert report.valid
    assert current_markers(net) == expected

def test_update_rejects_overlapping_cycles():
    net = build_long_cycle_network()
    a = net.node_named("a")
    x = net.subdivide_edge(net.child_edges(net.node_named("c"))[0])
    y = net.subdivide_edge(net.child_edges(a)[0])
    net.set_hybrid(x, True)
    upper = net.parent_edges(x)[0]
    net.set_attr(upper, "hybrid", True)
    minor = net.add_edge(y, x, 0.1, hybrid = True)
    net.set_gamma(minor, 0.5)

    report = update(net, {x.number, y.number}, [x.number])
    assert not report.valid
    assert "overlaps" in report.reason

def test_update_rejects_hybrid_below_itself():
    net = build_six_taxon_tree()
    c = net.node_named("c")
    x = net.subdivide_edge(net.parent_edges(c)[0])
    y = net.subdivide_edge(net.child_edges(c)[1])
    net.set_hybrid(x, True)
    net.set_attr(net.parent_edges(x)[0], "hybrid", True)
    minor = net.add_edge(y, x, 0.1, hybrid = True)
    net.set_gamma(minor, 0.5)

    report = update(net, {x.number, y.number}, [x.number])
    assert not report.valid
    assert "own ancestor" in report.reason

def test_root_edges_always_hold_the_root():
    net = build_long_cycle_network()
    root = net.get_root()
    assert all(e.contain_root for e in net.child_edges(root))
    assert root.root_compatible
    assert full_update(net).valid

@pytest.mark.parametrize("seed", range(8))
def test_incremental_update_matches_full_derivation(seed):
    """
    Random walks over the move set. After every applied move the stored
    markers must equal a from-scratch derivation, and undoing the move must
    give back the exact previous state.
    """
    net = build_six_taxon_tree()
    rng = np.random.default_rng(seed)
    kinds = list(MoveType)

    for _ in range(40):
        kind = kinds[int(rng.integers(len(kinds)))]
        move = make_move(kind, max_hybrids = 3)
        before = net.snapshot()
        try:
            move.execute(net, rng)
        except (IllegalMoveTargetError, InvalidTopologyError):
            assert net.snapshot() == before
            assert not net.journal.in_flight
            continue

        check_network(net)
        if rng.random() < 0.3:
            move.undo(net)
            assert net.snapshot() == before
        else:
            move.commit(net)
        check_network(net)
