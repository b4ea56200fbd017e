import math
import pytest
import numpy as np
from SnaqPy.Network import Network, InvalidTopologyError
from SnaqPy.NetworkMoves import add_hybridization, delete_hybridization, \
                                nni, move_origin, move_target, \
                                hybridization_targets, nni_targets
from SnaqPy.Move import MoveType, AddHybridMove, DeleteHybridMove, NNIMove, \
                        MoveOriginMove, MoveTargetMove, make_move, \
                        IllegalMoveTargetError
from SnaqPy.InvariantUpdater import check_network
from SnaqPy.QuartetData import QuartetTable
from SnaqPy.Pseudolikelihood import log_pseudolikelihood
from SnaqPy.GraphUtils import is_isomorphic


#######################
#### TEST NETWORKS ####
#######################

def build_four_taxon_tree() -> Network:
    """
    ((A,B)u,(C,D)v)r with unit branch lengths. Edge ids follow the row order:
    0 r->u, 1 r->v, 2 u->A, 3 u->B, 4 v->C, 5 v->D.
    """
    return Network.from_edge_list([
        ("r", "u", 1.0),
        ("r", "v", 1.0),
        ("u", "A", 1.0),
        ("u", "B", 1.0),
        ("v", "C", 1.0),
        ("v", "D", 1.0),
    ])

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

def build_six_taxon_network() -> Network:
    """
    The six taxon tree with one hybrid H above E, whose minor parent q sits
    on the edge b->F. Its cycle H, q, b, d has four nodes.
    """
    return Network.from_edge_list([
        ("r", "a", 1.0),
        ("r", "b", 1.0),
        ("a", "A", 1.0),
        ("a", "c", 1.0),
        ("c", "B", 1.0),
        ("c", "C", 1.0),
        ("b", "d", 1.0),
        ("b", "q", 0.5),
        ("q", "F", 0.5),
        ("d", "D", 1.0),
        ("d", "H", 0.5, 0.7),
        ("q", "H", 0.1, 0.3),
        ("H", "E", 0.5),
    ])

def build_branching_hybrid_network() -> Network:
    """
    A hybrid H with two leaf children, C and D, below the parents a and b.
    """
    return Network.from_edge_list([
        ("r", "a", 1.0),
        ("r", "b", 1.0),
        ("a", "A", 1.0),
        ("a", "H", 1.0, 0.6),
        ("b", "H", 1.0, 0.4),
        ("b", "B", 1.0),
        ("H", "C", 1.0),
        ("H", "D", 1.0),
    ])

def _rng(seed : int = 0) -> np.random.Generator:
    return np.random.default_rng(seed)


####################
#### TEST CASES ####
####################

def test_add_then_delete_hybrid_on_four_taxa():
    """
    Add a hybrid edge from u->A to v->C, score it, remove it again and get
    back the original tree.
    """
    net = build_four_taxon_tree()
    original = net.duplicate()
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.6, 0.3, 0.1)])

    move = AddHybridMove(max_hybrids = 1, gamma = 0.5, origin = 2, target = 4)
    move.execute(net, _rng())
    move.commit(net)

    h = net.nodes[move.hybrid]
    assert h.hybrid and net.num_hybrids == 1
    assert net.nodes[net.child_edges(h)[0].child].name == "C"
    minor = net.minor_hybrid_edge(h)
    major = net.major_hybrid_edge(h)
    assert net.nodes[major.parent].name == "v"
    assert minor.length == pytest.approx(0.1)
    assert minor.gamma + major.gamma == pytest.approx(1.0)
    assert h.k == 4 and h.is_bad_diamond_i
    check_network(net)

    score = log_pseudolikelihood(net, table)
    assert math.isfinite(score) and score <= 0

    delete_hybridization(net, _rng(), h)
    check_network(net)
    assert net.num_hybrids == 0
    assert len(net.nodes) == len(original.nodes)
    assert is_isomorphic(net, original)
    leaf_a = net.get_leaf("A")
    assert net.parent_edges(leaf_a)[0].length == pytest.approx(1.0)

def test_add_hybrid_beyond_maximum_is_illegal():
    net = build_four_taxon_tree()
    AddHybridMove(max_hybrids = 1, origin = 2, target = 4).execute(net, _rng())
    net.journal.commit()
    before = net.snapshot()

    move = AddHybridMove(max_hybrids = 1)
    with pytest.raises(IllegalMoveTargetError):
        move.execute(net, _rng())
    assert net.snapshot() == before
    assert not net.journal.in_flight

    with pytest.raises(IllegalMoveTargetError):
        add_hybridization(build_four_taxon_tree(), _rng(), max_hybrids = 0)

def test_add_hybrid_rejects_adjacent_edges():
    net = build_four_taxon_tree()
    with pytest.raises(IllegalMoveTargetError):
        add_hybridization(net, _rng(), origin = net.edges[2],
                          target = net.edges[3])

def test_hybridization_targets():
    net = build_four_taxon_tree()
    pairs = hybridization_targets(net)
    for origin, target in pairs:
        assert origin is not target
        assert not ({origin.parent, origin.child} &
                    {target.parent, target.child})
        assert origin.parent not in net.descendants(net.nodes[target.child])
    assert (net.edges[2], net.edges[4]) in pairs

@pytest.mark.parametrize("gamma", [0.1, 0.3, 0.5, 0.8])
def test_gamma_sums_to_one(gamma):
    net = build_six_taxon_tree()
    h = add_hybridization(net, _rng(3), max_hybrids = 2, gamma = gamma)
    ins = net.parent_edges(h)
    assert len(ins) == 2
    assert sum(e.gamma for e in ins) == pytest.approx(1.0)
    assert sum(e.is_major for e in ins) == 1
    minor = net.minor_hybrid_edge(h)
    assert minor.gamma <= 0.5
    assert net.gamma_violations() == []

def test_delete_major_edge():
    net = build_six_taxon_network()
    h = net.node_named("H")
    delete_hybridization(net, _rng(), h, remove_minor = False)
    check_network(net)
    assert net.num_hybrids == 0
    assert net.nodes[net.parent_edges(net.get_leaf("E"))[0].parent].name \
           == "q"

def test_delete_without_hybrids_is_illegal():
    with pytest.raises(IllegalMoveTargetError):
        delete_hybridization(build_four_taxon_tree(), _rng())

def test_nni_on_tree():
    net = build_six_taxon_tree()
    before = net.duplicate()
    c = net.node_named("c")
    edge = net.parent_edges(c)[0]

    nni(net, _rng(), edge)
    check_network(net)
    assert not is_isomorphic(net, before)
    assert net.num_leaves == 6
    assert len(net.children(c)) == 2

def test_nni_targets_skip_cycles():
    net = build_six_taxon_network()
    h = net.node_named("H").number
    for edge, sibling, child in nni_targets(net):
        for e in (edge, sibling, child):
            assert e.in_cycle == -1
            assert not e.hybrid
    assert h in net.hybrids

def test_move_origin_and_target():
    net = build_six_taxon_network()
    h = net.node_named("H")
    origin = net.minor_hybrid_edge(h).parent

    move_origin(net, _rng(1), h)
    check_network(net)
    assert net.minor_hybrid_edge(h).parent == origin
    assert net.nodes[origin].in_cycle == h.number

    net2 = build_six_taxon_network()
    h2 = net2.node_named("H")
    try:
        move_target(net2, _rng(2), h2)
    except InvalidTopologyError:
        pass
    else:
        check_network(net2)
        assert h2.number in net2.hybrids

def test_move_target_onto_leaf_edge():
    net = build_six_taxon_network()
    h = net.node_named("H")
    target = net.parent_edges(net.get_leaf("D"))[0]
    move_target(net, _rng(), h, target)
    check_network(net)
    assert net.nodes[net.child_edges(h)[0].child].name == "D"
    assert net.nodes[net.parent_edges(net.get_leaf("E"))[0].parent].name \
           == "d"

@pytest.mark.parametrize("move", [
    lambda: AddHybridMove(max_hybrids = 2),
    lambda: DeleteHybridMove(),
    lambda: NNIMove(),
    lambda: MoveOriginMove(),
    lambda: MoveTargetMove(),
])
def test_undo_restores_exact_state(move):
    for seed in range(5):
        net = build_six_taxon_network()
        before = net.snapshot()
        m = move()
        try:
            m.execute(net, _rng(seed))
        except (IllegalMoveTargetError, InvalidTopologyError):
            assert net.snapshot() == before
            continue
        assert net.journal.in_flight
        m.undo()
        assert net.snapshot() == before
        check_network(net)

def test_make_move():
    for kind in MoveType:
        move = make_move(kind, max_hybrids = 2, gamma = 0.3)
        assert move.move_type == kind
    assert make_move(MoveType.ADD_HYBRID, 2, 0.3).gamma == 0.3

def test_delete_hybrid_with_two_children():
    net = build_branching_hybrid_network()
    before = net.snapshot()
    h = net.node_named("H")

    move = make_move(MoveType.DELETE_HYBRID)
    move.execute(net, _rng())
    check_network(net)
    assert net.num_hybrids == 0
    assert h.number in net.nodes and not h.hybrid
    assert sorted(c.name for c in net.children(h)) == ["C", "D"]
    assert net.parents(h)[0].name == "a"
    # b is left with one child and is suppressed
    assert net.parents(net.get_leaf("B"))[0].name == "r"

    move.undo(net)
    assert net.snapshot() == before

def test_delete_major_edge_of_branching_hybrid():
    net = build_branching_hybrid_network()
    h = net.node_named("H")
    delete_hybridization(net, _rng(), h, remove_minor = False)
    check_network(net)
    assert net.parents(h)[0].name == "b"
    assert net.parents(net.get_leaf("A"))[0].name == "r"
