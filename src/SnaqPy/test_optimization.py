import math
import pytest
import numpy as np
from SnaqPy.Network import Network
from SnaqPy.QuartetData import QuartetTable
from SnaqPy.Pseudolikelihood import PseudolikelihoodScorer
from SnaqPy.Optimization import ParameterMap, ContinuousOptimizer, \
                                ScipyOptimizer, OptimizerResult, \
                                OptimizerFailureError, \
                                OptimizerFailureWarning, \
                                pseudolik_objective, \
                                optimize_network_parameters
from SnaqPy.Move import NNIMove
from SnaqPy.Settings import MAX_BRANCH_LENGTH, MIN_GAMMA, MAX_GAMMA


#######################
#### TEST NETWORKS ####
#######################

def build_four_taxon_tree() -> Network:
    """
    ((A,B)u,(C,D)v)r with unit branch lengths. Only r->u is identifiable.
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

def build_five_taxon_network() -> Network:
    """
    A five taxon network with a single 4-cycle hybrid above B.
    """
    return Network.from_edge_list([
        ("r", "x", 0.4),
        ("r", "E", 2.0),
        ("x", "s", 0.7),
        ("x", "A", 1.5),
        ("s", "p", 0.3),
        ("s", "q", 0.6),
        ("p", "C", 1.0),
        ("p", "H", 0.2, 0.65),
        ("q", "D", 1.0),
        ("q", "H", 0.4, 0.35),
        ("H", "B", 1.0),
    ])

class FailingOptimizer(ContinuousOptimizer):
    """
    Evaluates the objective away from the start, then gives up.
    """

    def minimize(self, objective, x0, bounds):
        objective(np.asarray(x0) * 0.5)
        raise OptimizerFailureError("gave up")

class StartOptimizer(ContinuousOptimizer):
    """
    Returns the starting vector unchanged.
    """

    def minimize(self, objective, x0, bounds):
        return OptimizerResult(np.asarray(x0), objective(x0), 1)


####################
#### TEST CASES ####
####################

def test_parameter_map_entries():
    net = build_five_taxon_network()
    pmap = ParameterMap(net)
    kinds = [kind for kind, _ in pmap.entries]
    assert kinds[-1] == "gamma"
    assert kinds.count("gamma") == 1
    for kind, e in pmap.entries:
        if kind == "length":
            assert net.edges[e].identifiable

    bounds = pmap.bounds()
    assert bounds[-1] == (MIN_GAMMA, MAX_GAMMA)
    assert bounds[0] == (0.0, MAX_BRANCH_LENGTH)
    assert pmap.current()[-1] == pytest.approx(0.35)

def test_parameter_map_initial_fills_missing_lengths():
    net = build_four_taxon_tree()
    pmap = ParameterMap(net)
    assert len(pmap) == 1
    net.set_length(net.edges[pmap.entries[0][1]], None)
    assert pmap.current() == [None]
    assert pmap.initial().tolist() == [1.0]

def test_apply_clips_to_bounds():
    net = build_five_taxon_network()
    pmap = ParameterMap(net)
    x = np.full(len(pmap), 100.0)
    pmap.apply(x)
    values = pmap.current()
    assert values[0] == MAX_BRANCH_LENGTH
    assert values[-1] == pytest.approx(MAX_GAMMA)

def test_objective_is_negative_score():
    net = build_four_taxon_tree()
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.8, 0.1, 0.1)])
    scorer = PseudolikelihoodScorer(table, net)
    pmap = ParameterMap(net)
    objective = pseudolik_objective(net, scorer, pmap)
    value = objective(np.array([0.5]))
    assert net.edges[pmap.entries[0][1]].length == 0.5
    assert value == pytest.approx(-scorer.score(net))

def test_scipy_optimizer_quadratic():
    optimizer = ScipyOptimizer(max_iter = 100, time_limit = 10.0)
    result = optimizer.minimize(lambda x: float((x[0] - 0.3) ** 2),
                                np.array([2.0]), [(0.0, 5.0)])
    assert result.x[0] == pytest.approx(0.3, abs = 1e-4)
    assert result.evaluations > 0

def test_scipy_optimizer_time_limit():
    optimizer = ScipyOptimizer(time_limit = -1.0)
    with pytest.raises(OptimizerFailureError):
        optimizer.minimize(lambda x: float(x[0] ** 2), np.array([1.0]),
                           [(0.0, 5.0)])

def test_optimize_internal_length():
    """
    1 - 2/3 exp(-(t1 + 1)) = 0.8 at t1 = log(1 / 0.3) - 1.
    """
    net = build_four_taxon_tree()
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.8, 0.1, 0.1)])
    scorer = PseudolikelihoodScorer(table, net)
    start = scorer.score(net)

    outcome = optimize_network_parameters(net, scorer, ScipyOptimizer())
    assert not outcome.degraded
    assert outcome.score >= start
    assert outcome.score == pytest.approx(0.0, abs = 1e-5)
    t1 = net.edges[0].length
    assert t1 == pytest.approx(math.log(1 / 0.3) - 1, abs = 1e-2)

def test_failed_optimization_keeps_previous_values():
    net = build_five_taxon_network()
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.5, 0.3, 0.2)])
    scorer = PseudolikelihoodScorer(table, net)
    before = net.snapshot()
    start = scorer.score(net)

    with pytest.warns(OptimizerFailureWarning):
        outcome = optimize_network_parameters(net, scorer, FailingOptimizer())
    assert outcome.degraded
    assert net.snapshot() == before
    assert outcome.score == pytest.approx(start)

def test_network_without_free_parameters():
    net = Network.from_edge_list([
        ("r", "A", 1.0),
        ("r", "B", 1.0),
        ("r", "C", 1.0),
        ("r", "D", 1.0),
    ])
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.4, 0.3, 0.3)])
    scorer = PseudolikelihoodScorer(table, net)
    outcome = optimize_network_parameters(net, scorer, StartOptimizer())
    assert not outcome.degraded
    assert outcome.score == pytest.approx(scorer.score(net))

def test_journal_only_records_final_parameters():
    net = build_six_taxon_tree()
    table = QuartetTable.from_rows([
        ("A", "B", "C", "D", 0.5, 0.3, 0.2),
        ("A", "B", "E", "F", 0.6, 0.2, 0.2),
        ("B", "C", "D", "F", 0.4, 0.4, 0.2),
    ])
    scorer = PseudolikelihoodScorer(table, net)
    before = net.snapshot()

    c_edge = net.parent_edges(net.node_named("c"))[0].number
    move = NNIMove(c_edge)
    move.execute(net, np.random.default_rng(0))
    edits = len(net.journal)
    pmap = ParameterMap(net)

    optimize_network_parameters(net, scorer, ScipyOptimizer(max_iter = 20))
    assert scorer.evaluations > len(pmap)
    assert len(net.journal) <= edits + len(pmap)

    move.undo(net)
    assert net.snapshot() == before

def test_failed_optimization_inside_a_move_records_nothing():
    net = build_five_taxon_network()
    table = QuartetTable.from_rows([("A", "B", "C", "D", 0.5, 0.3, 0.2)])
    scorer = PseudolikelihoodScorer(table, net)
    before = net.snapshot()

    net.journal.begin()
    with pytest.warns(OptimizerFailureWarning):
        optimize_network_parameters(net, scorer, FailingOptimizer())
    assert len(net.journal) == 0
    net.journal.rollback()
    assert net.snapshot() == before
