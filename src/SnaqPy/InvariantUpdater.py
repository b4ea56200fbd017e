#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- SnaqPy --
##  Library for Phylogenetic Network Search from Quartet Concordance Factors
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

"""
Last Edit : 10/19/26
First Included in Version : 1.0.0
Docs   - [x]
Tests  - [x]
Design - [x]

Maintenance of the derived markers of a Network.

Three families of markers are kept:
    in_cycle        - id of the hybrid whose reticulation cycle contains the
                      node/edge, or -1.
    contain_root    - the root may be placed on this edge. Locally,
                      cr(e) = not hybrid(parent) and
                              (parent is root or cr(in-edge of parent)).
                      Nodes carry the matching root_compatible flag.
    identifiable    - the edge's length (and γ) can be estimated from quartet
                      concordance factors.

derive_markers() is the pure, from-scratch definition. update() reaches the
same values by only visiting the region around the edited edges, and is what
the move operators call after every structural edit.
"""

from __future__ import annotations
from collections import deque, namedtuple
import heapq
from typing import Any, Iterable

from .Network import Network, Node, Edge, InvalidTopologyError
from .Settings import NO_CYCLE

##########################
#### REPORTS AND TYPES ###
##########################

class UpdateReport:
    """
    Outcome of a marker update. An invalid report means the edit that was
    just made is topologically illegal and must be rolled back.
    """

    def __init__(self, valid : bool = True, reason : str = None) -> None:
        self.valid : bool = valid
        self.reason : str = reason

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "UpdateReport(valid)"
        return f"UpdateReport(invalid: {self.reason})"

# Classification of one reticulation cycle.
CycleClass = namedtuple("CycleClass", ["k", "bad_triangle", "bad_diamond_i",
                                       "bad_diamond_ii", "opposite"])

NODE_MARKERS = ("in_cycle", "root_compatible", "k", "is_bad_triangle",
                "is_bad_diamond_i", "is_bad_diamond_ii")
EDGE_MARKERS = ("in_cycle", "contain_root", "identifiable")

##########################
#### LOCAL RULES #########
##########################

def _cycle_path(net : Network, hybrid : Node) -> tuple[list[int], list[int]] | None:
    """
    Shortest undirected path from the minor parent of 'hybrid' back to
    'hybrid' that does not use the minor edge. Together with the minor edge
    the path closes the reticulation cycle.

    Args:
        net (Network): the network.
        hybrid (Node): a hybrid node.
    Returns:
        tuple[list[int], list[int]] | None: (node ids from the minor parent
                                            to the hybrid, ids of the cycle
                                            edges including the minor edge),
                                            or None if no such path exists.
    """
    minor = net.minor_hybrid_edge(hybrid)
    start = minor.parent
    dist : dict[int, int] = {start : 0}
    prev : dict[int, tuple[int, int]] = {}
    heap : list[tuple[int, int]] = [(0, start)]

    while heap:
        d, cur = heapq.heappop(heap)
        if cur == hybrid.number:
            break
        if d > dist[cur]:
            continue
        for eid in sorted(net.nodes[cur].edges):
            if eid == minor.number:
                continue
            nxt = net.edges[eid].other(cur)
            if nxt not in dist or d + 1 < dist[nxt]:
                dist[nxt] = d + 1
                prev[nxt] = (cur, eid)
                heapq.heappush(heap, (d + 1, nxt))

    if hybrid.number not in dist:
        return None

    nodes = [hybrid.number]
    edges = []
    cur = hybrid.number
    while cur != start:
        par, eid = prev[cur]
        nodes.append(par)
        edges.append(eid)
        cur = par
    nodes.reverse()
    edges.reverse()
    return nodes, edges + [minor.number]

def cycle_sequence(net : Network, hybrid : Node) -> tuple[list[int], set[int]]:
    """
    Walk the marked cycle of 'hybrid', starting at the hybrid and leaving
    through its minor edge.

    Args:
        net (Network): the network, with current in_cycle markers.
        hybrid (Node): a hybrid node.
    Raises:
        InvalidTopologyError: if the markers do not describe a closed cycle.
    Returns:
        tuple[list[int], set[int]]: the cycle's node ids in order (hybrid
                                    first, major parent last) and its edge
                                    ids.
    """
    h = hybrid.number
    minor = net.minor_hybrid_edge(hybrid)
    seq = [h]
    cycle_edges = {minor.number}
    came_from = minor.number
    cur = minor.parent

    while cur != h:
        if cur in seq or len(seq) > len(net.nodes):
            raise InvalidTopologyError(f"Cycle markers of hybrid {h} do not \
                                        form a cycle")
        seq.append(cur)
        onward = [e for e in net.nodes[cur].edges
                  if e != came_from and net.edges[e].in_cycle == h]
        if len(onward) != 1:
            raise InvalidTopologyError(f"Cycle markers of hybrid {h} do not \
                                        form a cycle")
        came_from = onward[0]
        cycle_edges.add(came_from)
        cur = net.edges[came_from].other(cur)

    return seq, cycle_edges

def _is_degree2_root(net : Network, number : int) -> bool:
    return number == net.root and len(net.nodes[number].edges) == 2

def cycle_size(net : Network, hybrid : Node) -> int:
    """
    Effective size of the cycle closed by a hybrid, found from the structure
    alone so that stale markers do not matter. A degree-2 root on the cycle
    does not count.

    Args:
        net (Network): the network.
        hybrid (Node): a hybrid node with two parents.
    Returns:
        int: the number of cycle nodes, or 0 if the parents do not reconnect.
    """
    found = _cycle_path(net, hybrid)
    if found is None:
        return 0
    return len([n for n in found[0] if not _is_degree2_root(net, n)])

def _classify(net : Network, hybrid : Node, seq : list[int],
              cycle_edges : set[int]) -> CycleClass:
    """
    Effective size and bad-triangle / bad-diamond classification of a cycle.

    Args:
        net (Network): the network.
        hybrid (Node): the cycle's hybrid node.
        seq (list[int]): cycle nodes, hybrid first.
        cycle_edges (set[int]): cycle edge ids.
    Returns:
        CycleClass: the classification.
    """
    effective = [n for n in seq if not _is_degree2_root(net, n)]
    k = len(effective)
    if k != 4:
        return CycleClass(k, k == 3, False, False, None)

    opposite = net.nodes[effective[2]]
    outside = [net.edges[e] for e in opposite.edges if e not in cycle_edges]
    opposite_leaf = len(outside) == 1 and \
                    net.nodes[outside[0].other(opposite.number)].leaf

    below = net.children(hybrid)
    hybrid_child_leaf = len(below) == 1 and below[0].leaf

    return CycleClass(k, False, opposite_leaf and hybrid_child_leaf,
                      opposite_leaf and not hybrid_child_leaf,
                      opposite.number)

def _contain_root(net : Network, edge : Edge, in_value : Any) -> bool:
    """
    Local contains-root rule.

    Args:
        net (Network): the network.
        edge (Edge): the edge to evaluate.
        in_value (Callable): edge -> contain_root lookup for the parent's
                             incoming edge.
    Returns:
        bool: the edge's contain_root value.
    """
    parent = net.nodes[edge.parent]
    if parent.hybrid:
        return False
    if parent.number == net.root:
        return True
    ins = net.parent_edges(parent)
    return len(ins) == 1 and in_value(ins[0])

def _root_compatible(net : Network, node : Node, in_value : Any) -> bool:
    if node.number == net.root:
        return True
    if node.hybrid:
        return False
    ins = net.parent_edges(node)
    return len(ins) == 1 and in_value(ins[0])

def _identifiable(net : Network, edge : Edge, cycle_of : Any,
                  classes : dict[int, CycleClass]) -> bool:
    """
    Local identifiability rule.

    Args:
        net (Network): the network.
        edge (Edge): the edge to evaluate.
        cycle_of (Callable): edge -> in_cycle lookup.
        classes (dict[int, CycleClass]): classification of every cycle the
                                         edge may belong to.
    Returns:
        bool: True if the edge's parameters can be estimated.
    """
    if net.nodes[edge.child].leaf:
        return False

    h = cycle_of(edge)
    if h != NO_CYCLE:
        cls = classes[h]
        if cls.bad_triangle or cls.bad_diamond_i:
            return False
        if cls.bad_diamond_ii and cls.opposite in (edge.parent, edge.child):
            return False

    if edge.parent == net.root and _is_degree2_root(net, net.root):
        root = net.nodes[net.root]
        if any(child.leaf for child in net.children(root)):
            return False
        # the two edges out of a degree-2 root only inform their sum
        if edge.number == max(root.edges):
            return False

    return True

##########################
#### FULL DERIVATION #####
##########################

def derive_markers(net : Network) -> dict[str, dict[int, dict[str, Any]]]:
    """
    Compute every marker of the network from scratch, without writing
    anything.

    Args:
        net (Network): the network.
    Raises:
        InvalidTopologyError: if the network is cyclic, a hybrid does not
                              close a cycle, two cycles share a node, or a
                              cycle has effective size below 3.
    Returns:
        dict[str, dict[int, dict[str, Any]]]: {"nodes": {id: markers},
                                               "edges": {id: markers}}.
    """
    order = net.topological_order()

    node_cycle = {n : NO_CYCLE for n in net.nodes}
    edge_cycle = {e : NO_CYCLE for e in net.edges}
    classes : dict[int, CycleClass] = {}

    for h in sorted(net.hybrids):
        hybrid = net.nodes[h]
        if len(net.parent_edges(hybrid)) != 2:
            raise InvalidTopologyError(f"Hybrid {h} does not have two parents")
        found = _cycle_path(net, hybrid)
        if found is None:
            raise InvalidTopologyError(f"Hybrid {h} does not close a cycle")
        nodes, edges = found
        for n in nodes:
            if node_cycle[n] != NO_CYCLE:
                raise InvalidTopologyError(f"Cycles of hybrids {h} and \
                                            {node_cycle[n]} share node {n}")
            node_cycle[n] = h
        for e in edges:
            edge_cycle[e] = h
        seq = [h] + nodes[:-1]
        classes[h] = _classify(net, hybrid, seq, set(edges))
        if classes[h].k < 3:
            raise InvalidTopologyError(f"Cycle of hybrid {h} has effective \
                                        size {classes[h].k}")

    contain_root : dict[int, bool] = {}
    root_compatible : dict[int, bool] = {}
    lookup = lambda e: contain_root[e.number]
    for node in order:
        root_compatible[node.number] = _root_compatible(net, node, lookup)
        for edge in net.child_edges(node):
            contain_root[edge.number] = _contain_root(net, edge, lookup)

    markers : dict[str, dict[int, dict[str, Any]]] = {"nodes" : {},
                                                      "edges" : {}}
    for n, node in net.nodes.items():
        cls = classes.get(n)
        markers["nodes"][n] = {
            "in_cycle" : node_cycle[n],
            "root_compatible" : root_compatible[n],
            "k" : cls.k if cls is not None else -1,
            "is_bad_triangle" : cls is not None and cls.bad_triangle,
            "is_bad_diamond_i" : cls is not None and cls.bad_diamond_i,
            "is_bad_diamond_ii" : cls is not None and cls.bad_diamond_ii
        }
    for e, edge in net.edges.items():
        markers["edges"][e] = {
            "in_cycle" : edge_cycle[e],
            "contain_root" : contain_root[e],
            "identifiable" : _identifiable(net, edge,
                                           lambda x: edge_cycle[x.number],
                                           classes)
        }
    return markers

def current_markers(net : Network) -> dict[str, dict[int, dict[str, Any]]]:
    """
    The markers currently stored on the network, in the same layout as
    derive_markers.

    Args:
        net (Network): the network.
    Returns:
        dict[str, dict[int, dict[str, Any]]]: stored markers.
    """
    return {
        "nodes" : {n : {m : getattr(node, m) for m in NODE_MARKERS}
                   for n, node in net.nodes.items()},
        "edges" : {e : {m : getattr(edge, m) for m in EDGE_MARKERS}
                   for e, edge in net.edges.items()}
    }

def full_update(net : Network) -> UpdateReport:
    """
    Recompute every marker and write the results through the journal.

    Args:
        net (Network): the network.
    Returns:
        UpdateReport: invalid (with nothing written) if the network is not a
                      valid level-1 network.
    """
    try:
        markers = derive_markers(net)
    except InvalidTopologyError as err:
        return UpdateReport(False, err.message)

    for n, values in markers["nodes"].items():
        for attr, value in values.items():
            net.set_attr(net.nodes[n], attr, value)
    for e, values in markers["edges"].items():
        for attr, value in values.items():
            net.set_attr(net.edges[e], attr, value)

    return UpdateReport()

def check_network(net : Network) -> None:
    """
    Validate a network against every structural invariant and check that the
    stored markers equal a from-scratch derivation.

    Args:
        net (Network): the network.
    Raises:
        InvalidTopologyError: describing the first violation found.
    Returns:
        N/A
    """
    if net.root is None or net.root not in net.nodes:
        raise InvalidTopologyError("The network has no root")
    if not net.is_acyclic():
        raise InvalidTopologyError("The network contains a directed cycle")

    for node in net.nodes.values():
        count = len(net.parent_edges(node))
        if node.number == net.root:
            expected = 0
        elif node.hybrid:
            expected = 2
        else:
            expected = 1
        if count != expected:
            raise InvalidTopologyError(f"{node} has {count} parents, expected \
                                        {expected}")
        if node.leaf and net.child_edges(node):
            raise InvalidTopologyError(f"Leaf {node.name} has children")

    for edge in net.edges.values():
        if edge.hybrid != net.nodes[edge.child].hybrid:
            raise InvalidTopologyError(f"{edge} hybrid flag disagrees with \
                                        its child")
        if not edge.hybrid and edge.gamma != 1.0:
            raise InvalidTopologyError(f"Tree edge {edge} has gamma \
                                        {edge.gamma}")

    bad = net.gamma_violations()
    if bad:
        raise InvalidTopologyError(f"Hybrid {bad[0]} has invalid parent \
                                    edges or gamma values")

    stored = current_markers(net)
    derived = derive_markers(net)
    for kind in ("nodes", "edges"):
        for ident, values in derived[kind].items():
            if stored[kind][ident] != values:
                raise InvalidTopologyError(f"Stale markers on {kind[:-1]} \
                                            {ident}: stored \
                                            {stored[kind][ident]}, derived \
                                            {values}")

##########################
#### INCREMENTAL UPDATE ##
##########################

def clear_cycle(net : Network, hybrid : Node) -> set[int]:
    """
    Erase the in_cycle markers of one cycle and the hybrid's classification,
    by a worklist walk over the cycle's marked edges. Operators call this
    before editing a cycle; the cleared nodes are then passed as seeds to
    update().

    Args:
        net (Network): the network.
        hybrid (Node): the cycle's hybrid node.
    Returns:
        set[int]: ids of the nodes that were on the cycle.
    """
    h = hybrid.number
    cleared : set[int] = set()
    queue = deque([hybrid])
    while queue:
        node = queue.popleft()
        if node.number in cleared:
            continue
        cleared.add(node.number)
        for edge in net.incident_edges(node):
            if edge.in_cycle == h:
                net.set_attr(edge, "in_cycle", NO_CYCLE)
                queue.append(net.nodes[edge.other(node.number)])
        net.set_attr(node, "in_cycle", NO_CYCLE)

    net.set_attr(hybrid, "k", -1)
    net.set_attr(hybrid, "is_bad_triangle", False)
    net.set_attr(hybrid, "is_bad_diamond_i", False)
    net.set_attr(hybrid, "is_bad_diamond_ii", False)
    return cleared

def _mark_new_cycle(net : Network, hybrid : Node) -> tuple[str, list[int]]:
    """
    Find and mark the cycle of a newly created (or relocated) hybrid.

    Returns:
        tuple[str, list[int]]: (reason the cycle is illegal or None, the
                               cycle's node ids).
    """
    h = hybrid.number
    ins = net.parent_edges(hybrid)
    if len(ins) != 2:
        return f"Hybrid {h} does not have two parents", []
    # also keeps the root above every cycle
    for edge in ins:
        if net.is_descendant(net.nodes[edge.parent], hybrid):
            return f"Hybrid {h} is its own ancestor", []

    found = _cycle_path(net, hybrid)
    if found is None:
        return f"Hybrid {h} does not close a cycle", []
    nodes, edges = found
    for n in nodes:
        if net.nodes[n].in_cycle not in (NO_CYCLE, h):
            return f"Cycle of hybrid {h} overlaps the cycle of hybrid \
                     {net.nodes[n].in_cycle}", []

    for n in nodes:
        net.set_attr(net.nodes[n], "in_cycle", h)
    for e in edges:
        net.set_attr(net.edges[e], "in_cycle", h)
    return None, nodes

def update(net : Network, seeds : Iterable[int],
           new_cycles : Iterable[int] = ()) -> UpdateReport:
    """
    Incrementally restore every marker after a structural edit.

    Seeds are the ids of the endpoints of every added, removed or redirected
    edge (ids of nodes that no longer exist are ignored). new_cycles are
    hybrids whose cycle has to be located: new hybrids, and hybrids whose
    cycle was erased with clear_cycle() before the edit.

    Args:
        net (Network): the network, structurally edited.
        seeds (Iterable[int]): node ids around the edit.
        new_cycles (Iterable[int], optional): hybrid ids to locate cycles for.
    Returns:
        UpdateReport: invalid if the edit created a directed cycle, a cycle
                      overlapping another one, or a cycle of effective size
                      below 3. Edges out of the root always hold the
                      root, so a hybrid that is not its own ancestor
                      always leaves a place for it.
    """
    touched = {n for n in seeds if n in net.nodes}
    if net.root is not None:
        touched.add(net.root)

    #### in-cycle ####
    for h in sorted(new_cycles):
        hybrid = net.nodes[h]
        reason, nodes = _mark_new_cycle(net, hybrid)
        if reason is not None:
            return UpdateReport(False, reason)
        touched.update(nodes)

    #### contains-root ####
    lookup = lambda e: e.contain_root
    start : set[int] = set()
    for n in touched:
        start.update(net.nodes[n].edges)
    queue = deque(sorted(start))
    while queue:
        edge = net.edges[queue.popleft()]
        value = _contain_root(net, edge, lookup)
        changed = value != edge.contain_root
        net.set_attr(edge, "contain_root", value)
        child = net.nodes[edge.child]
        net.set_attr(child, "root_compatible",
                     _root_compatible(net, child, lookup))
        if changed:
            queue.extend(e.number for e in net.child_edges(child))
    for n in touched:
        node = net.nodes[n]
        net.set_attr(node, "root_compatible",
                     _root_compatible(net, node, lookup))

    #### identifiability ####
    cycles = {net.nodes[n].in_cycle for n in touched} - {NO_CYCLE}
    classes : dict[int, CycleClass] = {}
    recheck : set[int] = set()
    for h in sorted(cycles):
        hybrid = net.nodes[h]
        seq, cycle_edges = cycle_sequence(net, hybrid)
        cls = _classify(net, hybrid, seq, cycle_edges)
        if cls.k < 3:
            return UpdateReport(False, f"Cycle of hybrid {h} has effective \
                                        size {cls.k}")
        classes[h] = cls
        net.set_attr(hybrid, "k", cls.k)
        net.set_attr(hybrid, "is_bad_triangle", cls.bad_triangle)
        net.set_attr(hybrid, "is_bad_diamond_i", cls.bad_diamond_i)
        net.set_attr(hybrid, "is_bad_diamond_ii", cls.bad_diamond_ii)
        recheck.update(cycle_edges)

    for n in touched:
        recheck.update(net.nodes[n].edges)
    for e in sorted(recheck):
        edge = net.edges[e]
        net.set_attr(edge, "identifiable",
                     _identifiable(net, edge, lambda x: x.in_cycle, classes))

    return UpdateReport()
