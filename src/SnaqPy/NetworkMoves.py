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

The topology operators used by the network search:

1) Add hybridization -- Needed in order to increase the number of
                        reticulations.

2) Delete hybridization -- Needed in order to decrease the number of
                           reticulations.

3) NNI -- Needed in order to change the tree part of the topology.

4) Move origin / move target -- Slide one end of an existing reticulation to
                                a neighbouring edge.

Every operator edits the network in place through its journaled setters and
then runs the incremental marker update. An edit the updater rejects raises
InvalidTopologyError; the caller is expected to roll the journal back (the
Move classes do this). Operators never undo their own partial edits.
"""

from __future__ import annotations
import numpy as np

from .Network import Network, Node, Edge, InvalidTopologyError
from .InvariantUpdater import update, clear_cycle
from .Settings import DEFAULT_MAX_HYBRIDS, INITIAL_GAMMA, \
                      INITIAL_HYBRID_LENGTH, NO_CYCLE

#############################
#### EXCEPTION SPECIFICS ####
#############################

class MoveError(Exception):
    """
    Base class for errors raised by the move operators.
    """
    def __init__(self, message : str = "Error during a network move") -> None:
        self.message = message
        super().__init__(self.message)

class IllegalMoveTargetError(MoveError):
    """
    Raised when no valid location exists for the requested move. The search
    picks a different kind of move; the network is left untouched.
    """
    def __init__(self, message : str = "No valid target for this move") -> None:
        super().__init__(message)

##########################
#### HELPERS #############
##########################

def _refresh(net : Network, seeds : set[int], new_cycles : list[int] = ()) -> None:
    report = update(net, seeds, new_cycles)
    if not report.valid:
        raise InvalidTopologyError(report.reason)

def _pick(rng : np.random.Generator, options : list):
    return options[int(rng.integers(len(options)))]

def _free_edge(edge : Edge, cycle : int = NO_CYCLE) -> bool:
    """
    A tree edge that is not on any reticulation cycle other than 'cycle'.
    """
    return not edge.hybrid and edge.in_cycle in (NO_CYCLE, cycle)

def _adjacent(e1 : Edge, e2 : Edge) -> bool:
    return bool({e1.parent, e1.child} & {e2.parent, e2.child})

def hybridization_targets(net : Network) -> list[tuple[Edge, Edge]]:
    """
    Every (origin, target) pair of edges that add_hybridization may connect:
    distinct, non-adjacent tree edges outside any cycle, where the origin's
    parent is not below the target.

    Args:
        net (Network): A network.
    Returns:
        list[tuple[Edge, Edge]]: candidate (origin, target) pairs, by id.
    """
    free = [e for e in net.sorted_edges() if _free_edge(e)]
    pairs = []
    for target in free:
        below = net.descendants(net.nodes[target.child])
        for origin in free:
            if origin is target or _adjacent(origin, target):
                continue
            if origin.parent in below:
                continue
            pairs.append((origin, target))
    return pairs

#########################
#### Network Changes ####
#########################

def add_hybridization(net : Network,
                      rng : np.random.Generator,
                      max_hybrids : int = DEFAULT_MAX_HYBRIDS,
                      gamma : float = INITIAL_GAMMA,
                      origin : Edge = None,
                      target : Edge = None) -> Node:
    """
    Adds a hybrid edge from the origin edge to the target edge. Both edges are
    split at their midpoint. If either edge is not given, a random valid pair
    is drawn.

    origin:             target:
    a                   x
    |                   |
    |                   | (becomes major hybrid edge, 1 - gamma)
    v                   v
    z - - - - - - - - ->h
    |   (minor, gamma)  |
    |                   |
    v                   v
    b                   y

    Args:
        net (Network): A network.
        rng (np.random.Generator): Random stream for the choice of edges.
        max_hybrids (int, optional): Largest allowed number of hybrids.
        gamma (float, optional): Inheritance probability of the new edge.
                                 Defaults to 0.5.
        origin (Edge, optional): Edge where the new hybrid edge starts.
        target (Edge, optional): Edge that receives the new hybrid node.
    Raises:
        IllegalMoveTargetError: If the network already has max_hybrids
                                hybrids, or there is no valid pair of edges.
                                Nothing is modified in this case.
        InvalidTopologyError: If the resulting cycle is illegal.
    Returns:
        Node: The new hybrid node.
    """
    if net.num_hybrids >= max_hybrids:
        raise IllegalMoveTargetError(f"Network already has {net.num_hybrids} \
                                      hybrid(s), the maximum is {max_hybrids}")

    if origin is None or target is None:
        pairs = hybridization_targets(net)
        if origin is not None:
            pairs = [p for p in pairs if p[0] is origin]
        if target is not None:
            pairs = [p for p in pairs if p[1] is target]
        if not pairs:
            raise IllegalMoveTargetError("No pair of edges can be connected \
                                          by a new hybrid edge")
        origin, target = _pick(rng, pairs)
    else:
        if not (_free_edge(origin) and _free_edge(target)) or \
           origin is target or _adjacent(origin, target):
            raise IllegalMoveTargetError(f"Cannot connect {origin} to {target}")
        if origin.parent in net.descendants(net.nodes[target.child]):
            raise IllegalMoveTargetError(f"{origin} is below {target}")

    seeds = {origin.parent, origin.child, target.parent, target.child}

    h = net.subdivide_edge(target)
    z = net.subdivide_edge(origin)
    seeds.update({h.number, z.number})

    net.set_hybrid(h, True)
    major = net.parent_edges(h)[0]
    net.set_attr(major, "hybrid", True)
    minor = net.add_edge(z, h, INITIAL_HYBRID_LENGTH, hybrid = True,
                         gamma = gamma)
    net.set_gamma(minor, gamma)

    _refresh(net, seeds, [h.number])
    return h

def delete_hybridization(net : Network,
                         rng : np.random.Generator,
                         hybrid : Node = None,
                         remove_minor : bool = True) -> None:
    """
    Removes one parent edge of a hybrid node. The hybrid node and the former
    parent are suppressed when they are left with one parent and one child; a
    hybrid with several children stays as a plain tree node. If the former
    parent was the root, the root is dropped instead.

    Args:
        net (Network): A network.
        rng (np.random.Generator): Random stream, used when no hybrid is given.
        hybrid (Node, optional): The hybrid to remove. Defaults to a random one.
        remove_minor (bool, optional): Remove the minor edge (default) or the
                                       major one.
    Raises:
        IllegalMoveTargetError: If the network has no hybrids.
        InvalidTopologyError: If the removal leaves a node with no children.
    Returns:
        N/A
    """
    if hybrid is None:
        if not net.hybrids:
            raise IllegalMoveTargetError("The network has no hybrids")
        hybrid = net.nodes[_pick(rng, sorted(net.hybrids))]
    elif not hybrid.hybrid:
        raise IllegalMoveTargetError(f"{hybrid} is not a hybrid node")

    seeds = clear_cycle(net, hybrid)

    if remove_minor:
        gone = net.minor_hybrid_edge(hybrid)
    else:
        gone = net.major_hybrid_edge(hybrid)
    keep = net.hybrid_partner(gone)
    parent = net.nodes[gone.parent]

    seeds.update({parent.number, keep.parent})
    seeds.update(c.number for c in net.children(hybrid))
    seeds.update(p.number for p in net.parents(parent))
    seeds.update(c.number for c in net.children(parent))

    net.remove_edge(gone)
    net.set_hybrid(hybrid, False)
    net.set_attr(keep, "hybrid", False)
    net.set_attr(keep, "gamma", 1.0)
    net.set_attr(keep, "is_major", True)
    if len(net.child_edges(hybrid)) == 1:
        net.suppress_node(hybrid)

    remaining = net.child_edges(parent)
    if not remaining:
        raise InvalidTopologyError(f"Removing {gone} leaves {parent} without \
                                    children")
    if len(remaining) == 1 and not parent.hybrid:
        if parent.number == net.root:
            new_root = net.drop_root()
            seeds.add(new_root.number)
        else:
            net.suppress_node(parent)

    _refresh(net, seeds)

def nni_targets(net : Network) -> list[tuple[Edge, Edge, Edge]]:
    """
    Every (edge, sibling, child) triple available to nni.

    Args:
        net (Network): A network.
    Returns:
        list[tuple[Edge, Edge, Edge]]: candidate triples, by id.
    """
    triples = []
    for edge in net.sorted_edges():
        if not _free_edge(edge):
            continue
        u = net.nodes[edge.parent]
        v = net.nodes[edge.child]
        if v.leaf or v.hybrid or u.hybrid:
            continue
        siblings = [e for e in net.child_edges(u)
                    if e is not edge and _free_edge(e)]
        kids = [e for e in net.child_edges(v) if _free_edge(e)]
        for s in sorted(siblings, key = lambda e: e.number):
            for c in sorted(kids, key = lambda e: e.number):
                triples.append((edge, s, c))
    return triples

def nni(net : Network,
        rng : np.random.Generator,
        edge : Edge = None) -> None:
    """
    Rooted nearest neighbour interchange across a tree edge u->v outside of
    any cycle: a sibling subtree of v is swapped with a child subtree of v.

        u                   u
       / \\                / \\
      s   v      --->     c   v
         / \\                / \\
        c   d               s   d

    Args:
        net (Network): A network.
        rng (np.random.Generator): Random stream for the choice of subtrees.
        edge (Edge, optional): The edge u->v. Defaults to a random one.
    Raises:
        IllegalMoveTargetError: If no edge supports the interchange.
    Returns:
        N/A
    """
    triples = nni_targets(net)
    if edge is not None:
        triples = [t for t in triples if t[0] is edge]
    if not triples:
        raise IllegalMoveTargetError("No edge supports a nearest neighbour \
                                      interchange")

    edge, sibling, child = _pick(rng, triples)
    u = net.nodes[edge.parent]
    v = net.nodes[edge.child]
    seeds = {u.number, v.number, sibling.child, child.child}

    net.reattach_parent(sibling, v)
    net.reattach_parent(child, u)

    _refresh(net, seeds)

def move_origin(net : Network,
                rng : np.random.Generator,
                hybrid : Node = None,
                target : Edge = None) -> None:
    """
    Slides the origin of a hybrid's minor edge onto an edge next to it.

    a                       a
    |                       |
    z - - ->h       --->    b       u
    |                               |
    b       u                       z - - ->h
            |                       |
            w                       w

    Args:
        net (Network): A network.
        rng (np.random.Generator): Random stream for the choices.
        hybrid (Node, optional): Hybrid whose minor edge moves. Defaults to a
                                 random hybrid.
        target (Edge, optional): Edge receiving the origin. Defaults to a
                                 random tree edge touching a or b.
    Raises:
        IllegalMoveTargetError: If there is no hybrid or no valid target.
        InvalidTopologyError: If the new cycle is illegal.
    Returns:
        N/A
    """
    if hybrid is None:
        if not net.hybrids:
            raise IllegalMoveTargetError("The network has no hybrids")
        hybrid = net.nodes[_pick(rng, sorted(net.hybrids))]

    minor = net.minor_hybrid_edge(hybrid)
    z = net.nodes[minor.parent]
    ins = net.parent_edges(z)
    outs = [e for e in net.child_edges(z) if e is not minor]
    if len(ins) != 1 or len(outs) != 1 or z.hybrid:
        raise IllegalMoveTargetError(f"The origin of {minor} cannot move")
    upper, lower = ins[0], outs[0]
    a = net.nodes[upper.parent]
    b = net.nodes[lower.child]

    candidates = [e for e in net.sorted_edges()
                  if _free_edge(e, hybrid.number)
                  and ({e.parent, e.child} & {a.number, b.number})
                  and z.number not in (e.parent, e.child)]
    if target is not None:
        candidates = [e for e in candidates if e is target]
    if not candidates:
        raise IllegalMoveTargetError(f"No edge can receive the origin of \
                                      {minor}")
    target = _pick(rng, candidates)

    seeds = clear_cycle(net, hybrid)
    seeds.update({a.number, b.number, z.number, target.parent, target.child})

    # close the gap left by z
    net.reattach_parent(lower, a)
    if upper.length is not None or lower.length is not None:
        net.set_length(lower, (upper.length or 0.0) + (lower.length or 0.0))

    # reinsert z into the target edge
    u = net.nodes[target.parent]
    net.reattach_parent(upper, u)
    net.reattach_parent(target, z)
    if target.length is not None:
        net.set_length(upper, target.length / 2)
        net.set_length(target, target.length / 2)

    _refresh(net, seeds, [hybrid.number])

def move_target(net : Network,
                rng : np.random.Generator,
                hybrid : Node = None,
                target : Edge = None) -> None:
    """
    Slides a hybrid node, together with its minor edge, onto an edge next to
    its major parent or its child. The minor origin stays where it is.

    x                       x
    |                       |
    h<- - - z       --->    c       u
    |                               |
    c       u                       h<- - - z
            |                       |
            w                       w

    Args:
        net (Network): A network.
        rng (np.random.Generator): Random stream for the choices.
        hybrid (Node, optional): Hybrid to move. Defaults to a random hybrid.
        target (Edge, optional): Edge receiving the hybrid. Defaults to a
                                 random tree edge touching x or c.
    Raises:
        IllegalMoveTargetError: If there is no hybrid or no valid target.
        InvalidTopologyError: If the new cycle is illegal.
    Returns:
        N/A
    """
    if hybrid is None:
        if not net.hybrids:
            raise IllegalMoveTargetError("The network has no hybrids")
        hybrid = net.nodes[_pick(rng, sorted(net.hybrids))]

    major = net.major_hybrid_edge(hybrid)
    minor = net.minor_hybrid_edge(hybrid)
    outs = net.child_edges(hybrid)
    if len(outs) != 1:
        raise IllegalMoveTargetError(f"{hybrid} does not have one child")
    below = outs[0]
    x = net.nodes[major.parent]
    c = net.nodes[below.child]

    candidates = [e for e in net.sorted_edges()
                  if _free_edge(e, hybrid.number)
                  and ({e.parent, e.child} & {x.number, c.number})
                  and hybrid.number not in (e.parent, e.child)
                  and minor.parent not in (e.parent, e.child)]
    if target is not None:
        candidates = [e for e in candidates if e is target]
    if not candidates:
        raise IllegalMoveTargetError(f"No edge can receive {hybrid}")
    target = _pick(rng, candidates)

    seeds = clear_cycle(net, hybrid)
    seeds.update({x.number, c.number, hybrid.number, minor.parent,
                  target.parent, target.child})

    # close the gap left by the hybrid
    net.reattach_parent(below, x)
    if major.length is not None or below.length is not None:
        net.set_length(below, (major.length or 0.0) + (below.length or 0.0))

    # reinsert the hybrid into the target edge
    u = net.nodes[target.parent]
    net.reattach_parent(major, u)
    net.reattach_parent(target, hybrid)
    if target.length is not None:
        net.set_length(major, target.length / 2)
        net.set_length(target, target.length / 2)

    _refresh(net, seeds, [hybrid.number])
