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
Design - [ ]
"""

from __future__ import annotations
from typing import Iterable, TYPE_CHECKING
import networkx as nx

if TYPE_CHECKING:
    from .Network import Network

def split_index(taxa : tuple[str, ...], pair : Iterable[str]) -> int:
    """
    Position of a quartet split in the CF12_34, CF13_24, CF14_23 order.

    Args:
        taxa (tuple[str, ...]): the quartet (t1, t2, t3, t4).
        pair (Iterable[str]): one side of the split.
    Returns:
        int: 0 for t1t2|t3t4, 1 for t1t3|t2t4, 2 for t1t4|t2t3.
    """
    side = set(pair)
    if taxa[0] not in side:
        side = set(taxa) - side
    partner = (side - {taxa[0]}).pop()
    return taxa.index(partner) - 1

def quartet_split(clusters : Iterable[frozenset[str]],
                  quartet : tuple[str, ...]) -> int | None:
    """
    The split a rooted tree displays on four of its taxa, read off its
    clusters (the leaf sets below each clade). A cluster holding exactly two
    of the four taxa decides the split.

    Args:
        clusters (Iterable[frozenset[str]]): leaf sets of the tree's clades.
        quartet (tuple[str, ...]): four taxa present in the tree.
    Returns:
        int | None: the split's index (see split_index), or None if the tree
                    leaves the quartet unresolved.
    """
    wanted = set(quartet)
    for cluster in clusters:
        shared = cluster & wanted
        if len(shared) == 2:
            return split_index(quartet, shared)
    return None

def is_isomorphic(net1 : Network, net2 : Network) -> bool:
    """
    Check whether two networks have the same rooted topology with the same
    leaf labels. Internal node ids, lengths and γ values are ignored.

    Args:
        net1 (Network): a network.
        net2 (Network): another network.
    Returns:
        bool: True if the topologies match.
    """
    def node_match(a : dict, b : dict) -> bool:
        if a["leaf"] != b["leaf"] or a["hybrid"] != b["hybrid"]:
            return False
        return not a["leaf"] or a["name"] == b["name"]

    return nx.is_isomorphic(net1.to_networkx(), net2.to_networkx(),
                            node_match = node_match)
