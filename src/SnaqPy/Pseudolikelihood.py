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

Quartet pseudo-likelihood of a network.

The expected concordance factors of a 4-taxon set are computed exactly under
the multispecies network coalescent. Lineages are followed from the four
leaves towards the root through the sub-network of their ancestors, keeping a
joint distribution over where each still-uncoalesced lineage is. The first
coalescence among the four lineages fixes the gene tree's unrooted quartet:

    - along an edge of length t carrying n lineages, no coalescence happens
      with probability exp(-C(n, 2) t), and otherwise each pair is equally
      likely to be first,
    - at a hybrid node each lineage independently follows a parent edge with
      that edge's γ,
    - above the root, the first pair is uniform among the remaining lineages.

The score sums, over the observed quartets, the multinomial log-likelihood
ratio n_q Σ obs_i log(exp_i / obs_i). It is 0 for a perfect fit and negative
otherwise.
"""

from __future__ import annotations
from collections import defaultdict
from itertools import combinations
import math
import warnings
import numpy as np

from .Network import Network
from .QuartetData import QuartetTable, QuartetCF, QuartetDataError
from .GraphUtils import split_index
from .Settings import CF_EPSILON

#############################
#### EXCEPTION SPECIFICS ####
#############################

class NumericDegeneracyWarning(UserWarning):
    """
    Issued when an expected CF or a branch length had to be clamped to a safe
    value. The computation continues with the clamped value.
    """
    pass

# A configuration maps each active edge to the lineages (taxa) it carries,
# stored as a sorted tuple of (edge id, sorted taxa) pairs so it can be
# hashed.
Config = tuple[tuple[int, tuple[str, ...]], ...]

##########################
#### EXPECTED CFS ########
##########################

def quartet_subnetwork(net : Network, taxa : tuple[str, ...]) -> set[int]:
    """
    Node ids of the sub-network induced by the ancestors of four leaves.

    Args:
        net (Network): the network.
        taxa (tuple[str, ...]): four leaf names.
    Returns:
        set[int]: the leaves and all of their ancestors.
    """
    return net.ancestors(net.get_leaf(name) for name in taxa)

def _edge_length(length : float | None) -> float:
    if length is None:
        return 0.0
    if length < 0:
        warnings.warn(f"Negative branch length {length} clamped to 0",
                      NumericDegeneracyWarning)
        return 0.0
    return length

def _coalesce(states : dict[Config, float], edge : int, length : float,
              taxa : tuple[str, ...], result : np.ndarray) -> dict[Config, float]:
    """
    Apply the coalescent along one edge to every configuration. Mass in which
    a first coalescence happens is moved into 'result'.
    """
    new_states : dict[Config, float] = defaultdict(float)
    for config, mass in states.items():
        lineages = dict(config)[edge]
        n = len(lineages)
        if n < 2:
            new_states[config] += mass
            continue
        pairs = n * (n - 1) / 2
        stay = math.exp(-pairs * length)
        for pair in combinations(lineages, 2):
            result[split_index(taxa, pair)] += mass * (1 - stay) / pairs
        if stay > 0:
            new_states[config] += mass * stay
    return new_states

def _place(config : Config, drop : set[int],
           add : dict[int, tuple[str, ...]]) -> Config:
    entries = {e : lin for e, lin in config if e not in drop}
    entries.update(add)
    return tuple(sorted(entries.items()))

def expected_quartet_cfs(net : Network, taxa : tuple[str, ...]) -> np.ndarray:
    """
    Expected concordance factors of a quartet under the network coalescent.

    Args:
        net (Network): the network. Missing lengths count as 0.
        taxa (tuple[str, ...]): four leaf names (t1, t2, t3, t4).
    Returns:
        np.ndarray: the probabilities of t1t2|t3t4, t1t3|t2t4, t1t4|t2t3.
    """
    taxa = tuple(taxa)
    inside = quartet_subnetwork(net, taxa)
    result = np.zeros(3)
    states : dict[Config, float] = {() : 1.0}

    for node in reversed(net.topological_order()):
        if node.number not in inside:
            continue

        below = [e.number for e in net.child_edges(node) if e.child in inside]
        if node.leaf:
            lineages_of = lambda config: (node.name,)
        else:
            lineages_of = lambda config: tuple(sorted(
                t for e, lin in config if e in below for t in lin))

        if node.number == net.root:
            for config, mass in states.items():
                lineages = lineages_of(config)
                n = len(lineages)
                if n < 2:
                    continue
                pairs = n * (n - 1) / 2
                for pair in combinations(lineages, 2):
                    result[split_index(taxa, pair)] += mass / pairs
            break

        parents = net.parent_edges(node)
        new_states : dict[Config, float] = defaultdict(float)
        if len(parents) == 1:
            up = parents[0].number
            for config, mass in states.items():
                new_config = _place(config, set(below),
                                    {up : lineages_of(config)})
                new_states[new_config] += mass
        else:
            e1, e2 = parents
            for config, mass in states.items():
                lineages = lineages_of(config)
                for k in range(len(lineages) + 1):
                    for left in combinations(lineages, k):
                        right = tuple(t for t in lineages if t not in left)
                        weight = e1.gamma ** len(left) * \
                                 e2.gamma ** len(right)
                        if weight == 0:
                            continue
                        new_config = _place(config, set(below),
                                            {e1.number : left,
                                             e2.number : right})
                        new_states[new_config] += mass * weight
        states = new_states

        for edge in parents:
            states = _coalesce(states, edge.number,
                               _edge_length(edge.length), taxa, result)

    total = result.sum()
    if total > 0:
        result = result / total
    return result

##########################
#### SCORING #############
##########################

def quartet_log_likelihood(row : QuartetCF, expected : np.ndarray) -> float:
    """
    Weighted log-likelihood ratio of one quartet. Observed zeros contribute
    nothing; expected values below CF_EPSILON are clamped to CF_EPSILON.

    Args:
        row (QuartetCF): observed CFs.
        expected (np.ndarray): expected CFs.
    Returns:
        float: n_q Σ obs_i log(exp_i / obs_i).
    """
    observed = row.cfs
    term = 0.0
    for obs, exp in zip(observed, expected):
        if obs <= 0:
            continue
        if exp < CF_EPSILON:
            warnings.warn(f"Expected CF {exp} of quartet {row.taxa} clamped \
                            to {CF_EPSILON}", NumericDegeneracyWarning)
            exp = CF_EPSILON
        term += obs * math.log(exp / obs)
    return row.weight * term

def log_pseudolikelihood(net : Network, table : QuartetTable) -> float:
    """
    Log pseudo-likelihood of the network given the observed CFs.

    Args:
        net (Network): the network.
        table (QuartetTable): observed CFs.
    Returns:
        float: the score (higher is better, 0 at best).
    """
    return sum(quartet_log_likelihood(row, expected_quartet_cfs(net, row.taxa))
               for row in table)

class PseudolikelihoodScorer:
    """
    Scores networks against one quartet CF table. The table's taxa are
    checked against the network's leaves once, on construction.
    """

    def __init__(self, table : QuartetTable, net : Network) -> None:
        """
        Args:
            table (QuartetTable): observed CFs.
            net (Network): a network over the same taxa.
        Raises:
            QuartetDataError: if the table names a taxon that is not a leaf
                              of the network.
        Returns:
            N/A
        """
        if len(table) == 0:
            raise QuartetDataError("The quartet table is empty")
        missing = table.taxa() - set(net.leaf_names())
        if missing:
            raise QuartetDataError(f"Taxa {sorted(missing)} are not leaves of \
                                    the network")
        self.table : QuartetTable = table
        self.evaluations : int = 0

    def expected_cfs(self, net : Network) -> dict[frozenset[str], np.ndarray]:
        """
        Returns:
            dict[frozenset[str], np.ndarray]: expected CFs of every observed
                                              quartet, in the row's taxa order.
        """
        return {row.key() : expected_quartet_cfs(net, row.taxa)
                for row in self.table}

    def score(self, net : Network) -> float:
        """
        Args:
            net (Network): the network to score.
        Returns:
            float: its log pseudo-likelihood.
        """
        self.evaluations += 1
        return log_pseudolikelihood(net, self.table)
