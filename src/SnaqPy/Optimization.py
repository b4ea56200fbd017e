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

Continuous parameters of a fixed topology. The network owns the mapping
between its identifiable branch lengths / minor γ values and a flat parameter
vector; a ContinuousOptimizer only ever sees the vector, the objective and the
bounds.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import time
from typing import Any, Callable
import warnings
import numpy as np
from scipy.optimize import minimize

from .Network import Network
from .Pseudolikelihood import PseudolikelihoodScorer
from .Settings import MIN_BRANCH_LENGTH, MAX_BRANCH_LENGTH, MIN_GAMMA, \
                      MAX_GAMMA, INITIAL_BRANCH_LENGTH, OPTIMIZER_MAX_ITER, \
                      OPTIMIZER_TIME_LIMIT

#############################
#### EXCEPTION SPECIFICS ####
#############################

class OptimizerFailureError(Exception):
    """
    Raised by a ContinuousOptimizer that did not converge within its budget.
    """
    def __init__(self, message : str = "The optimizer did not converge") -> None:
        self.message = message
        super().__init__(self.message)

class OptimizerFailureWarning(UserWarning):
    """
    Issued when optimization failed and the previous parameter values were
    kept instead.
    """
    pass

class _BudgetExceeded(Exception):
    pass

LENGTH = "length"
GAMMA = "gamma"

##########################
#### PARAMETER MAP #######
##########################

class ParameterMap:
    """
    Flat view of the free continuous parameters of a network: the length of
    every identifiable edge, then the γ of every hybrid's minor edge. Entries
    are fixed to edge ids when the map is built.
    """

    def __init__(self, net : Network) -> None:
        """
        Args:
            net (Network): network with up to date identifiability markers.
        Returns:
            N/A
        """
        self.net : Network = net
        self.entries : list[tuple[str, int]] = []
        for edge in net.sorted_edges():
            if edge.identifiable:
                self.entries.append((LENGTH, edge.number))
        for h in sorted(net.hybrids):
            minor = net.minor_hybrid_edge(net.nodes[h])
            self.entries.append((GAMMA, minor.number))

    def __len__(self) -> int:
        return len(self.entries)

    def bounds(self) -> list[tuple[float, float]]:
        """
        Returns:
            list[tuple[float, float]]: (low, high) for each entry.
        """
        return [(MIN_BRANCH_LENGTH, MAX_BRANCH_LENGTH) if kind == LENGTH
                else (MIN_GAMMA, MAX_GAMMA) for kind, _ in self.entries]

    def current(self) -> list[float | None]:
        """
        Returns:
            list[float | None]: the raw stored values (lengths may be None).
        """
        return [getattr(self.net.edges[e], kind) for kind, e in self.entries]

    def initial(self) -> np.ndarray:
        """
        Returns:
            np.ndarray: a starting vector inside the bounds, missing lengths
                        replaced by INITIAL_BRANCH_LENGTH.
        """
        raw = [INITIAL_BRANCH_LENGTH if v is None else v
               for v in self.current()]
        low, high = zip(*self.bounds()) if self.entries else ((), ())
        return np.clip(np.asarray(raw, dtype = float), low, high)

    def apply(self, x : np.ndarray) -> None:
        """
        Write a parameter vector into the network through its journaled
        setters. Values are clipped to the bounds first.

        Args:
            x (np.ndarray): one value per entry.
        Returns:
            N/A
        """
        for (kind, e), value, (low, high) in zip(self.entries, x,
                                                 self.bounds()):
            value = min(max(float(value), low), high)
            if kind == LENGTH:
                self.net.set_length(self.net.edges[e], value)
            else:
                self.net.set_gamma(self.net.edges[e], value)

    def saved_state(self) -> dict[int, dict[str, Any]]:
        """
        Every edge attribute that apply() may write, by edge id. γ entries
        also cover the partner edge and both major flags.

        Returns:
            dict[int, dict[str, Any]]: edge id to {attribute : value}.
        """
        state : dict[int, dict[str, Any]] = {}
        for kind, e in self.entries:
            edge = self.net.edges[e]
            if kind == LENGTH:
                state.setdefault(e, {})[LENGTH] = edge.length
                continue
            for other in (edge, self.net.hybrid_partner(edge)):
                values = state.setdefault(other.number, {})
                values[GAMMA] = other.gamma
                values["is_major"] = other.is_major
        return state

    def restore(self, state : dict[int, dict[str, Any]]) -> None:
        """
        Put back exactly the values obtained from saved_state().
        """
        for e, values in state.items():
            for attr, value in values.items():
                self.net.set_attr(self.net.edges[e], attr, value)

def pseudolik_objective(net : Network, scorer : PseudolikelihoodScorer,
                        pmap : ParameterMap) -> Callable[[np.ndarray], float]:
    """
    The function handed to a continuous optimizer: parameter vector to
    negative log pseudo-likelihood.

    Args:
        net (Network): the network, whose topology stays fixed.
        scorer (PseudolikelihoodScorer): the scorer.
        pmap (ParameterMap): the parameter mapping for 'net'.
    Returns:
        Callable[[np.ndarray], float]: the objective, to be minimized.
    """
    def objective(x : np.ndarray) -> float:
        pmap.apply(x)
        return -scorer.score(net)
    return objective

##########################
#### OPTIMIZERS ##########
##########################

class OptimizerResult:
    """
    What an optimizer hands back: the best vector and its objective value.
    """

    def __init__(self, x : np.ndarray, fun : float, evaluations : int = 0,
                 message : str = "") -> None:
        self.x : np.ndarray = x
        self.fun : float = fun
        self.evaluations : int = evaluations
        self.message : str = message

class ContinuousOptimizer(ABC):
    """
    Interface of the external continuous optimizer: minimize an objective
    over a box. Implementations must bound their own work, and raise
    OptimizerFailureError when they cannot produce a usable vector.
    """

    @abstractmethod
    def minimize(self, objective : Callable[[np.ndarray], float],
                 x0 : np.ndarray,
                 bounds : list[tuple[float, float]]) -> OptimizerResult:
        """
        Args:
            objective (Callable[[np.ndarray], float]): function to minimize.
            x0 (np.ndarray): starting vector.
            bounds (list[tuple[float, float]]): box constraints.
        Raises:
            OptimizerFailureError: on failure to converge within budget.
        Returns:
            OptimizerResult: the optimum found.
        """
        pass

class ScipyOptimizer(ContinuousOptimizer):
    """
    Box constrained quasi-Newton optimization through scipy.optimize.minimize
    (L-BFGS-B by default), capped both in iterations and in wall time.
    """

    def __init__(self, max_iter : int = OPTIMIZER_MAX_ITER,
                 time_limit : float = OPTIMIZER_TIME_LIMIT,
                 method : str = "L-BFGS-B") -> None:
        """
        Args:
            max_iter (int, optional): iteration cap passed to scipy.
            time_limit (float, optional): wall time cap, in seconds.
            method (str, optional): any bounded scipy method.
        Returns:
            N/A
        """
        self.max_iter = max_iter
        self.time_limit = time_limit
        self.method = method

    def minimize(self, objective : Callable[[np.ndarray], float],
                 x0 : np.ndarray,
                 bounds : list[tuple[float, float]]) -> OptimizerResult:
        start = time.monotonic()
        evaluations = 0

        def timed(x : np.ndarray) -> float:
            nonlocal evaluations
            if time.monotonic() - start > self.time_limit:
                raise _BudgetExceeded()
            evaluations += 1
            return objective(x)

        try:
            result = minimize(timed, x0, method = self.method,
                              bounds = bounds,
                              options = {"maxiter" : self.max_iter})
        except _BudgetExceeded as err:
            raise OptimizerFailureError(f"Time limit of {self.time_limit}s \
                                          exceeded after {evaluations} \
                                          evaluations") from err

        if not result.success or not np.isfinite(result.fun):
            raise OptimizerFailureError(f"Optimizer stopped without \
                                          converging: {result.message}")
        return OptimizerResult(np.asarray(result.x), float(result.fun),
                               evaluations, str(result.message))

class OptimizationOutcome:
    """
    Score of a network after parameter optimization. 'degraded' is raised
    when the optimizer failed and the pre-optimization values were kept.
    """

    def __init__(self, score : float, degraded : bool = False,
                 message : str = "") -> None:
        self.score : float = score
        self.degraded : bool = degraded
        self.message : str = message

    def __repr__(self) -> str:
        flag = ", degraded" if self.degraded else ""
        return f"OptimizationOutcome({self.score}{flag})"

def optimize_network_parameters(net : Network,
                                scorer : PseudolikelihoodScorer,
                                optimizer : ContinuousOptimizer) \
                                -> OptimizationOutcome:
    """
    Optimize the continuous parameters of 'net' in place and score it.

    If the optimizer fails, every parameter is put back to its value from
    before the call, the network is scored as is, and the outcome is flagged
    as degraded.

    Trial vectors are written with the journal paused, so an open move
    scope only records the change from the old values to the final ones.

    Args:
        net (Network): the network.
        scorer (PseudolikelihoodScorer): the scorer.
        optimizer (ContinuousOptimizer): the optimizer.
    Returns:
        OptimizationOutcome: the final score and quality flag.
    """
    pmap = ParameterMap(net)
    if len(pmap) == 0:
        return OptimizationOutcome(scorer.score(net))

    saved = pmap.saved_state()
    objective = pseudolik_objective(net, scorer, pmap)
    failure = None
    # trial vectors stay out of the journal, only the final one is recorded
    with net.journal.paused():
        try:
            result = optimizer.minimize(objective, pmap.initial(),
                                        pmap.bounds())
        except OptimizerFailureError as err:
            failure = err
        finally:
            pmap.restore(saved)

    if failure is not None:
        warnings.warn(f"{failure.message}. Keeping the previous parameter \
                        values.", OptimizerFailureWarning)
        return OptimizationOutcome(scorer.score(net), True, failure.message)

    pmap.apply(result.x)
    return OptimizationOutcome(scorer.score(net), False, result.message)
