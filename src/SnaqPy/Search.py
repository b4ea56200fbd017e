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

Annealing-style search over network topologies. Each iteration proposes one
move, re-optimizes the continuous parameters of the new topology, and either
keeps the result or rolls the network's journal back.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import dataclasses
import math
import threading
import numpy as np

from .Network import Network, NetworkError
from .Move import Move, MoveType, make_move, IllegalMoveTargetError
from .QuartetData import QuartetTable
from .Pseudolikelihood import PseudolikelihoodScorer
from .Optimization import ContinuousOptimizer, ScipyOptimizer, \
                          optimize_network_parameters
from .InvariantUpdater import full_update
from .Settings import SearchSettings, ANNEAL_START_PROBABILITY, ANNEAL_DECAY
from .Logger import Logger

#############################
#### EXCEPTION SPECIFICS ####
#############################

class SearchError(Exception):
    """
    Raised when a search is configured with invalid settings or an invalid
    starting network.
    """
    def __init__(self, message : str = "Error during the network search") -> None:
        self.message = message
        super().__init__(self.message)

##########################
#### ANNEALING ###########
##########################

class AnnealingSchedule(ABC):
    """
    Decides how likely a worse proposal is to be kept.
    """

    @abstractmethod
    def acceptance_probability(self, iteration : int, delta : float) -> float:
        """
        Args:
            iteration (int): 0-based iteration number.
            delta (float): proposed score minus current score (negative, the
                           proposal is worse).
        Returns:
            float: probability in [0, 1] of accepting the proposal.
        """
        pass

class GeometricAcceptance(AnnealingSchedule):
    """
    p = p0 * rate ^ iteration, regardless of how much worse the proposal is.
    """

    def __init__(self, p0 : float = ANNEAL_START_PROBABILITY,
                 rate : float = ANNEAL_DECAY) -> None:
        self.p0 = p0
        self.rate = rate

    def acceptance_probability(self, iteration : int, delta : float) -> float:
        return self.p0 * pow(self.rate, iteration)

class ExponentialCooling(AnnealingSchedule):
    """
    Metropolis rule p = exp(delta / T) with temperature T = t0 * alpha ^
    iteration.
    """

    def __init__(self, t0 : float = 1.0, alpha : float = 0.95) -> None:
        self.t0 = t0
        self.alpha = alpha

    def acceptance_probability(self, iteration : int, delta : float) -> float:
        temperature = self.t0 * pow(self.alpha, iteration)
        if temperature <= 0:
            return 0.0
        return math.exp(min(0.0, delta) / temperature)

class NoAnnealing(AnnealingSchedule):
    """
    Plain hill climbing: worse proposals are never kept.
    """

    def acceptance_probability(self, iteration : int, delta : float) -> float:
        return 0.0

##########################
#### PROPOSALS ###########
##########################

class ProposalKernel(ABC):
    """
    Abstract class that defines proposal kernel behavior.

    In general, simply must have a generate method that spits out a move.
    """

    @abstractmethod
    def generate(self, exclude : set[MoveType] = frozenset()) -> Move | None:
        """
        *ABSTRACT METHOD*

        Generate the next move to apply to the network.

        Args:
            exclude (set[MoveType], optional): kinds of move that already
                                               failed this iteration.
        Returns:
            Move | None: a new Move, or None if every kind is excluded.
        """
        pass

class WeightedMoveKernel(ProposalKernel):
    """
    Draws the kind of move with fixed relative weights.
    """

    def __init__(self, weights : dict[str, float], rng : np.random.Generator,
                 max_hybrids : int, gamma : float) -> None:
        """
        Args:
            weights (dict[str, float]): MoveType name to relative weight.
            rng (np.random.Generator): Random stream.
            max_hybrids (int): passed to add-hybridization moves.
            gamma (float): initial γ of new hybrid edges.
        Raises:
            SearchError: on unknown move names or invalid weights.
        Returns:
            N/A
        """
        try:
            self.weights = {MoveType[name] : float(w)
                            for name, w in weights.items()}
        except KeyError as err:
            raise SearchError(f"Unknown move type {err}") from err
        if any(w < 0 for w in self.weights.values()) or \
           not any(w > 0 for w in self.weights.values()):
            raise SearchError("Move weights must be non-negative, and at \
                               least one must be positive")
        self.rng = rng
        self.max_hybrids = max_hybrids
        self.gamma = gamma

    def generate(self, exclude : set[MoveType] = frozenset()) -> Move | None:
        kinds = [k for k in MoveType
                 if self.weights.get(k, 0) > 0 and k not in exclude]
        if not kinds:
            return None
        w = np.array([self.weights[k] for k in kinds])
        choice = kinds[int(self.rng.choice(len(kinds), p = w / w.sum()))]
        return make_move(choice, self.max_hybrids, self.gamma)

##########################
#### SEARCH ##############
##########################

class SearchResult:
    """
    Best network found by one search run, with bookkeeping.
    """

    def __init__(self, network : Network, score : float, iterations : int,
                 accepted : int, rejected : int, invalid : int, illegal : int,
                 degraded : int, termination : str, summary : str) -> None:
        self.network : Network = network
        self.score : float = score
        self.iterations : int = iterations
        self.accepted : int = accepted
        self.rejected : int = rejected
        self.invalid : int = invalid
        self.illegal : int = illegal
        self.degraded : int = degraded
        self.termination : str = termination
        self.summary : str = summary

    def __repr__(self) -> str:
        return f"SearchResult(score={self.score}, iterations=\
{self.iterations}, termination={self.termination})"

class NetworkSearch:
    """
    Class that implements the network search. The starting network is edited
    in place; the best network seen is kept as an independent copy.
    """

    def __init__(self,
                 net : Network,
                 table : QuartetTable,
                 settings : SearchSettings = None,
                 optimizer : ContinuousOptimizer = None,
                 schedule : AnnealingSchedule = None,
                 kernel : ProposalKernel = None,
                 cancel_event : threading.Event = None,
                 logger : Logger = None) -> None:
        """
        Initialize a search.

        Args:
            net (Network): starting network, with valid markers.
            table (QuartetTable): observed concordance factors.
            settings (SearchSettings, optional): Defaults to SearchSettings().
            optimizer (ContinuousOptimizer, optional): Defaults to a
                                                       ScipyOptimizer capped
                                                       by the settings.
            schedule (AnnealingSchedule, optional): Defaults to
                                                    GeometricAcceptance().
            kernel (ProposalKernel, optional): Defaults to a
                                               WeightedMoveKernel using the
                                               settings' move weights.
            cancel_event (threading.Event, optional): set it to stop the
                                                      search after the
                                                      current iteration.
            logger (Logger, optional): Defaults to a new Logger.
        Raises:
            SearchError: on invalid settings or starting network.
            QuartetDataError: if the table names taxa absent from the network.
        Returns:
            N/A
        """
        self.settings = settings if settings is not None else SearchSettings()
        self._check_settings()

        report = full_update(net)
        if not report.valid:
            raise SearchError(f"Invalid starting network: {report.reason}")

        self.network : Network = net
        self.start : Network = net.duplicate()
        self.table : QuartetTable = table
        self.scorer = PseudolikelihoodScorer(table, net)
        self.rng = np.random.default_rng(self.settings.seed)
        self.optimizer = optimizer if optimizer is not None else \
            ScipyOptimizer(self.settings.optimizer_max_iter,
                           self.settings.optimizer_time_limit)
        self.schedule = schedule if schedule is not None else \
            GeometricAcceptance()
        self.kernel = kernel if kernel is not None else \
            WeightedMoveKernel(self.settings.move_weights, self.rng,
                               self.settings.max_hybrids,
                               self.settings.initial_gamma)
        self.cancel_event = cancel_event
        self.logger = logger if logger is not None else \
            Logger(keep_networks = self.settings.log_networks)
        self.accepted = self.rejected = self.invalid = self.illegal = 0

    def _check_settings(self) -> None:
        s = self.settings
        if s.max_iterations < 0:
            raise SearchError("max_iterations must be non-negative")
        if s.max_failures < 1:
            raise SearchError("max_failures must be positive")
        if s.max_hybrids < 0:
            raise SearchError("max_hybrids must be non-negative")
        if not 0 < s.initial_gamma < 1:
            raise SearchError("initial_gamma must lie strictly between 0 and 1")
        if s.score_tolerance < 0:
            raise SearchError("score_tolerance must be non-negative")

    def _propose(self) -> Move | None:
        """
        Draw moves until one applies. A kind of move with no valid target is
        excluded for the rest of the iteration.

        Raises:
            NetworkError: if the applied move was illegal (already rolled
                          back).
        Returns:
            Move | None: the applied (uncommitted) move, or None if no kind of
                         move has a valid target.
        """
        failed : set[MoveType] = set()
        while True:
            move = self.kernel.generate(failed)
            if move is None:
                return None
            try:
                move.execute(self.network, self.rng)
                return move
            except IllegalMoveTargetError:
                self.illegal += 1
                failed.add(move.move_type)

    def run(self) -> SearchResult:
        """
        Run the search until the iteration budget is spent, max_failures
        consecutive iterations fail to improve the best score by more than
        score_tolerance, or the cancel event is set.

        Args:
            N/A
        Returns:
            SearchResult: the best network seen and its score.
        """
        net = self.network
        s = self.settings
        log = self.logger

        log.write_line_to_summary("--------------------------")
        log.write_line_to_summary("----Begin Network Search--")

        self.accepted = self.rejected = self.invalid = self.illegal = 0
        degraded = 0

        outcome = optimize_network_parameters(net, self.scorer, self.optimizer)
        degraded += outcome.degraded
        current = outcome.score
        best = net.duplicate()
        best_score = current
        log.write_line_to_summary("START LOG PSEUDOLIKELIHOOD = "
                                  + str(current))
        log.log(net, "start")

        failures = 0
        iter_no = 0
        termination = "iterations"
        while iter_no < s.max_iterations:
            if self.cancel_event is not None and self.cancel_event.is_set():
                termination = "cancelled"
                break

            try:
                move = self._propose()
            except NetworkError as err:
                self.invalid += 1
                failures += 1
                log.write_line_to_summary("ITER #" + str(iter_no)
                                          + " INVALID MOVE: " + err.message)
                move = None
            else:
                if move is None:
                    failures += 1
                    log.write_line_to_summary("ITER #" + str(iter_no)
                                              + " NO LEGAL MOVE")

            if move is not None:
                outcome = optimize_network_parameters(net, self.scorer,
                                                      self.optimizer)
                degraded += outcome.degraded
                proposed = outcome.score
                delta = proposed - current

                accept = delta >= 0
                if not accept:
                    p = self.schedule.acceptance_probability(iter_no, delta)
                    accept = self.rng.random() < p

                if accept:
                    move.commit(net)
                    self.accepted += 1
                    current = proposed
                    if current > best_score + s.score_tolerance:
                        failures = 0
                    else:
                        failures += 1
                    if current > best_score:
                        best = net.duplicate()
                        best_score = current
                    log.log(net, "ITER #" + str(iter_no) + " "
                            + move.move_type.name)
                else:
                    move.undo(net)
                    self.rejected += 1
                    failures += 1

                log.write_line_to_summary("ITER #" + str(iter_no) + " "
                                          + move.move_type.name
                                          + (" ACCEPTED" if accept
                                             else " REJECTED")
                                          + " LOG PSEUDOLIKELIHOOD = "
                                          + str(current))

            iter_no += 1
            if failures >= s.max_failures:
                termination = "converged"
                break

        log.write_line_to_summary("BEST LOG PSEUDOLIKELIHOOD = "
                                  + str(best_score))
        log.write_line_to_summary("DONE. TERMINATED BY " + termination.upper())
        log.write_line_to_summary("--------------------------")

        return SearchResult(best, best_score, iter_no, self.accepted,
                            self.rejected, self.invalid, self.illegal,
                            degraded, termination, log.summary_str)

    def run_many(self, count : int) -> list[SearchResult]:
        """
        Independent restarts from the starting network. Each run gets its own
        copy of the network and its own random stream spawned from the
        settings' seed.

        Args:
            count (int): the number of runs.
        Returns:
            list[SearchResult]: one result per run, best score first.
        """
        if count < 1:
            raise SearchError("run_many needs a positive number of runs")

        streams = np.random.SeedSequence(self.settings.seed).spawn(count)
        results = []
        for index, stream in enumerate(streams):
            settings = dataclasses.replace(
                self.settings, seed = int(stream.generate_state(1)[0]),
                move_weights = dict(self.settings.move_weights))
            run = NetworkSearch(self.start.duplicate(), self.table, settings,
                                self.optimizer, self.schedule,
                                cancel_event = self.cancel_event,
                                logger = Logger(index, settings.log_networks))
            results.append(run.run())

        results.sort(key = lambda r: r.score, reverse = True)
        scores = [r.score for r in results]
        self.logger.write_line_to_summary("===============================")
        self.logger.write_line_to_summary("Search ran " + str(count)
                                          + " times...")
        self.logger.write_line_to_summary("Mean score: "
                                          + str(float(np.mean(scores))))
        self.logger.write_line_to_summary("Maximum score: " + str(scores[0]))
        self.logger.write_line_to_summary("Minimum score: " + str(scores[-1]))
        return results
