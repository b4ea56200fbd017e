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

Tolerances, bounds and default values shared by the network engine, plus the
SearchSettings container that configures a single network search.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Any

## --- network invariants ---
GAMMA_TOLERANCE = 1e-6
NO_CYCLE = -1

## --- moves ---
DEFAULT_MAX_HYBRIDS = 1
INITIAL_GAMMA = 0.5
INITIAL_HYBRID_LENGTH = 0.1

## --- pseudo-likelihood ---
CF_EPSILON = 1e-8

## --- continuous parameters ---
MIN_BRANCH_LENGTH = 0.0
INITIAL_BRANCH_LENGTH = 1.0
MAX_BRANCH_LENGTH = 10.0
MIN_GAMMA = 1e-4
MAX_GAMMA = 1 - 1e-4

## --- optimizer ---
OPTIMIZER_MAX_ITER = 200
OPTIMIZER_TIME_LIMIT = 30.0

## --- search ---
MAX_ITERATIONS = 500
MAX_FAILURES = 100
SCORE_TOLERANCE = 1e-5

## Default acceptance schedule: p = .188 * .97 ^ iteration
ANNEAL_START_PROBABILITY = 0.188
ANNEAL_DECAY = 0.97

## Relative frequencies for the move proposal kernel, keyed by MoveType name
MOVE_WEIGHTS = {
    "ADD_HYBRID" : 0.2,
    "DELETE_HYBRID" : 0.1,
    "NNI" : 0.4,
    "MOVE_ORIGIN" : 0.15,
    "MOVE_TARGET" : 0.15
}


@dataclass
class SearchSettings:
    """
    Everything that tunes one run of the network search. Defaults come from
    the module level constants above.
    """

    max_iterations : int = MAX_ITERATIONS
    max_failures : int = MAX_FAILURES
    score_tolerance : float = SCORE_TOLERANCE
    max_hybrids : int = DEFAULT_MAX_HYBRIDS
    initial_gamma : float = INITIAL_GAMMA
    optimizer_max_iter : int = OPTIMIZER_MAX_ITER
    optimizer_time_limit : float = OPTIMIZER_TIME_LIMIT
    move_weights : dict[str, float] = field(
        default_factory = lambda: dict(MOVE_WEIGHTS))
    seed : int | None = None
    log_networks : bool = False

    @classmethod
    def from_dict(cls, options : dict[str, Any]) -> SearchSettings:
        """
        Build settings from a plain mapping, such as one loaded from a json or
        toml configuration file. Unknown keys are rejected.

        Args:
            options (dict[str, Any]): setting name to value.
        Raises:
            KeyError: if a key does not name a setting.
        Returns:
            SearchSettings: the populated settings.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(options.keys()) - known
        if unknown:
            raise KeyError(f"Unknown search settings: {sorted(unknown)}")
        return cls(**options)
