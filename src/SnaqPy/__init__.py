#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- SnaqPy --
##  Library for Phylogenetic Network Search from Quartet Concordance Factors
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##############################################################################

"""
SnaqPy - Phylogenetic network search from quartet concordance factors

A level-1 network topology engine: a journaled network model, incremental
marker maintenance, reversible topology moves, a quartet pseudo-likelihood
and an annealing-style search.
"""

# Core data structures
from .Network import Network, Node, Edge, NetworkError, InvalidTopologyError
from .UndoLog import UndoLog, UndoLogError

# Invariants
from .InvariantUpdater import (
    UpdateReport,
    derive_markers,
    full_update,
    update,
    clear_cycle,
    check_network,
)

# Moves
from .NetworkMoves import (
    add_hybridization,
    delete_hybridization,
    nni,
    move_origin,
    move_target,
)
from .Move import (
    MoveType,
    Move,
    AddHybridMove,
    DeleteHybridMove,
    NNIMove,
    MoveOriginMove,
    MoveTargetMove,
    make_move,
    MoveError,
    IllegalMoveTargetError,
)

# Data and scoring
from .QuartetData import (
    QuartetCF,
    QuartetTable,
    QuartetDataError,
    read_table_cf,
    read_gene_trees,
    table_from_gene_trees,
)
from .Pseudolikelihood import (
    PseudolikelihoodScorer,
    NumericDegeneracyWarning,
    expected_quartet_cfs,
    log_pseudolikelihood,
)
from .Optimization import (
    ParameterMap,
    ContinuousOptimizer,
    ScipyOptimizer,
    OptimizerFailureError,
    OptimizerFailureWarning,
    pseudolik_objective,
    optimize_network_parameters,
)

# Search
from .Search import (
    NetworkSearch,
    SearchResult,
    SearchError,
    AnnealingSchedule,
    GeometricAcceptance,
    ExponentialCooling,
    NoAnnealing,
    ProposalKernel,
    WeightedMoveKernel,
)
from .Settings import SearchSettings
from .Logger import Logger
from .GraphUtils import is_isomorphic

__version__ = "1.0.0"
