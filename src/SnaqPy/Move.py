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

Tagged move variants. Each Move wraps one operator from NetworkMoves in the
network's undo journal, so that a proposal can be kept (commit) or reverted
exactly (undo).
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
import numpy as np

from .Network import Network
from .NetworkMoves import MoveError, IllegalMoveTargetError, \
                          add_hybridization, delete_hybridization, nni, \
                          move_origin, move_target
from .Settings import DEFAULT_MAX_HYBRIDS, INITIAL_GAMMA

__all__ = ["MoveType", "Move", "AddHybridMove", "DeleteHybridMove", "NNIMove",
           "MoveOriginMove", "MoveTargetMove", "make_move", "MoveError",
           "IllegalMoveTargetError"]


class MoveType(Enum):
    ADD_HYBRID = "add_hybrid"
    DELETE_HYBRID = "delete_hybrid"
    NNI = "nni"
    MOVE_ORIGIN = "move_origin"
    MOVE_TARGET = "move_target"


class Move(ABC):
    """
    Abstract superclass for all topology moves.

    execute() opens a journal scope on the network and applies the edit. The
    scope stays open until the caller decides: commit() keeps the edit,
    undo() replays the journal backwards. If the edit itself fails, execute()
    rolls back before re-raising, so a failed move is never observable.
    """

    move_type : MoveType = None

    def __init__(self) -> None:
        self.network : Network = None

    def execute(self, net : Network, rng : np.random.Generator) -> None:
        """
        Apply the move to 'net' in place.

        Args:
            net (Network): The network to edit.
            rng (np.random.Generator): Random stream for target selection.
        Raises:
            IllegalMoveTargetError: No valid target; the network is unchanged.
            InvalidTopologyError: The edit was illegal and has been reverted.
        Returns:
            N/A
        """
        net.journal.begin()
        try:
            self.apply(net, rng)
        except Exception:
            net.journal.rollback()
            raise
        self.network = net

    def commit(self, net : Network = None) -> None:
        """
        Keep the edit made by the last execute().
        """
        net = net if net is not None else self.network
        net.journal.commit()
        self.network = None

    def undo(self, net : Network = None) -> None:
        """
        Revert the edit made by the last execute(), exactly.
        """
        net = net if net is not None else self.network
        net.journal.rollback()
        self.network = None

    @abstractmethod
    def apply(self, net : Network, rng : np.random.Generator) -> None:
        """
        The edit itself. Called with the journal open.
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class AddHybridMove(Move):
    move_type = MoveType.ADD_HYBRID

    def __init__(self, max_hybrids : int = DEFAULT_MAX_HYBRIDS,
                 gamma : float = INITIAL_GAMMA, origin : int = None,
                 target : int = None) -> None:
        """
        Args:
            max_hybrids (int, optional): Largest allowed number of hybrids.
            gamma (float, optional): Inheritance probability of the new edge.
            origin (int, optional): Id of the origin edge. Defaults to random.
            target (int, optional): Id of the target edge. Defaults to random.
        Returns:
            N/A
        """
        super().__init__()
        self.max_hybrids = max_hybrids
        self.gamma = gamma
        self.origin = origin
        self.target = target
        self.hybrid : int = None

    def apply(self, net : Network, rng : np.random.Generator) -> None:
        origin = None if self.origin is None else net.edges[self.origin]
        target = None if self.target is None else net.edges[self.target]
        self.hybrid = add_hybridization(net, rng, self.max_hybrids,
                                        self.gamma, origin, target).number


class DeleteHybridMove(Move):
    move_type = MoveType.DELETE_HYBRID

    def __init__(self, hybrid : int = None, remove_minor : bool = True) -> None:
        super().__init__()
        self.hybrid = hybrid
        self.remove_minor = remove_minor

    def apply(self, net : Network, rng : np.random.Generator) -> None:
        hybrid = None if self.hybrid is None else net.nodes[self.hybrid]
        delete_hybridization(net, rng, hybrid, self.remove_minor)


class NNIMove(Move):
    move_type = MoveType.NNI

    def __init__(self, edge : int = None) -> None:
        super().__init__()
        self.edge = edge

    def apply(self, net : Network, rng : np.random.Generator) -> None:
        edge = None if self.edge is None else net.edges[self.edge]
        nni(net, rng, edge)


class MoveOriginMove(Move):
    move_type = MoveType.MOVE_ORIGIN

    def __init__(self, hybrid : int = None, target : int = None) -> None:
        super().__init__()
        self.hybrid = hybrid
        self.target = target

    def apply(self, net : Network, rng : np.random.Generator) -> None:
        hybrid = None if self.hybrid is None else net.nodes[self.hybrid]
        target = None if self.target is None else net.edges[self.target]
        move_origin(net, rng, hybrid, target)


class MoveTargetMove(Move):
    move_type = MoveType.MOVE_TARGET

    def __init__(self, hybrid : int = None, target : int = None) -> None:
        super().__init__()
        self.hybrid = hybrid
        self.target = target

    def apply(self, net : Network, rng : np.random.Generator) -> None:
        hybrid = None if self.hybrid is None else net.nodes[self.hybrid]
        target = None if self.target is None else net.edges[self.target]
        move_target(net, rng, hybrid, target)


def make_move(move_type : MoveType, max_hybrids : int = DEFAULT_MAX_HYBRIDS,
              gamma : float = INITIAL_GAMMA) -> Move:
    """
    Build a randomly targeted move of the given kind.

    Args:
        move_type (MoveType): The kind of move.
        max_hybrids (int, optional): Used by ADD_HYBRID.
        gamma (float, optional): Used by ADD_HYBRID.
    Returns:
        Move: a fresh move object.
    """
    if move_type == MoveType.ADD_HYBRID:
        return AddHybridMove(max_hybrids, gamma)
    elif move_type == MoveType.DELETE_HYBRID:
        return DeleteHybridMove()
    elif move_type == MoveType.NNI:
        return NNIMove()
    elif move_type == MoveType.MOVE_ORIGIN:
        return MoveOriginMove()
    elif move_type == MoveType.MOVE_TARGET:
        return MoveTargetMove()
    raise MoveError(f"Unknown move type {move_type}")
