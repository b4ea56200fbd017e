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

Journal of the writes made to a Network while a move is in flight. Replaying
the journal backwards restores the network exactly, so speculative moves cost
time proportional to the size of the edit instead of a full network copy.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Iterator, TYPE_CHECKING

if TYPE_CHECKING:
    from .Network import Network

NODE = "node"
EDGE = "edge"
NETWORK = "network"

# Pseudo attributes that journal the creation and deletion of an entity.
CREATED = "__created__"
DELETED = "__deleted__"


class UndoLogError(Exception):
    """
    Raised when the journal is used out of order, ie a scope is opened while
    another one is in flight, or closed when none is open.
    """
    def __init__(self, message : str = "Undo log used out of order") -> None:
        self.message = message
        super().__init__(self.message)


class UndoLog:
    """
    A single-scope journal of (kind, entity id, attribute, previous value)
    records.

    Between begin() and commit()/rollback(), every attribute write and every
    node/edge creation or deletion performed on the owning network is
    appended here. Outside of a scope, writes are simply applied.
    """

    def __init__(self, network : Network) -> None:
        """
        Args:
            network (Network): The network whose writes are journaled.
        Returns:
            N/A
        """
        self.network : Network = network
        self._record : list[tuple[str, Any, str, Any]] | None = None

    @property
    def in_flight(self) -> bool:
        """
        Returns:
            bool: True if a recording scope is currently open.
        """
        return self._record is not None

    def __len__(self) -> int:
        return 0 if self._record is None else len(self._record)

    def begin(self) -> None:
        """
        Open a new recording scope.

        Raises:
            UndoLogError: If a scope is already open. Scopes do not nest.
        Returns:
            N/A
        """
        if self._record is not None:
            raise UndoLogError("A move is already in flight. Commit or roll \
                                back before starting another one.")
        self._record = []

    def record(self, kind : str, ident : Any, attr : str, old : Any) -> None:
        """
        Append one write to the open scope. No-op when no scope is open.

        Args:
            kind (str): NODE, EDGE or NETWORK.
            ident (Any): Entity id (None for network attributes).
            attr (str): Attribute name, or CREATED / DELETED.
            old (Any): The value before the write. For DELETED, the deleted
                       entity itself.
        Returns:
            N/A
        """
        if self._record is not None:
            self._record.append((kind, ident, attr, old))

    @contextmanager
    def paused(self) -> Iterator[None]:
        """
        Suspend recording for the duration of a with block. The open scope,
        if any, resumes afterwards. Writes made inside the block are not
        journaled, so the caller must put back what it changed before the
        block ends.

        Returns:
            Iterator[None]: context manager.
        """
        outer = self._record
        self._record = None
        try:
            yield
        finally:
            self._record = outer

    def commit(self) -> None:
        """
        Discard the record and close the scope; the edits become permanent.

        Raises:
            UndoLogError: If no scope is open.
        Returns:
            N/A
        """
        if self._record is None:
            raise UndoLogError("Commit called with no move in flight.")
        self._record = None

    def rollback(self) -> None:
        """
        Replay the record in reverse, restoring every touched attribute and
        entity to its value at begin(), then close the scope.

        Raises:
            UndoLogError: If no scope is open.
        Returns:
            N/A
        """
        if self._record is None:
            raise UndoLogError("Rollback called with no move in flight.")

        record = self._record
        # Close first so that the restoring writes are not journaled
        self._record = None
        net = self.network

        for kind, ident, attr, old in reversed(record):
            if kind == NETWORK:
                setattr(net, attr, old)
                continue

            arena = net.nodes if kind == NODE else net.edges
            if attr == CREATED:
                del arena[ident]
            elif attr == DELETED:
                arena[ident] = old
            else:
                setattr(arena[ident], attr, old)
