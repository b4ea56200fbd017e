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
Module that keeps the trace of a network search: a running text summary, and
optionally a snapshot of the network (as a networkx graph) each time it
changes, with a comment giving the program state.

Release Version: 1.0.0
"""

from __future__ import annotations
from networkx import MultiDiGraph

from .Network import Network


class Logger:
    """
    Collects summary lines and network snapshots for one search run.
    """

    def __init__(self, id : int = 0, keep_networks : bool = False) -> None:
        """
        Initialize a logger instance with an integer ID value (on user to make
        it unique).

        Args:
            id (int, optional): An id for this logger instance. Defaults to 0.
            keep_networks (bool, optional): If True, log() stores a networkx
                                            copy of every network passed in.
        Returns:
            N/A
        """
        self.id : int = id
        self.keep_networks : bool = keep_networks
        self.summary_lines : list[str] = []
        self.networkx_objs : list[MultiDiGraph] = []
        self.newicks : list[str] = []
        self.comments : list[str] = []

    def write_line_to_summary(self, line : str) -> None:
        """
        Append a line of text to the run summary.

        Args:
            line (str): the line, without a trailing newline.
        Returns:
            N/A
        """
        self.summary_lines.append(line)

    @property
    def summary_str(self) -> str:
        return "\n".join(self.summary_lines) + "\n"

    def log(self, net : Network, comment : str = "") -> None:
        """
        Log a network, and optionally attach a comment to it (such as iteration
        number, a network move that was applied to it, etc.)

        Args:
            net (Network): A Network
            comment (str, optional): An optional comment that
                                     assists to give program state context for
                                     the given Network. Defaults to "".
        Returns:
            N/A
        """
        if not self.keep_networks:
            return
        self.networkx_objs.append(net.to_networkx())
        self.newicks.append(net.newick())
        self.comments.append(comment)

    def write(self, path : str) -> None:
        """
        Write the summary, followed by every logged network in extended
        Newick form with its comment, to a text file.

        Args:
            path (str): destination file.
        Returns:
            N/A
        """
        with open(path, "w") as handle:
            handle.write(self.summary_str)
            for newick, comment in zip(self.newicks, self.comments):
                handle.write(f"# {comment}\n{newick}\n")
