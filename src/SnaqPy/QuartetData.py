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

Observed quartet concordance factors (CFs). For four taxa (t1, t2, t3, t4) the
three CFs are, in order, the proportions of gene trees displaying the splits
t1t2|t3t4, t1t3|t2t4 and t1t4|t2t3.

Tables can be built in memory, read from a CSV file that uses the column names
t1,t2,t3,t4,CF12_34,CF13_24,CF14_23[,ngenes], or computed from a collection of
gene trees read with Biopython.
"""

from __future__ import annotations
import csv
from itertools import combinations
from typing import Iterable, Iterator, Any
import numpy as np
from Bio import Phylo

from .GraphUtils import quartet_split

#############################
#### EXCEPTION SPECIFICS ####
#############################

class QuartetDataError(Exception):
    """
    Raised for malformed concordance factor input. Always fatal.
    """
    def __init__(self, message : str = "Malformed quartet data") -> None:
        self.message = message
        super().__init__(self.message)

CF_COLUMNS = ("CF12_34", "CF13_24", "CF14_23")
TAXA_COLUMNS = ("t1", "t2", "t3", "t4")

##########################
#### QUARTET ROWS ########
##########################

class QuartetCF:
    """
    The observed CFs of one 4-taxon set.
    """

    def __init__(self, taxa : Iterable[str], cfs : Iterable[float],
                 ngenes : float = None) -> None:
        """
        Args:
            taxa (Iterable[str]): Four distinct taxon names.
            cfs (Iterable[float]): The three split proportions, in
                                   t1t2|t3t4, t1t3|t2t4, t1t4|t2t3 order.
                                   Rescaled to sum to 1.
            ngenes (float, optional): Number of genes informing the quartet.
                                      Defaults to None (weight 1).
        Raises:
            QuartetDataError: on repeated taxa, negative proportions or
                              proportions that do not sum to a positive value.
        Returns:
            N/A
        """
        self.taxa : tuple[str, ...] = tuple(str(t) for t in taxa)
        if len(self.taxa) != 4 or len(set(self.taxa)) != 4:
            raise QuartetDataError(f"A quartet needs four distinct taxa, got \
                                    {self.taxa}")

        values = np.asarray(list(cfs), dtype = float)
        if values.shape != (3,) or not np.all(np.isfinite(values)):
            raise QuartetDataError(f"Quartet {self.taxa} needs three finite \
                                    CF values")
        if np.any(values < 0):
            raise QuartetDataError(f"Quartet {self.taxa} has a negative CF")
        total = values.sum()
        if total <= 0:
            raise QuartetDataError(f"CFs of quartet {self.taxa} do not sum to \
                                    a positive value")
        self.cfs : np.ndarray = values / total

        if ngenes is not None:
            ngenes = float(ngenes)
            if ngenes < 0:
                raise QuartetDataError(f"Quartet {self.taxa} has a negative \
                                        gene count")
        self.ngenes : float = ngenes

    @property
    def weight(self) -> float:
        """
        Returns:
            float: the number of genes, or 1 if unknown.
        """
        return 1.0 if self.ngenes is None else self.ngenes

    def key(self) -> frozenset[str]:
        return frozenset(self.taxa)

    def relabeled(self, mapping : dict[str, str]) -> QuartetCF:
        """
        Copy of this row with every taxon renamed through 'mapping'.
        """
        return QuartetCF([mapping.get(t, t) for t in self.taxa], self.cfs,
                         self.ngenes)

    def __repr__(self) -> str:
        return f"QuartetCF({self.taxa}, {np.round(self.cfs, 4).tolist()}, \
ngenes={self.ngenes})"

class QuartetTable:
    """
    A collection of QuartetCF rows, at most one per 4-taxon set.
    """

    def __init__(self, rows : Iterable[QuartetCF] = ()) -> None:
        self.rows : list[QuartetCF] = []
        self._keys : set[frozenset[str]] = set()
        for row in rows:
            self.add(row)

    def add(self, row : QuartetCF) -> None:
        """
        Args:
            row (QuartetCF): a new row.
        Raises:
            QuartetDataError: if the table already holds the same taxon set.
        Returns:
            N/A
        """
        key = row.key()
        if key in self._keys:
            raise QuartetDataError(f"Quartet {sorted(key)} appears twice")
        self._keys.add(key)
        self.rows.append(row)

    @classmethod
    def from_rows(cls, rows : Iterable[tuple]) -> QuartetTable:
        """
        Build a table from (t1, t2, t3, t4, CF12_34, CF13_24, CF14_23[,
        ngenes]) tuples.

        Args:
            rows (Iterable[tuple]): quartet rows.
        Raises:
            QuartetDataError: on a row of the wrong size.
        Returns:
            QuartetTable: the table.
        """
        table = cls()
        for row in rows:
            row = tuple(row)
            if len(row) not in (7, 8):
                raise QuartetDataError(f"Row {row} should have 7 or 8 fields")
            ngenes = row[7] if len(row) == 8 else None
            table.add(QuartetCF(row[:4], row[4:7], ngenes))
        return table

    def taxa(self) -> set[str]:
        """
        Returns:
            set[str]: every taxon named by some row.
        """
        names = set()
        for row in self.rows:
            names.update(row.taxa)
        return names

    def relabeled(self, mapping : dict[str, str]) -> QuartetTable:
        return QuartetTable(row.relabeled(mapping) for row in self.rows)

    def __iter__(self) -> Iterator[QuartetCF]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

##########################
#### READERS #############
##########################

def read_table_cf(path : str) -> QuartetTable:
    """
    Read a CSV table of concordance factors with a header line naming the
    columns t1, t2, t3, t4, CF12_34, CF13_24, CF14_23 and, optionally, ngenes.
    Extra columns are ignored.

    Args:
        path (str): path to the CSV file.
    Raises:
        QuartetDataError: if a required column is missing or a value cannot be
                          read as a number.
    Returns:
        QuartetTable: the table.
    """
    table = QuartetTable()
    with open(path, newline = "") as handle:
        reader = csv.DictReader(handle)
        header = reader.fieldnames or []
        missing = [c for c in TAXA_COLUMNS + CF_COLUMNS if c not in header]
        if missing:
            raise QuartetDataError(f"{path} is missing column(s) {missing}")

        for line_no, line in enumerate(reader, start = 2):
            try:
                cfs = [float(line[c]) for c in CF_COLUMNS]
                ngenes = line.get("ngenes")
                ngenes = float(ngenes) if ngenes not in (None, "") else None
            except ValueError as err:
                raise QuartetDataError(f"{path}, line {line_no}: {err}") \
                    from err
            table.add(QuartetCF([line[c] for c in TAXA_COLUMNS], cfs, ngenes))
    return table

def read_gene_trees(path : str, fmt : str = "newick") -> list[Any]:
    """
    Read every gene tree in a file.

    Args:
        path (str): path to the tree file.
        fmt (str, optional): any format understood by Bio.Phylo. Defaults to
                             "newick".
    Returns:
        list[Any]: Biopython tree objects.
    """
    return list(Phylo.parse(path, fmt))

def table_from_gene_trees(trees : Iterable[Any],
                          taxa : Iterable[str] = None) -> QuartetTable:
    """
    Observed concordance factors from gene trees: for each 4-taxon set, the
    proportion of gene trees (containing the four taxa and resolving them)
    that display each of the three splits.

    Args:
        trees (Iterable[Any]): Biopython trees.
        taxa (Iterable[str], optional): Taxa to tabulate. Defaults to every
                                        leaf name found in the trees.
    Raises:
        QuartetDataError: if fewer than four taxa are available.
    Returns:
        QuartetTable: one row per 4-taxon set informed by at least one tree.
                      ngenes holds the number of informative trees.
    """
    clusters : list[tuple[set[str], list[frozenset[str]]]] = []
    for tree in trees:
        leaves = {t.name for t in tree.get_terminals()}
        sets = [frozenset(t.name for t in clade.get_terminals())
                for clade in tree.find_clades()]
        clusters.append((leaves, sets))

    if taxa is None:
        names = set()
        for leaves, _ in clusters:
            names.update(leaves)
        taxa = names
    taxa = sorted(taxa)
    if len(taxa) < 4:
        raise QuartetDataError("At least four taxa are needed")

    table = QuartetTable()
    for quartet in combinations(taxa, 4):
        counts = np.zeros(3)
        for leaves, sets in clusters:
            if not leaves.issuperset(quartet):
                continue
            split = quartet_split(sets, quartet)
            if split is not None:
                counts[split] += 1
        if counts.sum() > 0:
            table.add(QuartetCF(quartet, counts, counts.sum()))
    return table
