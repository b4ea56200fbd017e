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

The mutable network representation. Nodes and edges live in an arena keyed by
integer ids that are never reused, and reference each other by id. Every write
goes through the network so that the network's UndoLog can journal it.

Derived markers (in_cycle, contain_root, identifiable, root_compatible and the
hybrid cycle classification) are stored here but are only ever written by the
InvariantUpdater module.
"""

from __future__ import annotations
from collections import defaultdict, deque
import copy
from typing import Any, Iterable, Iterator
import networkx as nx

from .Settings import GAMMA_TOLERANCE, NO_CYCLE
from .UndoLog import UndoLog, NODE, EDGE, NETWORK, CREATED, DELETED

#############################
#### EXCEPTION SPECIFICS ####
#############################

class NetworkError(Exception):
    """
    This exception is raised when a network is malformed, or if a network
    operation fails.
    """
    def __init__(self, message : str = "Error with a Network Instance") -> None:
        self.message = message
        super().__init__(self.message)

class InvalidTopologyError(NetworkError):
    """
    Raised when a structural edit would break acyclicity, the hybrid parent
    count, the γ sum, or the level-1 cycle structure. Always recoverable by
    rolling back the edit.
    """
    def __init__(self, message : str = "Edit produces an invalid topology") -> None:
        super().__init__(message)

##########################
#### NODES AND EDGES #####
##########################

NODE_ATTRIBUTES = ("number", "name", "leaf", "hybrid", "edges", "in_cycle",
                   "root_compatible", "k", "is_bad_triangle",
                   "is_bad_diamond_i", "is_bad_diamond_ii")

EDGE_ATTRIBUTES = ("number", "parent", "child", "length", "hybrid", "gamma",
                   "is_major", "in_cycle", "contain_root", "identifiable")

class Node:
    """
    A network node. Leaves are named; internal nodes may be.
    """

    def __init__(self, number : int, name : str = None,
                 leaf : bool = False) -> None:
        """
        Args:
            number (int): Arena id, unique for the life of the network.
            name (str, optional): Label. Required for leaves.
                                  Defaults to None.
            leaf (bool, optional): Node kind. Defaults to False (internal).
        Returns:
            N/A
        """
        self.number : int = number
        self.name : str = name
        self.leaf : bool = leaf
        self.hybrid : bool = False
        self.edges : list[int] = []

        # derived markers
        self.in_cycle : int = NO_CYCLE
        self.root_compatible : bool = True

        # cycle classification, only meaningful on hybrid nodes
        self.k : int = -1
        self.is_bad_triangle : bool = False
        self.is_bad_diamond_i : bool = False
        self.is_bad_diamond_ii : bool = False

    def is_in_cycle(self) -> bool:
        """
        Returns:
            bool: True if the node lies on a reticulation cycle.
        """
        return self.in_cycle != NO_CYCLE

    def label(self) -> str:
        """
        Returns:
            str: The node name, or a generated label for unnamed nodes.
        """
        if self.name is not None:
            return self.name
        if self.hybrid:
            return "H" + str(self.number)
        return "I" + str(self.number)

    def __repr__(self) -> str:
        kind = "leaf" if self.leaf else ("hybrid" if self.hybrid else "tree")
        return f"Node({self.number}, {self.label()}, {kind})"

class Edge:
    """
    A directed edge from parent to child, with its length, inheritance
    probability and derived markers.
    """

    def __init__(self, number : int, parent : int, child : int,
                 length : float = None, hybrid : bool = False,
                 gamma : float = 1.0) -> None:
        """
        Args:
            number (int): Arena id.
            parent (int): Parent node id.
            child (int): Child node id.
            length (float, optional): Branch length, None if unknown.
            hybrid (bool, optional): True for an edge entering a hybrid node.
            gamma (float, optional): Inheritance probability. Tree edges
                                     carry 1.0.
        Returns:
            N/A
        """
        self.number : int = number
        self.parent : int = parent
        self.child : int = child
        self.length : float = length
        self.hybrid : bool = hybrid
        self.gamma : float = gamma
        self.is_major : bool = True

        # derived markers
        self.in_cycle : int = NO_CYCLE
        self.contain_root : bool = True
        self.identifiable : bool = False

    def other(self, node : int) -> int:
        """
        Args:
            node (int): One endpoint of this edge.
        Returns:
            int: The opposite endpoint.
        """
        return self.child if node == self.parent else self.parent

    def is_in_cycle(self) -> bool:
        return self.in_cycle != NO_CYCLE

    def __repr__(self) -> str:
        kind = "hybrid" if self.hybrid else "tree"
        return f"Edge({self.number}: {self.parent}->{self.child}, {kind})"

#########################
#### NETWORK CLASSES ####
#########################

class Network:
    """
    A rooted phylogenetic network: a DAG whose nodes have at most one parent,
    except hybrid nodes which have exactly two.

    Formulation:
    Network = (E, V, root). Nodes and edges are owned exclusively by the
    network and are referenced by integer id everywhere else, so that the
    journal entries (kind, id, attribute, old value) stay unambiguous after
    entities are removed.
    """

    def __init__(self) -> None:
        """
        Initialize an empty network with its own undo journal.

        Args:
            N/A
        Returns:
            N/A
        """
        self.nodes : dict[int, Node] = {}
        self.edges : dict[int, Edge] = {}
        self.root : int = None
        self.hybrids : list[int] = []
        self.leaves : list[int] = []
        self.next_node_id : int = 0
        self.next_edge_id : int = 0
        self.journal : UndoLog = UndoLog(self)

    #### journaled writes ####

    def set_attr(self, entity : Node | Edge, attr : str, value : Any) -> None:
        """
        Write an attribute of a node or edge, journaling the previous value.
        List valued attributes must be replaced, never mutated in place.

        Args:
            entity (Node | Edge): A node or edge of this network.
            attr (str): Attribute name.
            value (Any): New value.
        Returns:
            N/A
        """
        old = getattr(entity, attr)
        if old == value and type(old) == type(value):
            return
        kind = NODE if isinstance(entity, Node) else EDGE
        self.journal.record(kind, entity.number, attr, old)
        setattr(entity, attr, value)

    def _set_net(self, attr : str, value : Any) -> None:
        self.journal.record(NETWORK, None, attr, getattr(self, attr))
        setattr(self, attr, value)

    #### construction ####

    def add_node(self, name : str = None, leaf : bool = False) -> Node:
        """
        Create a node and add it to the arena.

        Args:
            name (str, optional): Node label. Defaults to None.
            leaf (bool, optional): True to create a leaf. Defaults to False.
        Raises:
            NetworkError: If a leaf is unnamed or its name is taken.
        Returns:
            Node: the new node.
        """
        if leaf:
            if name is None:
                raise NetworkError("Leaves must be named")
            if name in self.leaf_names():
                raise NetworkError(f"A leaf named {name} already exists")

        number = self.next_node_id
        self._set_net("next_node_id", number + 1)
        node = Node(number, name, leaf)
        self.nodes[number] = node
        self.journal.record(NODE, number, CREATED, None)

        if leaf:
            self._set_net("leaves", self.leaves + [number])
        return node

    def remove_node(self, node : Node) -> None:
        """
        Remove a node that no longer has any incident edges.

        Args:
            node (Node): A node of this network.
        Raises:
            NetworkError: If the node still has edges.
        Returns:
            N/A
        """
        if node.edges:
            raise NetworkError(f"Cannot remove {node}, it still has edges")
        if node.hybrid:
            self.set_hybrid(node, False)
        if node.leaf:
            self._set_net("leaves", [n for n in self.leaves if n != node.number])
        if self.root == node.number:
            self._set_net("root", None)

        self.journal.record(NODE, node.number, DELETED, node)
        del self.nodes[node.number]

    def set_hybrid(self, node : Node, is_hybrid : bool) -> None:
        """
        Flag or unflag a node as a hybrid and keep the hybrid list current.

        Args:
            node (Node): A node of this network.
            is_hybrid (bool): New hybrid flag.
        Returns:
            N/A
        """
        if node.hybrid == is_hybrid:
            return
        self.set_attr(node, "hybrid", is_hybrid)
        if is_hybrid:
            self._set_net("hybrids", self.hybrids + [node.number])
        else:
            self._set_net("hybrids",
                          [n for n in self.hybrids if n != node.number])

    def _check_new_parent(self, child : Node, ignore : Edge = None) -> None:
        parent_count = len([e for e in self.parent_edges(child)
                            if e is not ignore])
        limit = 2 if child.hybrid else 1
        if parent_count >= limit:
            raise InvalidTopologyError(f"{child} already has {parent_count} \
                                        parent(s) and cannot take another")
        if child.number == self.root:
            raise InvalidTopologyError("The root cannot have a parent")

    def add_edge(self, parent : Node, child : Node, length : float = None,
                 hybrid : bool = False, gamma : float = None) -> Edge:
        """
        Connect two existing nodes with a new directed edge.

        Args:
            parent (Node): Parent node.
            child (Node): Child node.
            length (float, optional): Branch length. Defaults to None.
            hybrid (bool, optional): True for an edge entering a hybrid node.
            gamma (float, optional): Inheritance probability. Defaults to 1.0
                                     for tree edges, 0.5 for hybrid edges.
        Raises:
            NetworkError: If either node is not in the network.
            InvalidTopologyError: If the child cannot take another parent, the
                                  parent is a leaf, or a hybrid edge would
                                  enter a non-hybrid node.
        Returns:
            Edge: the new edge.
        """
        if parent.number not in self.nodes or child.number not in self.nodes:
            raise NetworkError("Tried to add an edge between two nodes, at \
                                least one of which does not belong to this \
                                network.")
        if parent is child:
            raise InvalidTopologyError("Self loops are not allowed")
        if parent.leaf:
            raise InvalidTopologyError(f"Leaf {parent.name} cannot have \
                                        children")
        if hybrid and not child.hybrid:
            raise InvalidTopologyError("Hybrid edges must enter a hybrid node")
        self._check_new_parent(child)

        if gamma is None:
            gamma = 0.5 if hybrid else 1.0

        number = self.next_edge_id
        self._set_net("next_edge_id", number + 1)
        edge = Edge(number, parent.number, child.number, length, hybrid, gamma)
        self.edges[number] = edge
        self.journal.record(EDGE, number, CREATED, None)

        self.set_attr(parent, "edges", parent.edges + [number])
        self.set_attr(child, "edges", child.edges + [number])
        return edge

    def remove_edge(self, edge : Edge) -> None:
        """
        Disconnect and delete an edge. Nodes are left in place.

        Args:
            edge (Edge): An edge of this network.
        Returns:
            N/A
        """
        for end in (edge.parent, edge.child):
            node = self.nodes[end]
            self.set_attr(node, "edges",
                          [e for e in node.edges if e != edge.number])
        self.journal.record(EDGE, edge.number, DELETED, edge)
        del self.edges[edge.number]

    def reattach_parent(self, edge : Edge, new_parent : Node) -> None:
        """
        Move the parent end of an edge to another node.

        Args:
            edge (Edge): An edge of this network.
            new_parent (Node): Its new parent.
        Raises:
            InvalidTopologyError: If the new parent is a leaf or the child
                                  itself.
        Returns:
            N/A
        """
        if new_parent.leaf or new_parent.number == edge.child:
            raise InvalidTopologyError(f"Cannot hang {edge} from {new_parent}")
        old = self.nodes[edge.parent]
        self.set_attr(old, "edges", [e for e in old.edges if e != edge.number])
        self.set_attr(new_parent, "edges", new_parent.edges + [edge.number])
        self.set_attr(edge, "parent", new_parent.number)

    def reattach_child(self, edge : Edge, new_child : Node) -> None:
        """
        Move the child end of an edge to another node.

        Args:
            edge (Edge): An edge of this network.
            new_child (Node): Its new child.
        Raises:
            InvalidTopologyError: If new_child cannot take another parent.
        Returns:
            N/A
        """
        if new_child.number == edge.parent:
            raise InvalidTopologyError("Self loops are not allowed")
        if edge.hybrid and not new_child.hybrid:
            raise InvalidTopologyError("Hybrid edges must enter a hybrid node")
        self._check_new_parent(new_child)
        old = self.nodes[edge.child]
        self.set_attr(old, "edges", [e for e in old.edges if e != edge.number])
        self.set_attr(new_child, "edges", new_child.edges + [edge.number])
        self.set_attr(edge, "child", new_child.number)

    def subdivide_edge(self, edge : Edge, fraction : float = 0.5) -> Node:
        """
        Insert a new degree-2 node into an edge.

        a                    a
        |                    | (new tree edge, fraction of the length)
        |        --->        z
        |                    | (the original edge, the remainder)
        b                    b

        Args:
            edge (Edge): Edge to split.
            fraction (float, optional): Share of the length given to the
                                        upper piece. Defaults to 0.5.
        Returns:
            Node: the new node, z.
        """
        a = self.nodes[edge.parent]
        z = self.add_node()

        upper_len = None if edge.length is None else edge.length * fraction
        self.add_edge(a, z, upper_len)

        self.reattach_parent(edge, z)
        if edge.length is not None:
            self.set_attr(edge, "length", edge.length * (1 - fraction))
        return z

    def suppress_node(self, node : Node) -> Edge:
        """
        Remove a node with exactly one parent and one child, merging its two
        edges. The lower edge survives (keeping its hybrid attributes) and
        takes the summed length.

        Args:
            node (Node): A degree-2, non-hybrid node.
        Raises:
            NetworkError: If the node does not have exactly one parent and one
                          child, or is still flagged as a hybrid.
        Returns:
            Edge: the merged edge.
        """
        ins = self.parent_edges(node)
        outs = self.child_edges(node)
        if len(ins) != 1 or len(outs) != 1 or node.hybrid:
            raise NetworkError(f"{node} is not a degree-2 tree node")
        upper, lower = ins[0], outs[0]

        if upper.length is None and lower.length is None:
            merged_len = None
        else:
            merged_len = (upper.length or 0.0) + (lower.length or 0.0)

        grand_parent = self.nodes[upper.parent]
        self.remove_edge(upper)
        self.reattach_parent(lower, grand_parent)
        self.set_attr(lower, "length", merged_len)
        self.remove_node(node)
        return lower

    def drop_root(self) -> Node:
        """
        Remove a root that has been left with a single child; the child
        becomes the new root.

        Raises:
            InvalidTopologyError: If the child has another parent.
            NetworkError: If the root does not have exactly one child.
        Returns:
            Node: the new root.
        """
        root = self.nodes[self.root]
        outs = self.child_edges(root)
        if len(outs) != 1 or self.parent_edges(root):
            raise NetworkError("The root does not have exactly one child")
        child = self.nodes[outs[0].child]
        if len(self.parent_edges(child)) != 1:
            raise InvalidTopologyError(f"{child} cannot become the root, it \
                                        has another parent")
        self.remove_edge(outs[0])
        self.remove_node(root)
        self._set_net("root", child.number)
        return child

    def set_root(self, node : Node) -> None:
        """
        Designate the root node. It must not have any parents.

        Args:
            node (Node): A node of this network.
        Raises:
            InvalidTopologyError: If the node has a parent.
        Returns:
            N/A
        """
        if self.parent_edges(node):
            raise InvalidTopologyError(f"{node} has a parent and cannot be \
                                        the root")
        self._set_net("root", node.number)

    def delete_leaf(self, name : str) -> None:
        """
        Remove a leaf and its pendant edge, then tidy up what is left. Nodes
        left without children are removed, tree nodes left with one parent
        and one child are suppressed, and a root left with one child is
        dropped. A hybrid whose cycle shrinks below three nodes loses its
        minor edge. Markers are recomputed at the end.

        Every write is journaled. Without an open scope, the deletion runs in
        a scope of its own that is committed on success and rolled back on
        failure.

        Args:
            name (str): A leaf label.
        Raises:
            NetworkError: If no leaf has that name, or fewer than two leaves
                          would remain.
            InvalidTopologyError: If the pruned network is not valid.
        Returns:
            N/A
        """
        from .InvariantUpdater import full_update, cycle_size

        leaf = self.get_leaf(name)
        if len(self.leaves) <= 2:
            raise NetworkError(f"Deleting {name} would leave fewer than two \
                                leaves")

        own_scope = not self.journal.in_flight
        if own_scope:
            self.journal.begin()
        try:
            above = [e.parent for e in self.parent_edges(leaf)]
            for edge in self.parent_edges(leaf):
                self.remove_edge(edge)
            self.remove_node(leaf)
            self._prune(above)

            while True:
                small = [h for h in sorted(self.hybrids)
                         if cycle_size(self, self.nodes[h]) < 3]
                if not small:
                    break
                hybrid = self.nodes[small[0]]
                minor = self.minor_hybrid_edge(hybrid)
                keep = self.hybrid_partner(minor)
                origin = minor.parent
                self.remove_edge(minor)
                self.set_hybrid(hybrid, False)
                self.set_attr(keep, "hybrid", False)
                self.set_attr(keep, "gamma", 1.0)
                self.set_attr(keep, "is_major", True)
                self._prune([hybrid.number, origin])

            report = full_update(self)
            if not report.valid:
                raise InvalidTopologyError(report.reason)
        except Exception:
            if own_scope:
                self.journal.rollback()
            raise
        if own_scope:
            self.journal.commit()

    def _prune(self, start : Iterable[int]) -> None:
        """
        Worklist cleanup after edges were removed below the 'start' nodes.
        """
        queue = deque(start)
        while queue:
            n = queue.popleft()
            if n not in self.nodes or self.nodes[n].leaf:
                continue
            node = self.nodes[n]
            ins = self.parent_edges(node)
            outs = self.child_edges(node)

            if not outs:
                if n == self.root:
                    raise NetworkError("Pruning removed every leaf")
                for edge in ins:
                    self.remove_edge(edge)
                self.remove_node(node)
                queue.extend(e.parent for e in ins)
            elif n == self.root:
                if len(outs) == 1:
                    queue.append(self.drop_root().number)
            elif len(ins) == 1 and len(outs) == 1 and not node.hybrid:
                self.suppress_node(node)

    #### parameters ####

    def set_length(self, edge : Edge, length : float | None) -> None:
        """
        Set a branch length.

        Args:
            edge (Edge): An edge of this network.
            length (float | None): A non-negative length, or None for unknown.
        Raises:
            NetworkError: If the length is negative.
        Returns:
            N/A
        """
        if length is not None:
            length = float(length)
            if length < 0:
                raise NetworkError(f"Negative branch length {length} for \
                                    {edge}")
        self.set_attr(edge, "length", length)

    def set_gamma(self, edge : Edge, gamma : float) -> None:
        """
        Set the inheritance probability of a hybrid edge. The partner edge
        into the same hybrid node receives 1 - gamma, and the major flags are
        updated (a tie keeps the current major edge).

        Args:
            edge (Edge): A hybrid edge.
            gamma (float): A probability in [0, 1].
        Raises:
            NetworkError: If the edge is a tree edge or gamma is out of range.
        Returns:
            N/A
        """
        if not edge.hybrid:
            raise NetworkError(f"{edge} is a tree edge, its gamma is fixed at 1")
        gamma = float(gamma)
        if not 0.0 <= gamma <= 1.0:
            raise NetworkError(f"Gamma {gamma} is not a probability")

        partner = self.hybrid_partner(edge)
        self.set_attr(edge, "gamma", gamma)
        self.set_attr(partner, "gamma", 1.0 - gamma)
        if gamma > 0.5:
            self.set_attr(edge, "is_major", True)
            self.set_attr(partner, "is_major", False)
        elif gamma < 0.5 or edge.is_major == partner.is_major:
            # on a tie with no major edge designated yet, 'edge' is minor
            self.set_attr(edge, "is_major", False)
            self.set_attr(partner, "is_major", True)

    #### queries ####

    def node(self, number : int) -> Node:
        return self.nodes[number]

    def edge(self, number : int) -> Edge:
        return self.edges[number]

    def get_root(self) -> Node:
        """
        Returns:
            Node: the root node.
        """
        return self.nodes[self.root]

    def incident_edges(self, node : Node) -> list[Edge]:
        """
        All edges touching a node, in O(degree).

        Args:
            node (Node): A node.
        Returns:
            list[Edge]: incident edges.
        """
        return [self.edges[e] for e in node.edges]

    def parent_edges(self, node : Node, hybrid : bool = None) -> list[Edge]:
        """
        Edges entering a node, optionally filtered by kind.

        Args:
            node (Node): A node.
            hybrid (bool, optional): True for hybrid edges only, False for
                                     tree edges only, None for both.
        Returns:
            list[Edge]: parent edges.
        """
        return [self.edges[e] for e in node.edges
                if self.edges[e].child == node.number
                and (hybrid is None or self.edges[e].hybrid == hybrid)]

    def child_edges(self, node : Node, hybrid : bool = None) -> list[Edge]:
        """
        Edges leaving a node, optionally filtered by kind.

        Args:
            node (Node): A node.
            hybrid (bool, optional): True for hybrid edges only, False for
                                     tree edges only, None for both.
        Returns:
            list[Edge]: child edges.
        """
        return [self.edges[e] for e in node.edges
                if self.edges[e].parent == node.number
                and (hybrid is None or self.edges[e].hybrid == hybrid)]

    def parents(self, node : Node) -> list[Node]:
        return [self.nodes[e.parent] for e in self.parent_edges(node)]

    def children(self, node : Node) -> list[Node]:
        return [self.nodes[e.child] for e in self.child_edges(node)]

    def neighbors(self, node : Node) -> list[Node]:
        return [self.nodes[self.edges[e].other(node.number)]
                for e in node.edges]

    def hybrid_partner(self, edge : Edge) -> Edge:
        """
        Args:
            edge (Edge): A hybrid edge.
        Raises:
            NetworkError: If the hybrid node does not have two parent edges.
        Returns:
            Edge: The other hybrid edge entering the same hybrid node.
        """
        others = [e for e in self.parent_edges(self.nodes[edge.child])
                  if e is not edge]
        if len(others) != 1:
            raise NetworkError(f"{edge} does not have exactly one partner")
        return others[0]

    def minor_hybrid_edge(self, hybrid : Node) -> Edge:
        """
        Args:
            hybrid (Node): A hybrid node.
        Returns:
            Edge: the parent edge that is not major.
        """
        return [e for e in self.parent_edges(hybrid) if not e.is_major][0]

    def major_hybrid_edge(self, hybrid : Node) -> Edge:
        """
        Args:
            hybrid (Node): A hybrid node.
        Returns:
            Edge: the major parent edge.
        """
        return [e for e in self.parent_edges(hybrid) if e.is_major][0]

    def get_leaf(self, name : str) -> Node:
        """
        Args:
            name (str): A leaf label.
        Raises:
            NetworkError: If no leaf has that name.
        Returns:
            Node: the leaf.
        """
        for number in self.leaves:
            if self.nodes[number].name == name:
                return self.nodes[number]
        raise NetworkError(f"No leaf named {name}")

    def node_named(self, name : str) -> Node:
        """
        Args:
            name (str): A node label.
        Raises:
            NetworkError: If no node has that name.
        Returns:
            Node: the first node (by id) with that name.
        """
        for node in self.sorted_nodes():
            if node.name == name:
                return node
        raise NetworkError(f"No node named {name}")

    def leaf_names(self) -> list[str]:
        return [self.nodes[n].name for n in self.leaves]

    @property
    def num_hybrids(self) -> int:
        return len(self.hybrids)

    @property
    def num_leaves(self) -> int:
        return len(self.leaves)

    def sorted_edges(self) -> list[Edge]:
        """
        Returns:
            list[Edge]: all edges by increasing id. Arena iteration order
                        changes across rollbacks, id order does not.
        """
        return [self.edges[e] for e in sorted(self.edges)]

    def sorted_nodes(self) -> list[Node]:
        return [self.nodes[n] for n in sorted(self.nodes)]

    def descendants(self, node : Node) -> set[int]:
        """
        Ids of all nodes reachable from 'node' along directed edges,
        including 'node' itself.

        Args:
            node (Node): A node.
        Returns:
            set[int]: descendant ids.
        """
        seen = {node.number}
        queue = deque([node])
        while queue:
            cur = queue.popleft()
            for child in self.children(cur):
                if child.number not in seen:
                    seen.add(child.number)
                    queue.append(child)
        return seen

    def is_descendant(self, node : Node, ancestor : Node) -> bool:
        """
        Args:
            node (Node): Candidate descendant.
            ancestor (Node): Candidate ancestor.
        Returns:
            bool: True if there is a directed path ancestor -> node (or they
                  are the same node).
        """
        return node.number in self.descendants(ancestor)

    def ancestors(self, nodes : Iterable[Node]) -> set[int]:
        """
        Ids of all nodes from which any of 'nodes' can be reached, including
        'nodes' themselves.

        Args:
            nodes (Iterable[Node]): Starting nodes.
        Returns:
            set[int]: ancestor ids.
        """
        seen = set()
        queue = deque()
        for node in nodes:
            seen.add(node.number)
            queue.append(node)
        while queue:
            cur = queue.popleft()
            for par in self.parents(cur):
                if par.number not in seen:
                    seen.add(par.number)
                    queue.append(par)
        return seen

    def topological_order(self) -> list[Node]:
        """
        Nodes sorted so that every parent precedes its children (Kahn's
        algorithm, ties broken by id).

        Raises:
            InvalidTopologyError: If the network has a directed cycle.
        Returns:
            list[Node]: nodes in topological order.
        """
        in_deg = {n : len(self.parent_edges(self.nodes[n]))
                  for n in self.nodes}
        ready = sorted(n for n, d in in_deg.items() if d == 0)
        queue = deque(ready)
        order : list[Node] = []
        while queue:
            cur = self.nodes[queue.popleft()]
            order.append(cur)
            for child in sorted(c.number for c in self.children(cur)):
                in_deg[child] -= 1
                if in_deg[child] == 0:
                    queue.append(child)
        if len(order) != len(self.nodes):
            raise InvalidTopologyError("The network contains a directed cycle")
        return order

    def is_acyclic(self) -> bool:
        """
        Returns:
            bool: True if the network has no directed cycles.
        """
        return nx.is_directed_acyclic_graph(self.to_networkx())

    def gamma_violations(self) -> list[Node]:
        """
        Hybrid nodes that do not have exactly two parent edges whose γ values
        sum to 1.

        Returns:
            list[Node]: offending hybrid nodes.
        """
        bad = []
        for number in self.hybrids:
            hyb = self.nodes[number]
            ins = self.parent_edges(hyb)
            if len(ins) != 2 or not all(e.hybrid for e in ins):
                bad.append(hyb)
            elif abs(ins[0].gamma + ins[1].gamma - 1.0) > GAMMA_TOLERANCE:
                bad.append(hyb)
            elif ins[0].is_major == ins[1].is_major:
                bad.append(hyb)
        return bad

    #### traversal and export ####

    def writer_traversal(self) -> Iterator[tuple[Edge | None, Node, bool]]:
        """
        Preorder walk from the root that is sufficient to regenerate an
        extended Newick description. Each step yields the edge that was
        followed (None for the root), the node reached, and whether this is
        the first visit of the node. A hybrid node is entered twice, once per
        parent edge; its subtree is only walked on the first visit. Children
        are visited by increasing edge id.

        Returns:
            Iterator[tuple[Edge | None, Node, bool]]: traversal steps.
        """
        visited : set[int] = set()
        stack : list[tuple[Edge | None, Node]] = [(None, self.get_root())]
        while stack:
            edge, node = stack.pop()
            first = node.number not in visited
            visited.add(node.number)
            yield edge, node, first
            if first:
                for child_edge in sorted(self.child_edges(node),
                                         key = lambda e: e.number,
                                         reverse = True):
                    stack.append((child_edge, self.nodes[child_edge.child]))

    def newick(self) -> str:
        """
        Extended Newick string of the network, with lengths and hybrid γ
        annotations ('name:length::gamma'), built from writer_traversal.

        Returns:
            str: the Newick string, semicolon terminated.
        """
        steps : dict[int, list[tuple[Edge, Node, bool]]] = defaultdict(list)
        for edge, node, first in self.writer_traversal():
            if edge is not None:
                steps[edge.parent].append((edge, node, first))

        def label(node : Node) -> str:
            if node.hybrid:
                return "#" + node.label()
            return node.name if node.name is not None else ""

        def annotate(edge : Edge) -> str:
            text = ""
            if edge.length is not None:
                text += ":" + str(round(edge.length, 6))
            if edge.hybrid:
                if edge.length is None:
                    text += ":"
                text += "::" + str(round(edge.gamma, 6))
            return text

        def newick_help(node : Node, expand : bool) -> str:
            if node.leaf or not expand:
                return label(node)
            parts = [newick_help(child, first) + annotate(edge)
                     for edge, child, first in steps[node.number]]
            return "(" + ",".join(parts) + ")" + label(node)

        return newick_help(self.get_root(), True) + ";"

    def to_networkx(self) -> nx.MultiDiGraph:
        """
        Export as a networkx multigraph keyed by node id, with node and edge
        attributes copied over.

        Returns:
            nx.MultiDiGraph: the exported graph.
        """
        graph = nx.MultiDiGraph(root = self.root)
        for node in self.sorted_nodes():
            graph.add_node(node.number, name = node.name, leaf = node.leaf,
                           hybrid = node.hybrid)
        for edge in self.sorted_edges():
            graph.add_edge(edge.parent, edge.child, key = edge.number,
                           length = edge.length, gamma = edge.gamma,
                           hybrid = edge.hybrid)
        return graph

    def finalized(self) -> nx.MultiDiGraph:
        """
        Read-only view for downstream consumers (trait evolution and the
        like): a frozen networkx graph carrying the root, leaf names, branch
        lengths and γ values. Any attempt to mutate its structure raises.

        Returns:
            nx.MultiDiGraph: a frozen copy.
        """
        return nx.freeze(self.to_networkx())

    def snapshot(self) -> dict[str, Any]:
        """
        Attribute-for-attribute dump of the network, for exact comparisons.

        Returns:
            dict[str, Any]: plain data describing every entity.
        """
        return {
            "root" : self.root,
            "hybrids" : sorted(self.hybrids),
            "leaves" : sorted(self.leaves),
            "next_node_id" : self.next_node_id,
            "next_edge_id" : self.next_edge_id,
            "nodes" : {n : {a : copy.copy(getattr(node, a))
                            for a in NODE_ATTRIBUTES}
                       for n, node in self.nodes.items()},
            "edges" : {e : {a : getattr(edge, a) for a in EDGE_ATTRIBUTES}
                       for e, edge in self.edges.items()}
        }

    def duplicate(self) -> Network:
        """
        Deep copy of the network, journal included.

        Raises:
            NetworkError: If a move is in flight.
        Returns:
            Network: an independent copy.
        """
        if self.journal.in_flight:
            raise NetworkError("Cannot copy a network while a move is in \
                                flight")
        return copy.deepcopy(self)

    def pretty_print_edges(self) -> None:
        for edge in self.sorted_edges():
            par = self.nodes[edge.parent].label()
            chi = self.nodes[edge.child].label()
            print(f"<{par}, {chi}> len={edge.length} gamma={edge.gamma} "
                  f"cycle={edge.in_cycle} root={edge.contain_root} "
                  f"ident={edge.identifiable}")

    def pretty_print_nodes(self) -> None:
        for node in self.sorted_nodes():
            kind = "leaf" if node.leaf else \
                   ("hybrid" if node.hybrid else "tree")
            line = f"{node.label()} ({node.number}) {kind} " \
                   f"edges={node.edges} cycle={node.in_cycle} " \
                   f"root={node.root_compatible}"
            if node.hybrid:
                line += f" k={node.k} triangle={node.is_bad_triangle} " \
                        f"diamondI={node.is_bad_diamond_i} " \
                        f"diamondII={node.is_bad_diamond_ii}"
            if node.number == self.root:
                line += " (root)"
            print(line)

    #### building from a parsed description ####

    @classmethod
    def from_edge_list(cls, edges : Iterable[tuple],
                       root : str = None) -> Network:
        """
        Build a network from (parent, child[, length[, gamma]]) tuples of
        node names, as handed over by an external parser. Names that never
        appear as a parent are leaves; names that appear as a child twice are
        hybrids. Missing hybrid γ values default to 0.5 for both parents.
        All derived markers are computed before returning.

        Args:
            edges (Iterable[tuple]): edge descriptions.
            root (str, optional): Root name. Defaults to the unique node
                                  without parents.
        Raises:
            InvalidTopologyError: If the description is not a valid network.
        Returns:
            Network: the new network.
        """
        from .InvariantUpdater import full_update, check_network

        rows = [tuple(row) for row in edges]
        parents = {row[0] for row in rows}
        child_count : dict[str, int] = defaultdict(int)
        for row in rows:
            child_count[row[1]] += 1

        names : list[str] = []
        for row in rows:
            for name in row[:2]:
                if name not in names:
                    names.append(name)

        net = cls()
        by_name : dict[str, Node] = {}
        for name in names:
            node = net.add_node(name, leaf = name not in parents)
            if child_count[name] > 2:
                raise InvalidTopologyError(f"{name} has more than two parents")
            if child_count[name] == 2:
                net.set_hybrid(node, True)
            by_name[name] = node

        if root is None:
            roots = [n for n in names if child_count[n] == 0]
            if len(roots) != 1:
                raise InvalidTopologyError(f"Expected one root, found {roots}")
            root = roots[0]
        net.set_root(by_name[root])

        for row in rows:
            par, chi = by_name[row[0]], by_name[row[1]]
            length = row[2] if len(row) > 2 else None
            gamma = row[3] if len(row) > 3 else None
            net.add_edge(par, chi, length, hybrid = chi.hybrid, gamma = gamma)

        for number in net.hybrids:
            ins = net.parent_edges(net.nodes[number])
            if abs(ins[0].gamma + ins[1].gamma - 1.0) > GAMMA_TOLERANCE:
                raise InvalidTopologyError(f"Gamma values into \
                                            {net.nodes[number].label()} do \
                                            not sum to 1")
            # the first listed parent edge is major on a tie
            net.set_gamma(ins[1], ins[1].gamma)

        if not net.is_acyclic():
            raise InvalidTopologyError("The network contains a directed cycle")

        report = full_update(net)
        if not report.valid:
            raise InvalidTopologyError(report.reason)
        check_network(net)
        return net
