"""Pose-graph optimization on SE(3) with Lie-algebra vertices and edges.

Graphs are read and written in the text format with ``VERTEX_SE3:QUAT`` and
``EDGE_SE3:QUAT`` lines: translation, then quaternion ``qx qy qz qw``, and
for edges the upper triangle of the 6x6 information matrix row by row.
"""

from __future__ import annotations

import argparse
import sys
import warnings
from dataclasses import dataclass, field

import numpy as np
from scipy.sparse import coo_matrix, identity
from scipy.sparse.linalg import spsolve

from vslam.lie import SE3
from vslam.projection import chi2

VERTEX_TAG = "VERTEX_SE3:QUAT"
EDGE_TAG = "EDGE_SE3:QUAT"

_POSE_FIELDS = 7
_UPPER = list(zip(*np.triu_indices(6)))
_TAU = 1e-5
_MAX_TRIALS = 10

_BLOCK_ROWS = np.repeat(np.arange(6), 6)
_BLOCK_COLS = np.tile(np.arange(6), 6)


def jr_inv(error):
    """Approximate inverse right Jacobian of an SE(3) error.

    The identity is used, which holds well while the errors are small.
    """
    if not isinstance(error, SE3):
        raise TypeError("error must be an SE3")
    return np.eye(6)


def _parse_pose(tokens):
    tx, ty, tz, qx, qy, qz, qw = (float(t) for t in tokens)
    return SE3.from_quaternion([qw, qx, qy, qz], [tx, ty, tz])


def _pose_tokens(pose):
    w, x, y, z = pose.unit_quaternion()
    return [*pose.translation, x, y, z, w]


def _format(values):
    return " ".join(repr(float(v)) for v in values)


@dataclass
class Vertex:
    """A pose in the graph; fixed vertices are never updated."""

    id: int
    estimate: SE3 = field(default_factory=SE3)
    fixed: bool = False


@dataclass
class Edge:
    """A measured relative pose from one vertex to another."""

    id: int
    vertex_from: int
    vertex_to: int
    measurement: SE3
    information: np.ndarray = field(default_factory=lambda: np.eye(6))

    def _estimates(self, graph):
        return (
            graph.vertices[self.vertex_from].estimate,
            graph.vertices[self.vertex_to].estimate,
        )

    def error(self, graph):
        """Tangent vector of ``measurement^-1 * T_from^-1 * T_to``."""
        v1, v2 = self._estimates(graph)
        return (self.measurement.inverse() * v1.inverse() * v2).log()

    def jacobians(self, graph):
        """6x6 derivatives of the error by left updates of both vertices."""
        _, v2 = self._estimates(graph)
        j = jr_inv(SE3.exp(self.error(graph)))
        adj = v2.inverse().adjoint()
        return -j @ adj, j @ adj


class PoseGraph:
    """Vertices and edges of a pose graph, optimized by Levenberg-Marquardt."""

    def __init__(self):
        self.vertices = {}
        self.edges = []

    @classmethod
    def load(cls, stream):
        """Read a graph from lines of text; vertex 0 is held fixed."""
        graph = cls()
        for number, line in enumerate(stream, 1):
            tokens = line.split()
            if not tokens:
                continue
            tag = tokens[0]
            try:
                if tag == VERTEX_TAG:
                    if len(tokens) < 2 + _POSE_FIELDS:
                        raise ValueError("vertex needs an id and seven pose values")
                    index = int(tokens[1])
                    pose = _parse_pose(tokens[2 : 2 + _POSE_FIELDS])
                    graph.add_vertex(Vertex(index, pose, fixed=index == 0))
                elif tag == EDGE_TAG:
                    if len(tokens) < 3 + _POSE_FIELDS:
                        raise ValueError("edge needs two ids and seven pose values")
                    first, second = int(tokens[1]), int(tokens[2])
                    measurement = _parse_pose(tokens[3 : 3 + _POSE_FIELDS])
                    information = np.eye(6)
                    values = tokens[3 + _POSE_FIELDS : 3 + _POSE_FIELDS + len(_UPPER)]
                    for (i, j), value in zip(_UPPER, values):
                        information[i, j] = information[j, i] = float(value)
                    graph.add_edge(
                        Edge(len(graph.edges), first, second, measurement, information)
                    )
            except ValueError as exc:
                raise ValueError(f"line {number}: {exc}") from None
        return graph

    def add_vertex(self, vertex):
        """Add a vertex; its id must be new."""
        if vertex.id in self.vertices:
            raise ValueError(f"duplicate vertex id {vertex.id}")
        self.vertices[vertex.id] = vertex

    def add_edge(self, edge):
        """Add an edge between two vertices already in the graph."""
        for index in (edge.vertex_from, edge.vertex_to):
            if index not in self.vertices:
                raise ValueError(f"edge {edge.id} refers to unknown vertex {index}")
        self.edges.append(edge)

    def total_chi2(self):
        """Sum over the edges of ``e^T * information * e``."""
        return sum(chi2(edge.error(self), edge.information) for edge in self.edges)

    def _linearize(self, index, size):
        rows, cols, data = [], [], []
        gradient = np.zeros(size)
        cost = 0.0
        for edge in self.edges:
            e = edge.error(self)
            omega = edge.information
            cost += chi2(e, omega)
            blocks = [
                (index[vid], jac)
                for vid, jac in zip((edge.vertex_from, edge.vertex_to), edge.jacobians(self))
                if vid in index
            ]
            for a, ja in blocks:
                gradient[6 * a : 6 * a + 6] += ja.T @ omega @ e
                for b, jb in blocks:
                    rows.append(6 * a + _BLOCK_ROWS)
                    cols.append(6 * b + _BLOCK_COLS)
                    data.append((ja.T @ omega @ jb).ravel())
        if data:
            hessian = coo_matrix(
                (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
                shape=(size, size),
            ).tocsc()
        else:
            hessian = coo_matrix((size, size)).tocsc()
        return hessian, gradient, cost

    def _apply(self, index, delta):
        for vid, k in index.items():
            vertex = self.vertices[vid]
            vertex.estimate = SE3.exp(delta[6 * k : 6 * k + 6]) * vertex.estimate

    def optimize(self, iterations=30):
        """Run Levenberg-Marquardt; returns the total chi2 after each iteration."""
        free = sorted(vid for vid, v in self.vertices.items() if not v.fixed)
        index = {vid: k for k, vid in enumerate(free)}
        size = 6 * len(free)
        history = []
        if size == 0 or not self.edges:
            return history
        hessian, gradient, cost = self._linearize(index, size)
        diagonal = hessian.diagonal()
        lam = _TAU * float(diagonal.max()) if diagonal.max() > 0 else _TAU
        nu = 2.0
        eye = identity(size, format="csc")
        for _ in range(iterations):
            if cost <= 0.0:
                break
            improved = False
            for _trial in range(_MAX_TRIALS):
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore")
                    delta = np.atleast_1d(spsolve(hessian + lam * eye, -gradient))
                if not np.all(np.isfinite(delta)):
                    lam *= nu
                    nu *= 2.0
                    continue
                backup = {vid: self.vertices[vid].estimate for vid in index}
                self._apply(index, delta)
                new_cost = self.total_chi2()
                predicted = float(delta @ (lam * delta - gradient))
                rho = (cost - new_cost) / predicted if predicted > 0 else -1.0
                if np.isfinite(new_cost) and rho > 0:
                    lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                    nu = 2.0
                    improved = True
                    break
                for vid, estimate in backup.items():
                    self.vertices[vid].estimate = estimate
                lam *= nu
                nu *= 2.0
            if not improved:
                break
            hessian, gradient, cost = self._linearize(index, size)
            history.append(cost)
        return history

    def write(self, stream):
        """Write all vertices, then all edges, in the graph text format."""
        for vertex in self.vertices.values():
            stream.write(
                f"{VERTEX_TAG} {vertex.id} {_format(_pose_tokens(vertex.estimate))}\n"
            )
        for edge in self.edges:
            info = [edge.information[i, j] for i, j in _UPPER]
            stream.write(
                f"{EDGE_TAG} {edge.vertex_from} {edge.vertex_to} "
                f"{_format(_pose_tokens(edge.measurement))} {_format(info)}\n"
            )


def main(argv=None):
    """Optimize a pose graph file and save the result."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("graph", help="pose graph file, e.g. sphere.g2o")
    parser.add_argument("--output", default="result.g2o")
    parser.add_argument("--iterations", type=int, default=30)
    args = parser.parse_args(argv)
    try:
        with open(args.graph, encoding="utf-8") as stream:
            graph = PoseGraph.load(stream)
    except OSError:
        print(f"file {args.graph} does not exist.")
        return 1
    except ValueError as exc:
        print(f"{args.graph}: {exc}", file=sys.stderr)
        return 1
    print(f"read total {len(graph.vertices)} vertices, {len(graph.edges)} edges.")
    print("optimizing ...")
    print(f"initial chi2 = {graph.total_chi2():g}")
    for step, cost in enumerate(graph.optimize(args.iterations)):
        print(f"iteration {step}: chi2 = {cost:g}")
    print("saving optimization results ...")
    with open(args.output, "w", encoding="utf-8") as stream:
        graph.write(stream)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())