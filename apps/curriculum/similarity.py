"""Cosine similarity and union-find clustering over embedding vectors."""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
from numpy.typing import ArrayLike


def _as_matrix(vectors: ArrayLike) -> np.ndarray:
    matrix = np.asarray(vectors, dtype=float)
    if matrix.ndim != 2:
        raise ValueError(f"Expected a 2-D array of embeddings, got shape {matrix.shape}")
    return matrix


def normalize_rows(vectors: ArrayLike) -> np.ndarray:
    """Scale each row to unit length; all-zero rows stay zero."""

    matrix = _as_matrix(vectors)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    a, b = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Vector length mismatch: {a.shape[0]} != {b.shape[0]}")
    normed = normalize_rows(np.stack([a, b]))
    return float(normed[0] @ normed[1])


def similarity_matrix(vectors: ArrayLike) -> np.ndarray:
    """Upper-triangular cosine matrix; entries with ``j <= i`` are zero."""

    normed = normalize_rows(vectors)
    return np.triu(normed @ normed.T, k=1)


class UnionFind:
    """Disjoint sets with union by rank and path compression."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self.rank[root_a] < self.rank[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        if self.rank[root_a] == self.rank[root_b]:
            self.rank[root_a] += 1

    def groups(self) -> List[List[int]]:
        by_root: Dict[int, List[int]] = {}
        for item in range(len(self.parent)):
            by_root.setdefault(self.find(item), []).append(item)
        return list(by_root.values())


def _cluster_indices(
    matrix: np.ndarray,
    indices: Sequence[int],
    threshold: float,
    max_cluster_size: int,
    threshold_increment: float,
    max_threshold: float,
) -> List[List[int]]:
    finder = UnionFind(len(indices))
    sub = matrix[np.ix_(indices, indices)]
    # ``indices`` is ascending, so the sub-matrix stays upper-triangular
    for a, b in zip(*np.nonzero(sub >= threshold)):
        if a < b:
            finder.union(int(a), int(b))

    clusters: List[List[int]] = []
    next_threshold = round(threshold + threshold_increment, 10)
    for group in finder.groups():
        members = [indices[pos] for pos in group]
        if len(members) > max_cluster_size and next_threshold <= max_threshold:
            clusters.extend(
                _cluster_indices(
                    matrix,
                    members,
                    next_threshold,
                    max_cluster_size,
                    threshold_increment,
                    max_threshold,
                )
            )
        else:
            clusters.append(members)
    return clusters


def cluster_by_similarity(
    vectors: ArrayLike,
    *,
    threshold: float,
    max_cluster_size: int,
    threshold_increment: float,
    max_threshold: float = 1.0,
) -> List[List[int]]:
    """Partition ``vectors`` into clusters of indices.

    Pairs whose cosine similarity reaches ``threshold`` end up in the same
    cluster. Clusters larger than ``max_cluster_size`` are split again at
    ``threshold + threshold_increment`` until they fit or ``max_threshold``
    would be exceeded. Every index appears in exactly one cluster, and
    clusters are ordered by their smallest index.
    """

    if threshold_increment <= 0:
        raise ValueError("threshold_increment must be positive")
    if max_cluster_size < 1:
        raise ValueError("max_cluster_size must be at least 1")
    if len(vectors) == 0:
        return []
    matrix = similarity_matrix(vectors)
    clusters = _cluster_indices(
        matrix,
        list(range(matrix.shape[0])),
        threshold,
        max_cluster_size,
        threshold_increment,
        max_threshold,
    )
    for cluster in clusters:
        cluster.sort()
    clusters.sort(key=lambda cluster: cluster[0])
    return clusters


__all__ = ["UnionFind", "cluster_by_similarity", "cosine_similarity", "normalize_rows", "similarity_matrix"]
