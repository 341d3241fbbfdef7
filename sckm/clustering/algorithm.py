"""
Clustering algorithms for constrained k-modes over Hamming space.

Core functions: distance, the constrained assignment step, the majority-vote
update step, the full training loop, and nearest-center lookup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .models import (
    Connectivity,
    LABEL_ACCEPT,
    LABEL_MALWARE,
    LABEL_NONE,
)


def hamming_distance(a: np.ndarray, b: np.ndarray) -> int:
    """Count differing coordinates between two boolean vectors."""
    return int(np.count_nonzero(a != b))


def hamming_distances(points: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """
    Pairwise Hamming distances, shape (n_points, n_centers).

    Uses the identity |p| + |c| - 2<p, c> so memory stays O(n * k).
    """
    p = points.astype(np.int32)
    c = centers.astype(np.int32)
    return p.sum(axis=1)[:, None] + c.sum(axis=1)[None, :] - 2 * (p @ c.T)


def center_majority_labels(
    labels: np.ndarray,
    assignment: np.ndarray,
    n_centers: int,
) -> np.ndarray:
    """Majority label code per center (LABEL_NONE on a tie or no labels)."""
    votes = np.bincount(assignment, weights=labels, minlength=n_centers)
    return np.sign(votes).astype(np.int8)


def find_nearest_center(vector: np.ndarray, centers: np.ndarray) -> tuple[int, int]:
    """
    Find the nearest center to a vector.

    Scans the center list in order, so ties go to the lowest index.

    Returns:
        (center index, distance)
    """
    best_index = -1
    best_distance = vector.shape[0] + 1

    for index, center in enumerate(centers):
        distance = hamming_distance(vector, center)
        if distance < best_distance:
            best_distance = distance
            best_index = index

    return best_index, best_distance


def same_cluster(a: np.ndarray, b: np.ndarray, centers: np.ndarray) -> Connectivity:
    """Linked if a and b share their nearest center. Labels play no part here."""
    index_a, _ = find_nearest_center(a, centers)
    index_b, _ = find_nearest_center(b, centers)
    return Connectivity.LINKED if index_a == index_b else Connectivity.SEPARATE


def assignment_step(
    points: np.ndarray,
    labels: np.ndarray,
    assignment: np.ndarray,
    centers: np.ndarray,
    merge_radius: int,
) -> np.ndarray:
    """
    Reassign every point to its nearest permitted center.

    Distances for all points are computed in one vectorized pass; the result
    is only applied after every point has chosen.

    Rules:
    - Nearest center wins, ties to the lowest index.
    - A labeled point never joins a center whose labeled majority carries the
      opposite label; it falls through to the next-nearest permitted center.
    - A point alone in its cluster ignores its own center. It may join a
      non-singleton center or a lower-index singleton, within merge_radius.
    - A point with no permitted center stays put.
    - A point in a larger cluster only moves when strictly closer to the
      target than to its own center.
    - No point may enter a cluster that every member is leaving this step.
    - Movers are admitted in index order; one that would put malware and
      accept members into the same cluster is sent back.

    Args:
        points: (n, d) bool array
        labels: (n,) label codes
        assignment: (n,) current center index per point
        centers: (k, d) bool array, every center non-empty
        merge_radius: Max distance a singleton may travel

    Returns:
        (n,) new center index per point, in the current center indexing
    """
    n_points = points.shape[0]
    n_centers = centers.shape[0]
    sentinel = points.shape[1] + 1

    distances = hamming_distances(points, centers)
    sizes = np.bincount(assignment, minlength=n_centers)
    majority = center_majority_labels(labels, assignment, n_centers)

    # Opposite labels multiply to a negative number
    permitted = (labels[:, None].astype(np.int16) * majority[None, :]) >= 0

    singleton = sizes[assignment] == 1
    if singleton.any():
        center_ids = np.arange(n_centers)
        own = assignment[:, None]
        reachable = (
            (center_ids[None, :] != own)
            & ((sizes[None, :] > 1) | (center_ids[None, :] < own))
            & (distances <= merge_radius)
        )
        permitted &= np.where(singleton[:, None], reachable, True)

    masked = np.where(permitted, distances, sentinel)
    target = np.argmin(masked, axis=1)
    rows = np.arange(n_points)
    chosen = masked[rows, target]
    stuck = chosen == sentinel
    no_gain = ~singleton & (chosen >= distances[rows, assignment])
    target = np.where(stuck | no_gain, assignment, target)

    return _admit_movers(labels, assignment, target, n_centers)


def _admit_movers(
    labels: np.ndarray,
    assignment: np.ndarray,
    target: np.ndarray,
    n_centers: int,
) -> np.ndarray:
    has_malware = np.bincount(assignment, weights=labels == LABEL_MALWARE, minlength=n_centers) > 0
    has_accept = np.bincount(assignment, weights=labels == LABEL_ACCEPT, minlength=n_centers) > 0

    # Clusters keeping at least one member; the others are emptied this step
    anchored = np.bincount(assignment, weights=target == assignment, minlength=n_centers) > 0

    result = assignment.copy()
    for i in np.flatnonzero(target != assignment):
        dest = target[i]
        if not anchored[dest]:
            continue
        if labels[i] == LABEL_MALWARE:
            if has_accept[dest]:
                continue
            has_malware[dest] = True
        elif labels[i] == LABEL_ACCEPT:
            if has_malware[dest]:
                continue
            has_accept[dest] = True
        result[i] = dest

    return result


def update_step(points: np.ndarray, assignment: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Recompute centers as per-coordinate majority votes and drop empty ones.

    Ties resolve to False. Surviving centers keep their relative order.

    Returns:
        (compacted assignment, centers)
    """
    n_slots = int(assignment.max()) + 1
    sizes = np.bincount(assignment, minlength=n_slots)
    true_counts = np.zeros((n_slots, points.shape[1]), dtype=np.int64)
    np.add.at(true_counts, assignment, points.astype(np.int64))

    centers = true_counts * 2 > sizes[:, None]

    occupied = sizes > 0
    remap = np.cumsum(occupied) - 1
    return remap[assignment], centers[occupied]


@dataclass
class TrainingOutcome:
    """Result of run_training."""

    assignment: np.ndarray
    centers: np.ndarray
    iterations: int
    converged: bool
    cancelled: bool
    history: list[int]


def run_training(
    points: np.ndarray,
    labels: np.ndarray,
    assignment: np.ndarray,
    centers: np.ndarray,
    eta: int,
    merge_radius: int,
    should_stop: Optional[Callable[[], bool]] = None,
    on_iteration: Optional[Callable[[int, int, int], None]] = None,
) -> TrainingOutcome:
    """
    Constrained relocation loop.

    Repeats assignment + update up to eta times, stopping early once no point
    moves. should_stop is checked at the top of every iteration; when it
    returns True the loop ends with the last completed iteration's results.

    Args:
        points: (n, d) bool array
        labels: (n,) label codes
        assignment: Starting assignment (singletons, or a partial run)
        centers: Centers consistent with assignment
        eta: Max iterations
        merge_radius: See assignment_step
        should_stop: Cancellation check
        on_iteration: Called with (iteration, moved, cluster_count)

    Returns:
        TrainingOutcome
    """
    history: list[int] = []
    iterations = 0
    converged = False
    cancelled = False

    for iteration in range(1, eta + 1):
        if should_stop is not None and should_stop():
            cancelled = True
            break

        proposed = assignment_step(points, labels, assignment, centers, merge_radius)
        moved = int(np.count_nonzero(proposed != assignment))
        assignment, centers = update_step(points, proposed)

        iterations = iteration
        history.append(int(centers.shape[0]))
        if on_iteration is not None:
            on_iteration(iteration, moved, int(centers.shape[0]))

        if moved == 0:
            converged = True
            break

    return TrainingOutcome(
        assignment=assignment,
        centers=centers,
        iterations=iterations,
        converged=converged,
        cancelled=cancelled,
        history=history,
    )


def cluster_label_summary(labels: np.ndarray, assignment: np.ndarray) -> list[dict]:
    """Per-cluster member and label counts, in center order."""
    summary = []
    for cluster_id in range(int(assignment.max()) + 1):
        members = labels[assignment == cluster_id]
        summary.append({
            "id": cluster_id,
            "members": int(members.size),
            "malware": int(np.count_nonzero(members == LABEL_MALWARE)),
            "accept": int(np.count_nonzero(members == LABEL_ACCEPT)),
            "unlabeled": int(np.count_nonzero(members == LABEL_NONE)),
        })
    return summary
