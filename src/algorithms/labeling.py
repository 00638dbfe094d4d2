"""
Connected-component labelling and boundary tracing on binary masks.

Labelling is the classic two-pass scheme with 4-connectivity, run-length
encoded per row: the first pass gives every run a provisional label and
records equivalences with overlapping runs of the previous row in a
union-find; the second pass writes each run's representative label.
"""

from typing import Dict, List, Tuple

import numpy as np

# Moore neighbourhood, clockwise in image coordinates (y grows downwards)
MOORE_DIRECTIONS = [
    (1, 0),  # E
    (1, 1),  # SE
    (0, 1),  # S
    (-1, 1),  # SW
    (-1, 0),  # W
    (-1, -1),  # NW
    (0, -1),  # N
    (1, -1),  # NE
]
NORTH = 6


class UnionFind:
    """Array-backed disjoint sets; the representative is the smallest member."""

    def __init__(self, size: int = 0):
        self.parent: List[int] = list(range(size))

    def add(self) -> int:
        self.parent.append(len(self.parent))
        return len(self.parent) - 1

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        # Path compression
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> int:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        if ra < rb:
            self.parent[rb] = ra
            return ra
        self.parent[ra] = rb
        return rb


def _row_runs(row: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Start (inclusive) and end (exclusive) columns of foreground runs."""
    padded = np.concatenate(([False], row, [False]))
    changes = np.flatnonzero(padded[1:] != padded[:-1])
    return changes[0::2], changes[1::2]


def label_components(foreground: np.ndarray) -> np.ndarray:
    """
    Label 4-connected foreground components.

    Labels are positive integers; 0 is background. Each component carries
    the smallest provisional label of its runs, so ordering components by
    label orders them by first appearance in raster scan.

    Args:
        foreground: Boolean mask of shape (H, W)

    Returns:
        int32 label image of shape (H, W)
    """
    height, _ = foreground.shape
    forest = UnionFind(1)  # index 0 is background
    row_runs: List[Tuple[np.ndarray, np.ndarray, List[int]]] = []

    # First pass: provisional labels and equivalences
    previous: Tuple[np.ndarray, np.ndarray, List[int]] = (np.empty(0), np.empty(0), [])
    for y in range(height):
        starts, ends = _row_runs(foreground[y])
        labels = []
        p = 0
        prev_starts, prev_ends, prev_labels = previous
        for start, end in zip(starts, ends):
            label = forest.add()
            # Advance past previous-row runs that end before this run starts
            while p < len(prev_starts) and prev_ends[p] <= start:
                p += 1
            q = p
            while q < len(prev_starts) and prev_starts[q] < end:
                forest.union(label, prev_labels[q])
                q += 1
            labels.append(label)
        previous = (starts, ends, labels)
        row_runs.append(previous)

    # Second pass: write representatives
    output = np.zeros(foreground.shape, dtype=np.int32)
    for y, (starts, ends, labels) in enumerate(row_runs):
        for start, end, label in zip(starts, ends, labels):
            output[y, start:end] = forest.find(label)
    return output


def component_statistics(labels: np.ndarray) -> List[Dict]:
    """
    Per-component geometry, ordered by label.

    Returns:
        Dicts with label, area, centroid (x, y), bbox (x, y, width, height),
        perimeter, and the first raster pixel ``start`` (x, y)
    """
    ys, xs = np.nonzero(labels)
    if ys.size == 0:
        return []

    pixel_labels = labels[ys, xs]
    unique, first_index, inverse = np.unique(pixel_labels, return_index=True, return_inverse=True)
    count = unique.size

    area = np.bincount(inverse, minlength=count)
    sum_x = np.bincount(inverse, weights=xs, minlength=count)
    sum_y = np.bincount(inverse, weights=ys, minlength=count)

    min_x = np.full(count, np.iinfo(np.int64).max)
    min_y = np.full(count, np.iinfo(np.int64).max)
    max_x = np.zeros(count, dtype=np.int64)
    max_y = np.zeros(count, dtype=np.int64)
    np.minimum.at(min_x, inverse, xs)
    np.minimum.at(min_y, inverse, ys)
    np.maximum.at(max_x, inverse, xs)
    np.maximum.at(max_y, inverse, ys)

    # Missing 4-neighbours per foreground pixel; out of bounds counts as missing
    fg = np.pad(labels > 0, 1, constant_values=False)
    present = (
        fg[:-2, 1:-1].astype(np.int64)
        + fg[2:, 1:-1]
        + fg[1:-1, :-2]
        + fg[1:-1, 2:]
    )
    missing = 4 - present[ys, xs]
    perimeter = np.bincount(inverse, weights=missing, minlength=count)

    stats = []
    for i in range(count):
        stats.append(
            {
                "label": int(unique[i]),
                "area": int(area[i]),
                "centroid": (float(sum_x[i] / area[i]), float(sum_y[i] / area[i])),
                "bbox": (
                    int(min_x[i]),
                    int(min_y[i]),
                    int(max_x[i] - min_x[i] + 1),
                    int(max_y[i] - min_y[i] + 1),
                ),
                "perimeter": int(perimeter[i]),
                "start": (int(xs[first_index[i]]), int(ys[first_index[i]])),
            }
        )
    return stats


def trace_boundary(
    foreground: np.ndarray,
    start: Tuple[int, int],
    max_steps: int,
    start_direction: int = NORTH,
) -> List[Tuple[int, int]]:
    """
    Moore-neighbour boundary walk from a start pixel.

    At each step the eight neighbours are searched clockwise from the current
    direction; after a move the search resumes at (direction + 5) mod 8. The
    walk ends on returning to the start, after ``max_steps`` moves, or when a
    pixel has no foreground neighbour.

    Returns:
        Visited (x, y) points, beginning with the start pixel
    """
    height, width = foreground.shape
    current = start
    contour = [start]
    direction = start_direction
    steps = 0

    while True:
        found = False
        for i in range(8):
            check = (direction + i) % 8
            dx, dy = MOORE_DIRECTIONS[check]
            nx, ny = current[0] + dx, current[1] + dy
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            if foreground[ny, nx]:
                current = (nx, ny)
                contour.append(current)
                direction = (check + 5) % 8
                found = True
                break

        if not found:
            break

        steps += 1
        if current == start or steps >= max_steps:
            break

    return contour
