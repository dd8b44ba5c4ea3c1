"""
Quick-look plots of meshes and solutions (2D only).
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.tri import Triangulation
from typing import Optional

from .mesh import Mesh
from .result import PoissonResult


def _require_2d(mesh: Mesh) -> None:
    if mesh.dim != 2:
        raise ValueError(f"Plotting is only available in 2D, mesh has dim={mesh.dim}")


def triangulate(mesh: Mesh) -> Triangulation:
    """
    Split every active quadrilateral into two triangles.

    Triangles follow the cells, so holes in the domain (annulus) stay empty.
    """
    _require_2d(mesh)
    cells = mesh.active_cells()
    # lexicographic corners 0,1,3,2 go around the cell counter-clockwise
    triangles = np.concatenate([cells[:, [0, 1, 3]], cells[:, [0, 3, 2]]])
    vertices = mesh.vertices
    return Triangulation(vertices[:, 0], vertices[:, 1], triangles)


def plot_mesh(mesh: Mesh, ax: Optional[plt.Axes] = None, title: str = "Mesh") -> plt.Axes:
    """
    Draw the edges of all active cells.

    Args:
        mesh: 2D mesh
        ax: Axes to draw into (a new figure by default)
        title: Axes title

    Returns:
        The axes
    """
    _require_2d(mesh)
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 6))

    vertices = mesh.vertices
    for cell in mesh.active_cells():
        # Close the loop
        nodes = cell[[0, 1, 3, 2, 0]]
        ax.plot(vertices[nodes, 0], vertices[nodes, 1], "k-", lw=0.5)

    ax.set_title(title)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_aspect("equal")
    return ax


def plot_solution(
    result: PoissonResult,
    ax: Optional[plt.Axes] = None,
    title: str = "FEM Solution",
    show_mesh: bool = True,
    levels: int = 20,
) -> plt.Axes:
    """
    Filled contour plot of the solution at the mesh vertices.

    Args:
        result: Output of FEMSolver.run()
        ax: Axes to draw into (a new figure by default)
        title: Axes title
        show_mesh: Overlay the cell edges
        levels: Number of contour levels

    Returns:
        The axes
    """
    tri = triangulate(result.mesh)
    if ax is None:
        _, ax = plt.subplots(figsize=(7, 6))

    values = result.vertex_values()
    if np.ptp(values) <= 1e-10 * max(1.0, float(np.max(np.abs(values)))):
        # tricontourf needs a non-degenerate range
        levels = np.array([values.min() - 0.5, values.max() + 0.5])
    im = ax.tricontourf(tri, values, levels, cmap="viridis")
    plt.colorbar(im, ax=ax, label="u")

    if show_mesh:
        plot_mesh(result.mesh, ax=ax, title=title)
    else:
        ax.set_title(title)
        ax.set_aspect("equal")
    return ax
