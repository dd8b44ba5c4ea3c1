import numpy as np
import pytest

from poisson_fem.geometry import Domain, generate_mesh
from poisson_fem.mesh import Mesh


@pytest.mark.parametrize("levels", [0, 1, 2, 3])
def test_refine_global_cell_counts_2d(levels):
    mesh = generate_mesh(Domain.box([2.0, 4.0]))
    mesh.refine_global(levels)
    assert mesh.n_active_cells == 8 * 4**levels
    assert mesh.n_cells == 8 * (4 ** (levels + 1) - 1) // 3
    assert mesh.max_level == levels
    assert mesh.n_vertices == (2 * 2**levels + 1) * (4 * 2**levels + 1)
    assert np.isclose(mesh.volume(), 8.0)


def test_refine_global_cell_counts_3d():
    mesh = generate_mesh(Domain.box([1.0, 1.0, 1.0]))
    mesh.refine_global(2)
    assert mesh.n_active_cells == 64
    assert mesh.n_cells == 1 + 8 + 64
    assert mesh.n_vertices == 5**3
    assert np.isclose(mesh.volume(), 1.0)


def test_children_link_to_parent():
    mesh = generate_mesh(Domain.box([1.0, 1.0]))
    mesh.refine_global(1)
    root = mesh.cells[0]
    assert not root.active
    assert len(root.children) == 4
    for child in root.children:
        assert mesh.cells[child].parent == 0
        assert mesh.cells[child].level == 1
        assert mesh.cells[child].active


def test_neighbours_share_new_vertices():
    mesh = generate_mesh(Domain.box([2.0, 1.0]))
    mesh.refine_global(1)
    # 5 x 3 grid, no duplicated midpoint on the shared edge
    assert mesh.n_vertices == 15
    assert len(np.unique(np.round(mesh.vertices, 12), axis=0)) == 15


def test_refine_near_boundary_refines_only_touching_cells():
    mesh = generate_mesh(Domain.box([1.0, 1.0]))
    mesh.refine_global(1)
    refined = mesh.refine_near_boundary(lambda points: np.abs(points[:, 0]) < 1e-12, passes=1)
    assert refined == 2
    assert mesh.n_active_cells == 2 + 2 * 4
    assert np.isclose(mesh.volume(), 1.0)
    assert len(mesh.hanging_edges()) == 2


def test_refine_near_boundary_without_flags_is_a_no_op():
    mesh = generate_mesh(Domain.annulus(1.0, 2.0))
    mesh.refine_global(1)
    before = (mesh.n_cells, mesh.n_vertices)
    assert mesh.refine_near_boundary(lambda points: np.zeros(len(points), dtype=bool)) == 0
    assert (mesh.n_cells, mesh.n_vertices) == before
    assert mesh.refine_near_boundary(lambda points: np.ones(len(points), dtype=bool), passes=0) == 0
    assert (mesh.n_cells, mesh.n_vertices) == before


def test_refine_near_inner_circle_of_annulus():
    domain = Domain.annulus(1.0, 2.0)
    mesh = generate_mesh(domain)
    mesh.refine_global(1)
    refined = mesh.refine_near_boundary(domain.inner_boundary_predicate(), passes=3)
    # 20, 40 and 80 cells touch the inner circle in the three passes
    assert refined == 140
    assert mesh.max_level == 4
    assert mesh.hanging_edges()

    radii = np.linalg.norm(mesh.vertices - np.array(domain.center), axis=1)
    assert np.sum(np.abs(radii - 1.0) < 1e-12) == 10 * 2**4


def test_local_refinement_rejected_in_3d():
    mesh = generate_mesh(Domain.box([1.0, 1.0, 1.0]))
    with pytest.raises(ValueError):
        mesh.refine_near_boundary(lambda points: np.ones(len(points), dtype=bool))


def test_invalid_meshes():
    with pytest.raises(ValueError):
        Mesh(np.zeros((4, 1)), [[0, 1, 2, 3]])
    with pytest.raises(ValueError):
        Mesh(np.zeros((4, 2)), [[0, 1, 2]])
    with pytest.raises(ValueError):
        generate_mesh(Domain.box([1.0, 1.0])).refine_global(-1)


def test_globally_refined_mesh_has_no_hanging_edges(unit_square_mesh):
    assert unit_square_mesh.hanging_edges() == []
