import numpy as np
import pytest

from poisson_fem.exceptions import InvalidDomain
from poisson_fem.geometry import ANNULUS_CENTER, Domain, DomainKind, generate_mesh


def test_box_coarse_mesh_uses_unit_cells():
    mesh = generate_mesh(Domain.box([2.0, 4.0]))
    assert mesh.dim == 2
    assert mesh.n_cells == 8
    assert mesh.n_vertices == 15
    assert np.isclose(mesh.volume(), 8.0)


def test_box_with_explicit_repetitions():
    mesh = generate_mesh(Domain.box([1.0, 1.0, 1.0], repetitions=[2, 1, 1]))
    assert mesh.dim == 3
    assert mesh.n_cells == 2
    assert np.isclose(mesh.volume(), 1.0)


def test_annulus_coarse_mesh():
    domain = Domain.annulus(1.0, 2.0)
    mesh = generate_mesh(domain)
    assert domain.center == ANNULUS_CENTER
    assert mesh.n_cells == 10
    assert mesh.n_vertices == 20

    radii = np.linalg.norm(mesh.vertices - np.array(ANNULUS_CENTER), axis=1)
    assert np.allclose(np.sort(radii), [1.0] * 10 + [2.0] * 10)


def test_annulus_refinement_keeps_circles():
    mesh = generate_mesh(Domain.annulus(1.0, 2.0))
    mesh.refine_global(2)
    radii = np.linalg.norm(mesh.vertices - np.array(ANNULUS_CENTER), axis=1)
    assert np.sum(np.abs(radii - 1.0) < 1e-12) == 40
    assert np.sum(np.abs(radii - 2.0) < 1e-12) == 40
    assert np.all((radii > 1.0 - 1e-12) & (radii < 2.0 + 1e-12))


def test_annulus_area_converges():
    mesh = generate_mesh(Domain.annulus(1.0, 2.0))
    mesh.refine_global(3)
    assert mesh.volume() == pytest.approx(3.0 * np.pi, rel=1e-2)


@pytest.mark.parametrize(
    "domain",
    [
        Domain.annulus(2.0, 1.0),
        Domain.annulus(1.0, 1.0),
        Domain.annulus(-1.0, 1.0),
        Domain.annulus(None, 1.0),
        Domain.annulus(1.0, np.inf),
        Domain.annulus(np.nan, 2.0),
        Domain.annulus(1.0, np.nan),
        Domain.box([1.0]),
        Domain.box([1.0, 0.0]),
        Domain.box([1.0, 1.0, 1.0, 1.0]),
        Domain.box([1.0, 1.0], repetitions=[1]),
    ],
)
def test_invalid_domains(domain):
    with pytest.raises(InvalidDomain):
        generate_mesh(domain)


def test_invalid_domain_is_a_value_error():
    with pytest.raises(ValueError):
        Domain.annulus(2.0, 1.0).validate()


def test_box_boundary_ids():
    domain = Domain.box([2.0, 4.0])
    assert domain.boundary_id(np.array([[0.0, 1.0], [0.0, 2.0]])) == 0
    assert domain.boundary_id(np.array([[2.0, 1.0], [2.0, 2.0]])) == 1
    assert domain.boundary_id(np.array([[0.0, 0.0], [1.0, 0.0]])) == 2
    assert domain.boundary_id(np.array([[0.0, 4.0], [1.0, 4.0]])) == 3
    assert domain.boundary_id(np.array([[1.0, 1.0], [1.0, 2.0]])) is None
    # one corner on the boundary is not enough
    assert domain.boundary_id(np.array([[0.0, 1.0], [1.0, 1.0]])) is None


def test_annulus_boundary_ids_and_predicate():
    domain = Domain.annulus(1.0, 2.0)
    assert domain.kind is DomainKind.ANNULUS
    assert domain.boundary_id(np.array([[2.0, 0.0], [1.0, 1.0]])) == 0
    assert domain.boundary_id(np.array([[3.0, 0.0], [1.0, 2.0]])) == 1
    assert domain.boundary_id(np.array([[2.0, 0.0], [3.0, 0.0]])) is None

    predicate = domain.inner_boundary_predicate()
    assert predicate(np.array([[2.0, 0.0], [2.5, 0.0], [1.0, -1.0]])).tolist() == [True, False, True]

    with pytest.raises(ValueError):
        Domain.box([1.0, 1.0]).inner_boundary_predicate()
