import numpy as np
import pytest

from poisson_fem.element import Element, SourceTerm
from poisson_fem.shape_functions import LagrangeElement

UNIT_SQUARE = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])


def test_q1_stiffness_on_unit_square():
    element = Element(LagrangeElement(1, 2))
    expected = np.array(
        [[4, -1, -1, -2], [-1, 4, -2, -1], [-1, -2, 4, -1], [-2, -1, -1, 4]]
    ) / 6.0
    assert np.allclose(element.stiffness_matrix(UNIT_SQUARE), expected)


@pytest.mark.parametrize("degree", [1, 2, 3])
def test_stiffness_is_symmetric_with_constant_null_space(degree):
    element = Element(LagrangeElement(degree, 2))
    corners = np.array([[0.0, 0.0], [2.0, 0.2], [0.3, 1.0], [1.8, 1.5]])
    K = element.stiffness_matrix(corners)
    assert np.allclose(K, K.T)
    assert np.allclose(K.sum(axis=1), 0.0)
    assert np.all(np.linalg.eigvalsh(K) > -1e-12)


def test_stiffness_is_scale_invariant_in_2d():
    element = Element(LagrangeElement(1, 2))
    assert np.allclose(element.stiffness_matrix(3.0 * UNIT_SQUARE), element.stiffness_matrix(UNIT_SQUARE))


@pytest.mark.parametrize("dim, degree", [(2, 1), (2, 2), (3, 1), (3, 2)])
def test_constant_load_integrates_to_cell_volume(dim, degree):
    element = Element(LagrangeElement(degree, dim))
    corners = 2.0 * element.mapping.geometry.node_points
    f = element.load_vector(corners, SourceTerm.constant(1.0))
    assert f.shape == ((degree + 1) ** dim,)
    assert np.isclose(f.sum(), 2.0**dim)


def test_q1_load_on_unit_square():
    element = Element(LagrangeElement(1, 2))
    K, f = element.local_system(UNIT_SQUARE, SourceTerm.constant(4.0))
    assert np.allclose(f, 1.0)
    assert K.shape == (4, 4)


def test_source_terms():
    points = np.array([[1.0, 2.0], [0.0, -1.0]])
    assert np.allclose(SourceTerm.constant(3.0).evaluate(points), 3.0)
    assert np.allclose(SourceTerm.quartic().evaluate(points), [4.0 + 64.0, 4.0])
    assert np.allclose(SourceTerm.from_function(lambda p: p[:, 0]).evaluate(points), [1.0, 0.0])
    assert np.allclose(SourceTerm.from_function(lambda p: 2.0).evaluate(points), 2.0)
    assert repr(SourceTerm.constant(1.0)) == "SourceTerm.constant(1.0)"
