import numpy as np
import pytest

from poisson_fem.exceptions import InvalidDegree
from poisson_fem.quadrature import QuadratureRule
from poisson_fem.shape_functions import CellMapping, LagrangeElement, face_corners, lagrange_1d


@pytest.mark.parametrize("degree", [1, 2, 3])
def test_lagrange_1d_is_nodal(degree):
    nodes = np.linspace(0.0, 1.0, degree + 1)
    values, derivatives = lagrange_1d(degree, nodes)
    assert np.allclose(values, np.eye(degree + 1))
    # derivatives of a partition of unity sum to zero
    assert np.allclose(derivatives.sum(axis=1), 0.0)


@pytest.mark.parametrize("dim", [2, 3])
@pytest.mark.parametrize("degree", [1, 2, 3])
def test_element_is_nodal_partition_of_unity(degree, dim):
    fe = LagrangeElement(degree, dim)
    assert fe.dofs_per_cell == (degree + 1) ** dim
    assert np.allclose(fe.values(fe.node_points), np.eye(fe.dofs_per_cell))

    points = QuadratureRule(3, dim).points
    assert np.allclose(fe.values(points).sum(axis=1), 1.0)
    assert np.allclose(fe.gradients(points).sum(axis=1), 0.0)


def test_gradients_reproduce_linear_function():
    fe = LagrangeElement(2, 2)
    coefficients = 3.0 * fe.node_points[:, 0] - 2.0 * fe.node_points[:, 1]
    gradients = np.einsum("qnd,n->qd", fe.gradients(QuadratureRule(2, 2).points), coefficients)
    assert np.allclose(gradients, [3.0, -2.0])


def test_lexicographic_node_order():
    fe = LagrangeElement(1, 2)
    assert fe.node_indices.tolist() == [[0, 0], [1, 0], [0, 1], [1, 1]]
    assert repr(fe) == "FE_Q<2>(1)"


def test_face_nodes_match_face_corners():
    fe = LagrangeElement(1, 3)
    for nodes, corners in zip(fe.face_nodes(), face_corners(3)):
        assert nodes.tolist() == corners.tolist()
    assert [f.size for f in LagrangeElement(2, 2).face_nodes()] == [3, 3, 3, 3]


@pytest.mark.parametrize("degree", [0, -1, 1.5, "2", True])
def test_invalid_degree(degree):
    with pytest.raises(InvalidDegree):
        LagrangeElement(degree, 2)


def test_mapping_of_a_rectangle():
    mapping = CellMapping(2)
    corners = np.array([[1.0, 2.0], [3.0, 2.0], [1.0, 3.0], [3.0, 3.0]])
    points = np.array([[0.5, 0.5], [0.0, 1.0]])
    assert np.allclose(mapping.map_to_physical(points, corners), [[2.0, 2.5], [1.0, 3.0]])

    J, det_J, inv_J = mapping.jacobians(points, corners)
    assert np.allclose(J[0], np.diag([2.0, 1.0]))
    assert np.allclose(det_J, 2.0)
    assert np.allclose(inv_J[0], np.diag([0.5, 1.0]))


def test_inverted_cell_is_rejected():
    mapping = CellMapping(2)
    corners = np.array([[1.0, 0.0], [0.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    with pytest.raises(ValueError):
        mapping.jacobians(np.array([[0.5, 0.5]]), corners)
