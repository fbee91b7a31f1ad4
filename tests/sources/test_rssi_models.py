"""
Unit tests for the RSSI fitting models.

Tests cover:
    - Finite model value and derivatives with the source on a reading
    - Analytic derivatives against finite differences
    - Centroid start moved off readings
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from radiosource.rf.measurement_models import received_power_dbm
from radiosource.sources.models import (
    CENTROID_OFFSET_FRACTION,
    MIN_SQR_DISTANCE,
    RssiFunctionEvaluator,
    centroid_initial_position,
    get_fitting_configuration,
)

FREQUENCY = 2.4e9
GRID = np.array([(x, y) for x in (-5.0, 0.0, 5.0) for y in (-5.0, 0.0, 5.0)])


def make_evaluator(position, power, path_loss, initial_position=None):
    configuration = get_fitting_configuration(position, power, path_loss)
    rssi = received_power_dbm(
        0.0, np.sum((GRID - [1.0, 2.0]) ** 2, axis=1), 2.0, FREQUENCY
    )
    return RssiFunctionEvaluator(
        configuration, GRID, rssi, FREQUENCY, initial_position, None, 2.0
    )


class TestSourceOnReading:
    def test_position_and_power(self):
        evaluator = make_evaluator(True, True, False)
        point = GRID[4]
        params = np.array([point[0], point[1], -3.0])
        derivatives = np.zeros(3)

        value = evaluator.evaluate(4, point, params, derivatives)

        assert np.isfinite(value)
        # un-normalised position derivative vanishes with the distance
        assert_array_equal(derivatives[:2], [0.0, 0.0])
        assert derivatives[2] == 1.0

    def test_path_loss_derivative(self):
        evaluator = make_evaluator(False, False, True, initial_position=GRID[0])
        params = np.array([2.5])
        derivatives = np.zeros(1)

        value = evaluator.evaluate(0, np.zeros(1), params, derivatives)

        expected_derivative = evaluator.k_db - 5.0 * np.log10(MIN_SQR_DISTANCE)
        assert np.isfinite(value)
        assert derivatives[0] == pytest.approx(expected_derivative)


class TestDerivatives:
    @pytest.mark.parametrize(
        "position,power,path_loss",
        [(True, False, False), (True, True, False), (True, False, True), (True, True, True)],
    )
    def test_match_finite_differences(self, position, power, path_loss):
        evaluator = make_evaluator(position, power, path_loss)
        params = evaluator.create_initial_parameters() + 0.3
        point = GRID[0]
        derivatives = np.zeros(len(params))
        evaluator.evaluate(0, point, params, derivatives)

        eps = 1e-5
        numeric = np.zeros(len(params))
        for j in range(len(params)):
            step = np.zeros(len(params))
            step[j] = eps
            upper = evaluator.evaluate(0, point, params + step, np.zeros(len(params)))
            lower = evaluator.evaluate(0, point, params - step, np.zeros(len(params)))
            numeric[j] = (upper - lower) / (2.0 * eps)

        assert_allclose(derivatives, numeric, rtol=1e-5, atol=1e-6)


class TestCentroidInitialPosition:
    def test_centroid_kept_when_off_readings(self):
        positions = np.array([[0.0, 0.0], [4.0, 0.0], [0.0, 2.0]])
        assert_allclose(centroid_initial_position(positions), [4.0 / 3.0, 2.0 / 3.0])

    def test_moved_off_grid_centre(self):
        start = centroid_initial_position(GRID)

        assert np.min(np.linalg.norm(GRID - start, axis=1)) > 0.5
        assert np.linalg.norm(start) == pytest.approx(CENTROID_OFFSET_FRACTION * 10.0)

    def test_coincident_readings(self):
        positions = np.ones((4, 3))
        start = centroid_initial_position(positions)
        assert np.linalg.norm(start - 1.0) == pytest.approx(1.0)

    def test_evaluator_default_start(self):
        evaluator = make_evaluator(True, True, False)
        assert_allclose(evaluator.initial_position, centroid_initial_position(GRID))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
