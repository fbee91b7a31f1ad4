"""
RSSI fitting configurations and their analytic models.

The received power model

    Pr(dBm) = 10·n·log10(k) + Pte(dBm) - 5·n·log10(d²),    k = c / (4π·f)

is fitted over any non-empty subset of {position, Pte, n}, giving seven
configurations. Parameters are always laid out in the same order:

    [x, y(, z)] [Pte] [n]

Two groupings of the frequency constant are used:
    - n fixed: kdB = 10·log10(k^n0) is precomputed with the initial n0.
    - n fitted: kdB = 10·log10(k) and the model uses n·kdB, so that
      ∂f/∂n = kdB - 5·log10(d²).

Partial derivatives with respect to the source position:
    ∂f/∂src_j = -10·n·(src_j - x_j) / (ln(10)·d²)
and, when the source lies exactly on a reading (d² = 0), the un-normalised
value -10·n·(src_j - x_j) is used instead.

The logarithm itself is evaluated on max(d², MIN_SQR_DISTANCE) so the model
stays finite there.

The default initial position is the centroid of the readings, moved a tenth
of the survey extent away when it falls on a reading.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from radiosource.estimators.nonlinear_least_squares import FunctionEvaluator
from radiosource.rf.measurement_models import frequency_constant, received_power_dbm

LN10 = np.log(10.0)

# Smallest squared distance, in m², the model takes the logarithm of
MIN_SQR_DISTANCE = 1e-12

# Fraction of the survey extent the centroid start is moved off a reading
CENTROID_OFFSET_FRACTION = 0.1


@dataclass(frozen=True)
class RssiFittingConfiguration:
    """Which parameters a fit estimates.

    Attributes:
        name: Human readable name of the configuration.
        position: Whether the source position is fitted.
        transmitted_power: Whether the transmitted power is fitted.
        path_loss: Whether the path-loss exponent is fitted.
    """

    name: str
    position: bool
    transmitted_power: bool
    path_loss: bool

    def number_of_parameters(self, dims: int) -> int:
        return dims * self.position + self.transmitted_power + self.path_loss


# keyed by (position, transmitted_power, path_loss)
FITTING_CONFIGURATIONS: Dict[Tuple[bool, bool, bool], RssiFittingConfiguration] = {
    (True, False, False): RssiFittingConfiguration("position", True, False, False),
    (False, True, False): RssiFittingConfiguration("transmitted_power", False, True, False),
    (False, False, True): RssiFittingConfiguration("path_loss", False, False, True),
    (True, True, False): RssiFittingConfiguration(
        "position_and_transmitted_power", True, True, False
    ),
    (True, False, True): RssiFittingConfiguration(
        "position_and_path_loss", True, False, True
    ),
    (False, True, True): RssiFittingConfiguration(
        "transmitted_power_and_path_loss", False, True, True
    ),
    (True, True, True): RssiFittingConfiguration(
        "position_transmitted_power_and_path_loss", True, True, True
    ),
}


def get_fitting_configuration(
    position: bool, transmitted_power: bool, path_loss: bool
) -> RssiFittingConfiguration:
    """
    Configuration for a combination of enabled parameters.

    Raises:
        ValueError: If no parameter is enabled.
    """
    key = (bool(position), bool(transmitted_power), bool(path_loss))
    if key not in FITTING_CONFIGURATIONS:
        raise ValueError("at least one parameter must be enabled for estimation")
    return FITTING_CONFIGURATIONS[key]


def centroid_initial_position(reading_positions: np.ndarray) -> np.ndarray:
    """
    Centroid of the reading positions, moved off any reading it falls on.

    A source placed on a reading makes the log-distance model singular, so
    the centroid of a symmetric survey (a grid containing its centre, say)
    is shifted diagonally by ``CENTROID_OFFSET_FRACTION`` of the survey
    extent, or by 1 m when all readings share one position.
    """
    reading_positions = np.asarray(reading_positions, dtype=float)
    centroid = np.mean(reading_positions, axis=0)
    sqr_distances = np.sum((reading_positions - centroid) ** 2, axis=1)
    if np.all(sqr_distances >= MIN_SQR_DISTANCE):
        return centroid

    extent = float(np.max(np.ptp(reading_positions, axis=0)))
    step = CENTROID_OFFSET_FRACTION * extent if extent > 0.0 else 1.0
    dims = reading_positions.shape[1]
    return centroid + step * np.ones(dims) / np.sqrt(dims)


class RssiFunctionEvaluator(FunctionEvaluator):
    """
    Received power model of one fitting configuration.

    Args:
        configuration: Parameters being fitted.
        reading_positions: Positions of the readings, shape (m, dims).
        rssi: Measured RSSI values in dBm, shape (m,).
        frequency: Carrier frequency of the source in Hz.
        initial_position: Initial or fixed source position. Required when
            the position is not fitted; defaults to the centroid of the
            readings otherwise.
        initial_transmitted_power_dbm: Initial or fixed power. Defaults to
            the mean RSSI.
        initial_path_loss_exponent: Initial or fixed path-loss exponent.
    """

    def __init__(
        self,
        configuration: RssiFittingConfiguration,
        reading_positions: np.ndarray,
        rssi: np.ndarray,
        frequency: float,
        initial_position: Optional[np.ndarray],
        initial_transmitted_power_dbm: Optional[float],
        initial_path_loss_exponent: float,
    ):
        self.configuration = configuration
        self.reading_positions = np.asarray(reading_positions, dtype=float)
        self.rssi = np.asarray(rssi, dtype=float)
        self.dims = self.reading_positions.shape[1]

        if initial_position is None:
            if not configuration.position:
                raise ValueError("initial position is required when it is not estimated")
            initial_position = centroid_initial_position(self.reading_positions)
        if initial_transmitted_power_dbm is None:
            initial_transmitted_power_dbm = float(np.mean(self.rssi))

        self.initial_position = np.asarray(initial_position, dtype=float)
        self.initial_transmitted_power_dbm = float(initial_transmitted_power_dbm)
        self.initial_path_loss_exponent = float(initial_path_loss_exponent)

        k = frequency_constant(frequency)
        if configuration.path_loss:
            self.k_db = 10.0 * np.log10(k)
        else:
            self.k_db = 10.0 * np.log10(k**self.initial_path_loss_exponent)

        self._n_params = configuration.number_of_parameters(self.dims)
        self._power_index = self.dims * configuration.position
        self._path_loss_index = self._power_index + configuration.transmitted_power

    @property
    def number_of_dimensions(self) -> int:
        return self._n_params

    def create_initial_parameters(self) -> np.ndarray:
        params = []
        if self.configuration.position:
            params.extend(self.initial_position)
        if self.configuration.transmitted_power:
            params.append(self.initial_transmitted_power_dbm)
        if self.configuration.path_loss:
            params.append(self.initial_path_loss_exponent)
        return np.array(params, dtype=float)

    def input_points(self) -> np.ndarray:
        """
        Input matrix handed to the fitter.

        Reading positions when the position is fitted. Otherwise the model
        reads positions by observation index and the rows are a constant
        filler holding the initial value of the first fitted parameter.
        """
        if self.configuration.position:
            return self.reading_positions
        m = len(self.reading_positions)
        return np.full((m, 1), self.create_initial_parameters()[0])

    def evaluate(
        self,
        i: int,
        point: np.ndarray,
        params: np.ndarray,
        derivatives: np.ndarray,
    ) -> float:
        cfg = self.configuration
        dims = self.dims

        if cfg.position:
            diff = params[:dims] - point
        else:
            diff = self.initial_position - self.reading_positions[i]
        sqr_distance = float(diff @ diff)

        if cfg.transmitted_power:
            power = params[self._power_index]
            derivatives[self._power_index] = 1.0
        else:
            power = self.initial_transmitted_power_dbm

        if cfg.path_loss:
            n = params[self._path_loss_index]
            log_sqr_distance = np.log10(max(sqr_distance, MIN_SQR_DISTANCE))
            derivatives[self._path_loss_index] = self.k_db - 5.0 * log_sqr_distance
            value = n * self.k_db + power - 5.0 * n * log_sqr_distance
        else:
            n = self.initial_path_loss_exponent
            value = self.k_db + power - 5.0 * n * np.log10(
                max(sqr_distance, MIN_SQR_DISTANCE)
            )

        if cfg.position:
            position_derivatives = -10.0 * n * diff
            ln10_sqr_distance = LN10 * sqr_distance
            if ln10_sqr_distance != 0.0:
                position_derivatives /= ln10_sqr_distance
            derivatives[:dims] = position_derivatives

        return float(value)


def split_covariance(
    covariance: Optional[np.ndarray],
    configuration: RssiFittingConfiguration,
    dims: int,
) -> Tuple[Optional[np.ndarray], Optional[float], Optional[float]]:
    """
    Slice a parameter covariance into its position, power and path-loss parts.

    Returns:
        position_covariance: (dims × dims) block, or None if not fitted.
        transmitted_power_variance: Scalar, or None if not fitted.
        path_loss_exponent_variance: Scalar, or None if not fitted.
    """
    if covariance is None:
        return None, None, None

    idx = 0
    position_covariance = None
    power_variance = None
    path_loss_variance = None

    if configuration.position:
        position_covariance = covariance[:dims, :dims].copy()
        idx += dims
    if configuration.transmitted_power:
        power_variance = float(covariance[idx, idx])
        idx += 1
    if configuration.path_loss:
        path_loss_variance = float(covariance[idx, idx])

    return position_covariance, power_variance, path_loss_variance


def rssi_residuals(
    reading_positions: np.ndarray,
    rssi: np.ndarray,
    frequency: float,
    position: np.ndarray,
    transmitted_power_dbm: float,
    path_loss_exponent: float,
) -> np.ndarray:
    """
    Absolute difference between measured RSSI and the RSSI predicted by a
    candidate source, evaluated with the candidate's own path-loss exponent.
    """
    sqr_distances = np.sum((reading_positions - position) ** 2, axis=1)
    expected = received_power_dbm(
        transmitted_power_dbm, sqr_distances, path_loss_exponent, frequency
    )
    return np.abs(expected - rssi)
