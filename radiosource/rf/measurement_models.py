"""
RF measurement models for radio source estimation.

This module implements the isotropic free-space received power model used by
every RSSI-based estimator, together with power unit conversions.

Received power (Friis, generalised to a path-loss exponent n):
    Pr = Pte · (c / (4π·f))^n / d^n

For numerical accuracy the model is always evaluated in the log domain:
    Pr(dBm) = 10·n·log10(k) + Pte(dBm) - 5·n·log10(d²),    k = c / (4π·f)

where Pte is the equivalent transmitted power (transmitted power combined
with the unknown antenna gains) and d² the squared distance between the
source and the receiver.
"""

from typing import Union

import numpy as np

# Physical constants
SPEED_OF_LIGHT = 299792458.0  # m/s


def dbm_to_power(dbm: float) -> float:
    """
    Convert power from dBm to milliwatts.

    P(mW) = 10^(dBm / 10)

    Example:
        >>> dbm_to_power(0.0)
        1.0
        >>> dbm_to_power(-30.0)
        0.001
    """
    return 10.0 ** (dbm / 10.0)


def power_to_dbm(power: float) -> float:
    """
    Convert power from milliwatts to dBm.

    dBm = 10·log10(P(mW))

    Raises:
        ValueError: If ``power`` is negative.
    """
    if power < 0.0:
        raise ValueError(f"power must be non-negative, got {power}")
    with np.errstate(divide="ignore"):
        return float(10.0 * np.log10(power))


def frequency_constant(frequency: float) -> float:
    """
    Constant part of the isotropic received power formula, k = c / (4π·f).

    Args:
        frequency: Carrier frequency in Hz.

    Returns:
        k in meters (wavelength divided by 4π).
    """
    if frequency <= 0.0:
        raise ValueError(f"frequency must be positive, got {frequency}")
    return SPEED_OF_LIGHT / (4.0 * np.pi * frequency)


def received_power_dbm(
    transmitted_power_dbm: float,
    sqr_distance: Union[float, np.ndarray],
    path_loss_exponent: float,
    frequency: float,
) -> Union[float, np.ndarray]:
    """
    Expected received power at a given squared distance from the source.

    Implements Pr(dBm) = 10·n·log10(k) + Pte(dBm) - 5·n·log10(d²).

    Args:
        transmitted_power_dbm: Equivalent transmitted power Pte in dBm.
        sqr_distance: Squared distance(s) d² in m².
        path_loss_exponent: Path-loss exponent n (2.0 in free space).
        frequency: Carrier frequency in Hz.

    Returns:
        Received power in dBm. Zero distances give +inf.

    Example:
        >>> # 2.4 GHz access point with 0 dBm at 1 m
        >>> rssi = received_power_dbm(0.0, 1.0, 2.0, 2.4e9)
        >>> print(f"{rssi:.2f} dBm")
        -40.05 dBm
    """
    k_db = 10.0 * path_loss_exponent * np.log10(frequency_constant(frequency))
    with np.errstate(divide="ignore"):
        return (
            k_db
            + transmitted_power_dbm
            - 5.0 * path_loss_exponent * np.log10(sqr_distance)
        )
