"""
RSSI Radio Source Estimation: Plain vs. Robust.

This script simulates a WiFi access point surveyed by a receiver walking a
grid, corrupts a fraction of the RSSI readings with gross errors (body
shadowing, multipath spikes, mislabelled BSSIDs) and compares the plain
Levenberg-Marquardt estimator with a robust consensus estimator over a
Monte-Carlo run.

Can run with:
    - Default scenario: python example_rssi_source_estimation.py
    - More outliers: python example_rssi_source_estimation.py --outlier-ratio 0.3
    - Without figures: python example_rssi_source_estimation.py --no-plot

Implements:
    - Isotropic received power model
    - Weighted Levenberg-Marquardt source fitting
    - RANSAC / MSAC / LMedS / PROSAC / PROMedS consensus
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, List, Tuple

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from radiosource.exceptions import RadioSourceEstimationError
from radiosource.rf import RssiReadingLocated, WifiAccessPoint, received_power_dbm
from radiosource.robust import RobustMethod
from radiosource.sources import (
    RobustEstimatorOptions,
    RssiRadioSourceEstimator2D,
    create_robust_rssi_estimator,
)

logger = logging.getLogger(__name__)

ACCESS_POINT = WifiAccessPoint("00:1a:2b:3c:4d:5e", 2.412e9, ssid="lab-ap")
TRUE_POSITION = np.array([4.0, 6.5])
TRUE_POWER_DBM = -2.0
PATH_LOSS_EXPONENT = 2.0


def survey_positions(spacing: float = 2.5) -> np.ndarray:
    """Receiver positions on a 20 m × 15 m grid."""
    xs = np.arange(0.0, 20.0 + 1e-9, spacing)
    ys = np.arange(0.0, 15.0 + 1e-9, spacing)
    return np.array([(x, y) for x in xs for y in ys])


def simulate_readings(
    positions: np.ndarray,
    noise_std: float,
    outlier_ratio: float,
    rng: np.random.Generator,
) -> Tuple[List[RssiReadingLocated], np.ndarray, np.ndarray]:
    """
    Simulate RSSI readings of the access point.

    Returns:
        readings: Located readings with their standard deviation.
        outliers: Boolean mask of the corrupted readings.
        quality_scores: Score per reading, higher for stronger signals.
    """
    sqr_distances = np.sum((positions - TRUE_POSITION) ** 2, axis=1)
    rssi = received_power_dbm(
        TRUE_POWER_DBM, sqr_distances, PATH_LOSS_EXPONENT, ACCESS_POINT.frequency
    )
    rssi = rssi + noise_std * rng.standard_normal(len(positions))

    n_outliers = int(round(outlier_ratio * len(positions)))
    outliers = np.zeros(len(positions), dtype=bool)
    outliers[rng.choice(len(positions), n_outliers, replace=False)] = True
    rssi[outliers] += rng.uniform(-25.0, -10.0, n_outliers)

    readings = [
        RssiReadingLocated(ACCESS_POINT, float(r), p, rssi_standard_deviation=noise_std)
        for r, p in zip(rssi, positions)
    ]
    # strong readings are less affected by noise floors and shadowing
    quality_scores = rssi - rssi.min()
    return readings, outliers, quality_scores


def run_single(
    readings: List[RssiReadingLocated],
    quality_scores: np.ndarray,
    method: RobustMethod,
    threshold: float,
    seed: int,
) -> Dict:
    """Estimate the source with the plain and the robust estimator."""
    result = {}

    plain = RssiRadioSourceEstimator2D(readings)
    try:
        plain.estimate()
        result["plain"] = plain.get_estimated_radio_source()
    except RadioSourceEstimationError as e:
        logger.warning("plain estimation failed: %s", e)
        result["plain"] = None

    options = RobustEstimatorOptions(
        method=method,
        readings=readings,
        quality_scores=quality_scores,
        threshold=threshold,
        seed=seed,
    )
    robust = create_robust_rssi_estimator(options)
    try:
        robust.estimate()
        result["robust"] = robust.get_estimated_radio_source()
        result["inliers"] = robust.inliers_data.inliers
    except RadioSourceEstimationError as e:
        logger.warning("robust estimation failed: %s", e)
        result["robust"] = None
        result["inliers"] = None

    return result


def run_monte_carlo(
    n_trials: int,
    noise_std: float,
    outlier_ratio: float,
    method: RobustMethod,
    threshold: float,
    seed: int,
) -> Dict:
    """Repeat the simulation and collect position and power errors."""
    rng = np.random.default_rng(seed)
    positions = survey_positions()

    errors = {
        "plain": {"position": [], "power": []},
        "robust": {"position": [], "power": []},
    }
    detection = []
    last = None

    for trial in tqdm(range(n_trials), desc=f"Monte-Carlo ({method.name})", unit="trial"):
        readings, outliers, quality_scores = simulate_readings(
            positions, noise_std, outlier_ratio, rng
        )
        result = run_single(readings, quality_scores, method, threshold, seed + trial)

        for name in ("plain", "robust"):
            estimated = result[name]
            if estimated is None:
                continue
            errors[name]["position"].append(
                np.linalg.norm(estimated.position - TRUE_POSITION)
            )
            errors[name]["power"].append(
                abs(estimated.transmitted_power_dbm - TRUE_POWER_DBM)
            )

        if result["inliers"] is not None:
            detection.append(np.mean(result["inliers"] == ~outliers))

        last = (positions, outliers, result)

    for name in errors:
        for key in errors[name]:
            errors[name][key] = np.array(errors[name][key])

    return {
        "errors": errors,
        "detection": np.array(detection),
        "last": last,
    }


def print_summary(results: Dict, n_trials: int):
    print("\n" + "=" * 70)
    print("Results Summary")
    print("=" * 70)
    print(f"{'Estimator':<12} {'Pos RMSE (m)':<14} {'Pos max (m)':<14} "
          f"{'Power RMSE (dB)':<16} {'Success':<10}")
    print("-" * 70)
    for name, errs in results["errors"].items():
        pos = errs["position"]
        power = errs["power"]
        if len(pos) == 0:
            print(f"{name:<12} {'-':<14} {'-':<14} {'-':<16} {0:>5}/{n_trials}")
            continue
        print(f"{name:<12} {np.sqrt(np.mean(pos**2)):<14.3f} {pos.max():<14.3f} "
              f"{np.sqrt(np.mean(power**2)):<16.3f} {len(pos):>5}/{n_trials}")
    if len(results["detection"]) > 0:
        print(f"\nOutlier classification accuracy: {100 * results['detection'].mean():.1f}%")


def plot_results(results: Dict, output_file: str = None):
    """Plot the last scenario and the error distributions."""
    fig, axes = plt.subplots(1, 2, figsize=(14, 6))
    fig.suptitle("RSSI Radio Source Estimation", fontsize=16, fontweight="bold")

    positions, outliers, last = results["last"]

    # 1. Survey, outliers and estimates
    ax1 = axes[0]
    ax1.scatter(positions[~outliers, 0], positions[~outliers, 1], s=25, c="blue",
                alpha=0.6, label="Readings")
    ax1.scatter(positions[outliers, 0], positions[outliers, 1], s=60, c="red",
                marker="x", label="Outlier readings")
    ax1.scatter(*TRUE_POSITION, s=250, c="gold", marker="*", edgecolors="black",
                zorder=10, label="True AP")
    markers = {"plain": ("s", "gray"), "robust": ("^", "green")}
    for name, (marker, color) in markers.items():
        if last[name] is not None:
            ax1.scatter(*last[name].position, s=120, c=color, marker=marker,
                        edgecolors="black", zorder=11, label=f"{name.capitalize()} estimate")
    ax1.set_xlabel("X (m)")
    ax1.set_ylabel("Y (m)")
    ax1.set_title("Survey Grid (last trial)")
    ax1.legend(loc="upper right")
    ax1.grid(True, alpha=0.3)
    ax1.axis("equal")

    # 2. Position error CDF
    ax2 = axes[1]
    for name, color in (("plain", "gray"), ("robust", "green")):
        errors = results["errors"][name]["position"]
        if len(errors) > 0:
            sorted_errors = np.sort(errors)
            cdf = np.arange(1, len(sorted_errors) + 1) / len(sorted_errors)
            ax2.plot(sorted_errors, cdf, label=name.capitalize(), color=color, linewidth=2)
    ax2.set_xlabel("Position Error (m)")
    ax2.set_ylabel("CDF")
    ax2.set_title("Cumulative Distribution of Position Errors")
    ax2.legend()
    ax2.grid(True, alpha=0.3)
    ax2.set_xlim(left=0)

    plt.tight_layout()

    if output_file:
        Path(output_file).parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(output_file, dpi=150, bbox_inches="tight")
        print(f"\nFigure saved: {output_file}")

    return fig


def main():
    """Run the plain vs. robust RSSI source estimation comparison."""
    parser = argparse.ArgumentParser(
        description="RSSI radio source estimation: plain vs. robust",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default scenario (PROMedS, 20% outliers)
  python example_rssi_source_estimation.py

  # RANSAC with a 3 dB inlier threshold
  python example_rssi_source_estimation.py --method ransac --threshold 3

  # Quick run without figures
  python example_rssi_source_estimation.py --trials 20 --no-plot
        """,
    )
    parser.add_argument("--trials", type=int, default=100,
                        help="Number of Monte-Carlo trials (default: 100)")
    parser.add_argument("--noise", type=float, default=2.0,
                        help="RSSI noise standard deviation in dB (default: 2.0)")
    parser.add_argument("--outlier-ratio", type=float, default=0.2,
                        help="Fraction of corrupted readings (default: 0.2)")
    parser.add_argument("--method", type=str, default="promeds",
                        choices=[m.value for m in RobustMethod],
                        help="Robust method (default: promeds)")
    parser.add_argument("--threshold", type=float, default=6.0,
                        help="Inlier threshold in dB for RANSAC, MSAC and PROSAC")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output", type=str, default=None,
                        help="Output file for the figure "
                             "(default: radio_source_mapping/figs/rssi_source_estimation.png)")
    parser.add_argument("--no-plot", action="store_true", help="Skip figures")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("\n" + "=" * 70)
    print("RSSI Radio Source Estimation: Plain vs. Robust")
    print("=" * 70)
    print(f"  Access point: {ACCESS_POINT.bssid} at {TRUE_POSITION} m, "
          f"{TRUE_POWER_DBM} dBm, {ACCESS_POINT.frequency / 1e9:.3f} GHz")
    print(f"  RSSI noise: {args.noise} dB, outliers: {100 * args.outlier_ratio:.0f}%")
    print(f"  Robust method: {args.method.upper()}")

    start = time.time()
    results = run_monte_carlo(
        args.trials,
        args.noise,
        args.outlier_ratio,
        RobustMethod(args.method),
        args.threshold,
        args.seed,
    )
    print(f"\nAll trials completed in {time.time() - start:.2f}s")

    print_summary(results, args.trials)

    if not args.no_plot:
        output_file = args.output or "radio_source_mapping/figs/rssi_source_estimation.png"
        plot_results(results, output_file)
        plt.show()


if __name__ == "__main__":
    main()
