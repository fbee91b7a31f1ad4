"""Radio source estimation for indoor positioning infrastructure mapping.

This package contains the components used to recover where a radio emitter
(WiFi access point, BLE beacon) is and how it radiates from readings gathered
at known receiver positions:
- estimators: Levenberg-Marquardt non-linear fitting
- rf: RF measurement models, readings and radio source records
- lateration: Linear and non-linear lateration solvers
- robust: Robust consensus methods (RANSAC, LMedS, MSAC, PROSAC, PROMedS)
- sources: Point and robust radio source estimators
"""

__version__ = "0.1.0"
