"""
Radio source mapping examples.

Examples:
    - RSSI source estimation: plain vs. robust estimation of an access
      point position and transmitted power under outlier readings
"""

__version__ = "0.1.0"
