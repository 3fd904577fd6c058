"""
MDIB History

Deterministic reconstruction of MDIB state histories from captured episodic reports.
"""

__version__ = "0.1.0"
