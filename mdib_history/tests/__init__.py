"""
Test suite for MDIB history reconstruction.

Focus areas:
- Implied value defaulting and version tracking
- Report stream filters (version order, duplicates)
- Historian replay determinism and monotonicity
- Archive hash chain integrity
"""
