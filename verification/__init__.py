"""
Driver's License Verification

This package contains the pipeline for verifying driver's license photos:
- Request and output schema construction with per-jurisdiction rules
- Vision model analysis with a single low-confidence escalation pass
- Interpretation into a typed verification result
- Fraud-tolerant name matching against the reservation
- Batch submission and reconciliation for backlogs
"""

__version__ = "1.0.0"
