"""
Caseflow backend.

Case lifecycle engine for the interior fit-out sales-to-delivery pipeline:
enquiry intake, lead/case stage tracking, task assignment, the per-case
activity ledger, and RFQ fan-out to vendors.
"""

__version__ = "1.0.0"
