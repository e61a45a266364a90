"""
Travel Kernel - approval workflow core

Governs the approval of travel requests, expense claims and bailouts:
- Approval chains built from the org hierarchy
- Strict level ordering
- Revision resets that reopen the whole chain
- Session or phone-verified callers
- Exactly-once approval actions under concurrency
- Hash-chained audit trail
"""

__version__ = "0.1.0"
