"""Core module - configuration, error taxonomy and observability.

Everything in here is shared plumbing. Reconciliation semantics live in
the top-level packages (normalizers, validation, mapping, reconciliation,
audit, reporting).
"""

__version__ = "1.0.0"
