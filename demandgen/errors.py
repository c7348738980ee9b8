"""Exception types raised by the demand-modeling pipeline.

All pipeline failures are scoped to a single area. ``DataUnavailable`` is
recoverable (the employment estimator falls back to the next strategy);
``NoActiveData`` aborts the current area only.
"""

from __future__ import annotations


class DemandGenError(Exception):
    """Base class for demandgen pipeline errors."""


class DataUnavailable(DemandGenError):
    """An employment data source has no usable coverage for the area."""


class NoActiveData(DemandGenError):
    """No block carries population or jobs after filtering."""
