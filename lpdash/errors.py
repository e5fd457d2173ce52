from __future__ import annotations


class DashboardError(Exception):
    """Base class for errors raised by the dashboard data layer."""


class SourceUnavailable(DashboardError):
    """The data source has no credentials / spreadsheet configured."""


class TransportFailure(DashboardError):
    """A sheet fetch failed: network error, timeout, bad status or malformed body."""


class CacheFailure(DashboardError):
    """Local cache could not be read or written. Callers treat it as a miss."""
