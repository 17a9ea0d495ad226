from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class DataLoadError(AppError):
    """Raised when the emission data store cannot be read for a report request."""


class ReferenceDataError(AppError):
    """Raised when reference tables are malformed (e.g. overlapping validity windows)."""


class NotFoundError(AppError):
    """Base for lookups of a single record that does not exist."""


class VehicleNotFoundError(NotFoundError):
    """Exception raised when a vehicle id is unknown."""


class CarlistNotFoundError(NotFoundError):
    """Exception raised when a carlist id is unknown."""


class TargetNotFoundError(NotFoundError):
    """Exception raised when an emission target id is unknown."""
