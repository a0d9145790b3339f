"""
Exception hierarchy for Care Alerts.
"""


class CareAlertsError(Exception):
    """Base exception for all Care Alerts errors."""
    pass


class ContractViolationError(CareAlertsError):
    """Raised when a caller passes values the engine does not accept."""
    pass


class DataSourceError(CareAlertsError):
    """Raised when a collaborator data fetch fails."""
    pass


class ProviderError(DataSourceError):
    """Raised when an academic data provider fails."""
    pass


class PreferenceError(DataSourceError):
    """Raised when notification preferences cannot be read or written."""
    pass
