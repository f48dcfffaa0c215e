"""
Control-plane error taxonomy.

Absent-entity cases are not errors: lifecycle operations return the input
state unchanged. Enrichment failures never surface (see enrichment.py).
"""


class ControlPlaneError(Exception):
    """Base class for control-plane failures"""


class ValidationError(ControlPlaneError):
    """Required field missing or value out of range; state was not changed"""


class ConflictError(ControlPlaneError):
    """Uniqueness violation (e.g. access code collision could not be resolved)"""


class PersistenceError(ControlPlaneError):
    """State document could not be written or read back"""


class AuthenticationError(ControlPlaneError):
    """Admin password or access code rejected"""
