"""
Migration Error Taxonomy
Fatal errors abort a run; per-document failures are folded into the report instead
"""
from typing import Optional


class MigrationError(Exception):
    """Base class for all migration errors"""


class ConfigurationError(MigrationError):
    """Settings are missing or invalid; the run never begins"""


class ConnectivityError(MigrationError):
    """A store could not be reached"""


class QueryError(MigrationError):
    """A query against a container failed"""


class DocumentWriteError(MigrationError):
    """A single document could not be written (non-fatal for the run)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MigrationStateError(MigrationError):
    """An operation was invoked in the wrong coordinator state"""


class MigrationAbortedError(MigrationError):
    """The run was aborted by a fatal error; carries the partial report"""

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report
