"""Exception hierarchy for compass runs.

Every fatal condition of an analysis or report run is raised as a
CompassError subclass; the CLI prints the message and exits non-zero.
"""
from __future__ import annotations


class CompassError(Exception):
    """Base class for all compass errors."""


class ConfigurationError(CompassError):
    """Report inputs are inconsistent, e.g. capture files for different target versions."""


class MissingInputError(CompassError):
    """Nothing to analyze or report on."""


class CaptureFormatError(CompassError):
    """A capture file line could not be parsed."""

    def __init__(self, message: str, path: str | None = None, line_nr: int | None = None):
        self.path = path
        self.line_nr = line_nr
        if path is not None:
            location = f"{path}:{line_nr}" if line_nr is not None else path
            message = f"{message} ({location})"
        super().__init__(message)


class ReportExistsError(CompassError):
    """Refusing to overwrite an existing report or imported file."""
