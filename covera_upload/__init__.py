"""covera-upload — send CI coverage reports to Covera.gg."""

__version__ = "0.1.0"


class CoveraError(Exception):
    """Base exception for every error raised by covera_upload."""
