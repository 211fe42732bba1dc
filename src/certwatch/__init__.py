"""
certwatch: mirror caddy certificates from Redis onto the local filesystem.
"""

__version__ = "0.1.0"

from certwatch.core.models import CertwatchSettings, StoredValue
from certwatch.runtime import CertwatchController

__all__ = [
	"CertwatchController",
	"CertwatchSettings",
	"StoredValue",
	"__version__",
]
