"""Package version; the manifest format version lives in ``manifest.MANIFEST_VERSION``."""

__version__ = "0.1.0"
