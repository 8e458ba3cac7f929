"""Signal fusion and validation engine for trade cards."""

import os


def get_engine_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("ENGINE_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("trade-fusion")
    except Exception:
        return "dev"


ENGINE_VERSION = get_engine_version()
# Bump when artifact schema changes materially (new fields, renamed fields, structure changes)
# v1: Initial trade card / verdict schema
SCHEMA_VERSION = "1"
