"""BGP lookup service: classify a query and fan it out to routing-data providers."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["get_version"]


def get_version() -> str:
    """Return the installed package version or a development marker."""
    try:
        return version("bgplookup")
    except PackageNotFoundError:
        return "0.0.0-dev"
