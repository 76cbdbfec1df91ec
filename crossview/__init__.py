"""Crossview - custom resource access layer for Crossplane dashboards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("crossview")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
