"""Crossplane dashboard views built on the repository interface."""

from crossview.crossplane.search import SearchFilters, filter_resources
from crossview.crossplane.views import CROSSPLANE_KINDS, CrossplaneViews

__all__ = ["CROSSPLANE_KINDS", "CrossplaneViews", "SearchFilters", "filter_resources"]
