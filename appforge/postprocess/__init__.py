"""AppForge post-processing: branding and single-file merging."""

from .branding import BRAND_MARKER, BRANDING_TARGETS, BrandingInjector, inject
from .merger import SourceMerger, include_target, merge, needs_merge

__all__ = [
    "BRAND_MARKER",
    "BRANDING_TARGETS",
    "BrandingInjector",
    "inject",
    "SourceMerger",
    "include_target",
    "merge",
    "needs_merge",
]
