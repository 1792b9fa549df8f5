"""Deployment variants (one per supported toolchain)."""

from deployer.variants.base import DeploymentVariant
from deployer.variants.factory import build_variants, get_supported_variants, load_pattern_sets

__all__ = [
    "DeploymentVariant",
    "build_variants",
    "get_supported_variants",
    "load_pattern_sets",
]
