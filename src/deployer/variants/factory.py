"""Factory for deployment variants."""

import logging
from typing import Optional

from deployer.config import Settings
from deployer.pipeline.parser import OutputPatternSet
from deployer.variants.base import DeploymentVariant
from deployer.variants.evm import EvmVariant
from deployer.variants.move import MoveVariant

logger = logging.getLogger(__name__)

VARIANT_CLASSES: dict[str, type[DeploymentVariant]] = {
    EvmVariant.name: EvmVariant,
    MoveVariant.name: MoveVariant,
}


def get_supported_variants() -> list[str]:
    """Get list of variant names that can be deployed."""
    return sorted(VARIANT_CLASSES)


def build_variants(settings: Settings) -> dict[str, DeploymentVariant]:
    """Instantiate every known variant with the given settings."""
    return {name: cls(settings) for name, cls in VARIANT_CLASSES.items()}


def load_pattern_sets(
    variants: dict[str, DeploymentVariant], settings: Settings
) -> dict[str, OutputPatternSet]:
    """Built-in pattern sets, replaced per variant by the override file if configured."""
    pattern_sets = {name: variant.default_patterns() for name, variant in variants.items()}

    overrides: Optional[dict[str, OutputPatternSet]] = None
    if settings.output_patterns_file:
        overrides = OutputPatternSet.load_file(settings.output_patterns_file)

    for name, pattern_set in (overrides or {}).items():
        if name not in variants:
            logger.warning(f"Ignoring output patterns for unknown variant '{name}'")
            continue
        logger.info(f"Using output patterns v{pattern_set.version} for '{name}'")
        pattern_sets[name] = pattern_set

    return pattern_sets
