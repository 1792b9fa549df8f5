"""Extract deployed artifacts from toolchain output.

Patterns are data, not code: each ``OutputPatternSet`` carries a version
and, per artifact label, ordered regex lists for the address and the
transaction hash. The first pattern that matches wins and its first group
is the value. A field nobody matched stays ``None``; a pattern that matched
with an empty capture yields ``""``, so "value empty" and "extraction
failed" stay distinguishable.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

PRIMARY_LABEL = "contract"


@dataclass(frozen=True)
class DeployedArtifact:
    """Address and transaction hash of one deployed artifact."""

    address: Optional[str] = None
    transaction_hash: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.address is not None or self.transaction_hash is not None


class ArtifactPatterns(BaseModel):
    """Ordered patterns for one artifact label."""

    address: list[str] = Field(default_factory=list)
    transaction_hash: list[str] = Field(default_factory=list)

    @field_validator("address", "transaction_hash")
    @classmethod
    def _check_groups(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                compiled = re.compile(pattern.replace("{contract}", "X"))
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
            if compiled.groups < 1:
                raise ValueError(f"Pattern needs a capture group: {pattern}")
        return patterns


class OutputPatternSet(BaseModel):
    """Versioned set of extraction patterns for one toolchain."""

    version: str
    artifacts: dict[str, ArtifactPatterns]
    primary: str = PRIMARY_LABEL

    @classmethod
    def load_file(cls, path: Path) -> dict[str, "OutputPatternSet"]:
        """Load ``{variant: pattern set}`` overrides from a JSON file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return {variant: cls.model_validate(spec) for variant, spec in data.items()}


class OutputParser:
    """Applies an ``OutputPatternSet`` to captured stdout."""

    def __init__(self, patterns: OutputPatternSet):
        self.patterns = patterns

    @staticmethod
    def _compile(pattern: str, context: Mapping[str, str]) -> re.Pattern:
        contract = context.get("contract")
        if "{contract}" in pattern:
            pattern = pattern.replace("{contract}", re.escape(contract) if contract else r"\w+")
        return re.compile(pattern)

    def _first_match(self, stdout: str, patterns: list[str], context: Mapping[str, str]) -> Optional[str]:
        for pattern in patterns:
            match = self._compile(pattern, context).search(stdout)
            if match and match.group(1) is not None:
                return match.group(1)
        return None

    def parse(self, stdout: str, context: Optional[Mapping[str, str]] = None) -> dict[str, DeployedArtifact]:
        """Extract every labelled artifact from stdout.

        Args:
            stdout: Captured output of the final toolchain step
            context: Template values (``contract``: declared contract name)

        Returns:
            Mapping from label to artifact; labels without matches map to an
            artifact whose fields are None
        """
        context = context or {}
        stdout = stdout or ""
        artifacts = {}

        for label, spec in self.patterns.artifacts.items():
            artifacts[label] = DeployedArtifact(
                address=self._first_match(stdout, spec.address, context),
                transaction_hash=self._first_match(stdout, spec.transaction_hash, context),
            )

        missing = [label for label, artifact in artifacts.items() if not artifact.found]
        if missing:
            logger.info(
                f"No artifact found for {missing} (patterns v{self.patterns.version})"
            )
        return artifacts

    def parse_primary(self, stdout: str, context: Optional[Mapping[str, str]] = None) -> DeployedArtifact:
        """Extract the main deployed artifact."""
        return self.parse(stdout, context).get(self.patterns.primary, DeployedArtifact())
