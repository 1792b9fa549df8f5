"""Abstract interface for deployment variants.

A variant describes one toolchain end to end:
1. Which declaration in the source names the contract/module
2. The project scaffold written into the workspace
3. The command sequence run inside it
4. The environment injected into those commands
5. The patterns that pull the deployed artifact out of stdout
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from deployer.config import Settings
from deployer.pipeline.parser import OutputPatternSet
from deployer.pipeline.toolchain import ToolchainStep
from deployer.pipeline.validation import DeploymentRequest, declared_identifier
from deployer.pipeline.workspace import Scaffold

logger = logging.getLogger(__name__)


class DeploymentVariant(ABC):
    """Base class for a toolchain flavour (EVM, Move, ...)."""

    name: str = ""
    label: str = ""
    declaration: Optional[re.Pattern] = None
    requires_address: bool = False
    default_identifier: str = "Contract"

    def __init__(self, settings: Settings):
        self.settings = settings

    def contract_name(self, request: DeploymentRequest) -> str:
        """Declared contract/module name, or the variant default."""
        return declared_identifier(request.source_code or "", self.declaration) or self.default_identifier

    @abstractmethod
    def build_scaffold(self, request: DeploymentRequest, contract_name: str) -> Scaffold:
        """Project files to write into the workspace."""
        pass

    @abstractmethod
    def steps(self, request: DeploymentRequest, contract_name: str) -> list[ToolchainStep]:
        """Ordered toolchain commands (install, compile, publish)."""
        pass

    @abstractmethod
    def default_patterns(self) -> OutputPatternSet:
        """Built-in output patterns for this toolchain."""
        pass

    def environment(self, request: DeploymentRequest) -> dict[str, str]:
        """Variables injected into every step."""
        return {}

    def deployer_address(self, request: DeploymentRequest) -> Optional[str]:
        """Public address of the deploying account, when derivable."""
        return request.target_address or None

    @property
    def success_message(self) -> str:
        return f"{self.label} contract deployed successfully!"
