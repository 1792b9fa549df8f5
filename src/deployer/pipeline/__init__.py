"""Deployment pipeline stages.

validation -> rate_limit -> workspace -> toolchain -> parser -> cleanup
"""

from deployer.pipeline.cleanup import CleanupManager, remove_workspace_tree
from deployer.pipeline.parser import DeployedArtifact, OutputParser, OutputPatternSet
from deployer.pipeline.rate_limit import RateLimitDecision, RateLimiter, RateLimitStore
from deployer.pipeline.toolchain import CommandSanitizer, ToolchainInvoker, ToolchainResult
from deployer.pipeline.validation import DeploymentRequest, ValidationResult, validate_request
from deployer.pipeline.workspace import Workspace, WorkspaceProvisioner

__all__ = [
    "CleanupManager",
    "CommandSanitizer",
    "DeployedArtifact",
    "DeploymentRequest",
    "OutputParser",
    "OutputPatternSet",
    "RateLimitDecision",
    "RateLimitStore",
    "RateLimiter",
    "ToolchainInvoker",
    "ToolchainResult",
    "ValidationResult",
    "Workspace",
    "WorkspaceProvisioner",
    "remove_workspace_tree",
    "validate_request",
]
