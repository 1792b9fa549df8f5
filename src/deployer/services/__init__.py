"""Service layer."""

from deployer.services.deployment_service import DeploymentOutcome, DeploymentService

__all__ = ["DeploymentOutcome", "DeploymentService"]
