"""Deployment orchestration.

Flow for every request:
1. Validate the submission (no side effects)
2. Count it against the client's rate limit
3. Provision a workspace and arm its fallback cleanup
4. Run the variant's toolchain sequence
5. Parse the deployed artifact from the final stdout
6. Delete the workspace, on success, failure and cancellation alike
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from deployer.config import Settings
from deployer.errors import (
    DeploymentTimeout,
    RateLimited,
    ToolchainError,
    UnknownVariant,
    ValidationError,
)
from deployer.pipeline.cleanup import CleanupManager
from deployer.pipeline.parser import DeployedArtifact, OutputParser, OutputPatternSet
from deployer.pipeline.rate_limit import RateLimitDecision, RateLimiter, RateLimitStore
from deployer.pipeline.toolchain import CommandSanitizer, Runner, ToolchainInvoker
from deployer.pipeline.validation import DeploymentRequest, ValidationLimits, validate_request
from deployer.pipeline.workspace import WorkspaceProvisioner
from deployer.variants import DeploymentVariant, build_variants, load_pattern_sets

logger = logging.getLogger(__name__)


@dataclass
class DeploymentOutcome:
    """Successful deployment summary returned to the API layer."""

    message: str
    artifact: DeployedArtifact
    rate_limit: RateLimitDecision
    artifacts: dict[str, DeployedArtifact] = field(default_factory=dict)
    deployer: Optional[str] = None
    output: Optional[str] = None


class DeploymentService:
    """Runs the full deployment pipeline for one request at a time per task."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter,
        provisioner: WorkspaceProvisioner,
        invoker: ToolchainInvoker,
        cleanup: CleanupManager,
        variants: dict[str, DeploymentVariant],
        pattern_sets: dict[str, OutputPatternSet],
    ):
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.provisioner = provisioner
        self.invoker = invoker
        self.cleanup = cleanup
        self.variants = variants
        self.parsers = {name: OutputParser(patterns) for name, patterns in pattern_sets.items()}
        self.limits = ValidationLimits.from_settings(settings)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: Optional[RateLimitStore] = None,
        runner: Optional[Runner] = None,
    ) -> "DeploymentService":
        """Wire every pipeline stage from configuration.

        Args:
            settings: Application settings
            store: Shared rate limit state (a fresh one when omitted)
            runner: Replacement process runner (tests)
        """
        variants = build_variants(settings)
        return cls(
            settings=settings,
            rate_limiter=RateLimiter(
                store if store is not None else RateLimitStore(),
                max_requests=settings.rate_limit_max_requests,
                window_seconds=settings.rate_limit_window_seconds,
            ),
            provisioner=WorkspaceProvisioner(settings.workspace_root, settings.workspace_prefix),
            invoker=ToolchainInvoker(
                sanitizer=CommandSanitizer(settings.allowed_program_list),
                runner=runner,
                step_timeout=settings.step_timeout_seconds,
                inherit_env=settings.toolchain_inherit_env,
            ),
            cleanup=CleanupManager(settings.cleanup_delay_seconds),
            variants=variants,
            pattern_sets=load_pattern_sets(variants, settings),
        )

    def get_variant(self, name: str) -> DeploymentVariant:
        variant = self.variants.get(name.lower())
        if variant is None:
            raise UnknownVariant(name)
        return variant

    async def deploy(
        self, variant_name: str, request: DeploymentRequest, client_key: str
    ) -> DeploymentOutcome:
        """Deploy the submitted source with the named variant.

        Raises:
            UnknownVariant: No such variant
            ValidationError: Request failed validation
            RateLimited: Client is over its request limit
            ProvisioningError: Workspace could not be created
            UnsafeCommand: A toolchain command tripped the sanitizer
            ToolchainError: A toolchain step failed or timed out
        """
        variant = self.get_variant(variant_name)
        logger.info(f"{variant.label} deployment request from {client_key}: {request!r}")

        result = validate_request(
            request,
            self.limits,
            declaration=variant.declaration,
            require_address=variant.requires_address,
        )
        if not result.is_valid:
            logger.info(f"Rejected request from {client_key}: {result.code}")
            raise ValidationError(result.reason, code=result.code)

        decision = await self.rate_limiter.check(client_key)
        if not decision.allowed:
            raise RateLimited(decision.reset_in_seconds)

        contract_name = variant.contract_name(request)
        scaffold = variant.build_scaffold(request, contract_name)
        workspace = self.provisioner.allocate(variant.name)
        self.cleanup.track(workspace)

        try:
            await asyncio.to_thread(self.provisioner.populate, workspace, scaffold)
            try:
                final = await asyncio.wait_for(
                    self.invoker.run_sequence(
                        variant.steps(request, contract_name),
                        workspace,
                        env=variant.environment(request),
                    ),
                    timeout=self.settings.deploy_timeout_seconds,
                )
            except asyncio.TimeoutError:
                raise DeploymentTimeout(
                    f"Deployment timed out after {self.settings.deploy_timeout_seconds:g}s"
                )
            except ToolchainError as e:
                e.stdout = request.scrub(e.stdout)
                e.stderr = request.scrub(e.stderr)
                raise

            artifacts = self.parsers[variant.name].parse(
                final.stdout, context={"contract": contract_name}
            )
        finally:
            await self.cleanup.release(workspace)

        primary = artifacts.get(self.parsers[variant.name].patterns.primary, DeployedArtifact())
        deployer = variant.deployer_address(request)
        logger.info(
            f"{variant.label} deployment for {client_key} by {deployer or 'unknown deployer'} finished: "
            f"address={primary.address or 'not found'} tx={primary.transaction_hash or 'not found'}"
        )

        return DeploymentOutcome(
            message=variant.success_message,
            artifact=primary,
            artifacts={label: a for label, a in artifacts.items() if a.found},
            rate_limit=decision,
            deployer=deployer,
            output=request.scrub(final.stdout) if self.settings.include_toolchain_output else None,
        )

    async def shutdown(self) -> None:
        await self.cleanup.shutdown()
