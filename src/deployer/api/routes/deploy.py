"""Deployment endpoints."""

import logging

from fastapi import APIRouter, Depends, Request

from deployer.api.schemas import ArtifactModel, DeployRequestBody, DeployResponse, ErrorResponse
from deployer.pipeline.rate_limit import client_identity
from deployer.services.deployment_service import DeploymentOutcome, DeploymentService

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    404: {"model": ErrorResponse, "description": "Unknown variant"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Provisioning or toolchain failure"},
}


def get_deployment_service(request: Request) -> DeploymentService:
    """Deployment service owned by the running application."""
    return request.app.state.deployment_service


def get_client_key(request: Request) -> str:
    """Rate limit identity of the caller."""
    host = request.client.host if request.client else None
    return client_identity(request.headers, host)


def _to_response(outcome: DeploymentOutcome) -> DeployResponse:
    return DeployResponse(
        message=outcome.message,
        address=outcome.artifact.address,
        transaction_hash=outcome.artifact.transaction_hash,
        artifacts={
            label: ArtifactModel(address=a.address, transaction_hash=a.transaction_hash)
            for label, a in outcome.artifacts.items()
        },
        deployer=outcome.deployer,
        output=outcome.output,
        rate_limit_remaining=outcome.rate_limit.remaining,
        rate_limit_reset_in=outcome.rate_limit.reset_in_seconds,
    )


@router.post(
    "/deploy/{variant}",
    response_model=DeployResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def deploy(
    variant: str,
    body: DeployRequestBody,
    client_key: str = Depends(get_client_key),
    service: DeploymentService = Depends(get_deployment_service),
) -> DeployResponse:
    """Compile and deploy the submitted contract with the given toolchain variant.

    Variants:
    - evm: Solidity via Hardhat (npm install, compile, run deploy script)
    - move: Move via the Aptos CLI (compile, publish)
    """
    outcome = await service.deploy(variant, body.to_request(), client_key)
    return _to_response(outcome)


@router.post(
    "/api/deploy-evm",
    response_model=DeployResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    include_in_schema=False,
)
async def deploy_evm_legacy(
    body: DeployRequestBody,
    client_key: str = Depends(get_client_key),
    service: DeploymentService = Depends(get_deployment_service),
) -> DeployResponse:
    """Playground-compatible alias for POST /deploy/evm."""
    return _to_response(await service.deploy("evm", body.to_request(), client_key))


@router.post(
    "/api/deploy-move",
    response_model=DeployResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    include_in_schema=False,
)
async def deploy_move_legacy(
    body: DeployRequestBody,
    client_key: str = Depends(get_client_key),
    service: DeploymentService = Depends(get_deployment_service),
) -> DeployResponse:
    """Playground-compatible alias for POST /deploy/move."""
    return _to_response(await service.deploy("move", body.to_request(), client_key))
