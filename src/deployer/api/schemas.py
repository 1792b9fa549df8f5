"""Request/response contracts for the deployment API.

Field names on the wire are camelCase; the legacy playground names
(``privateKey``, ``accountAddress``) are accepted on input.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from deployer.pipeline.validation import DeploymentRequest


def utc_timestamp() -> str:
    """ISO-8601 timestamp for response bodies."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class DeployRequestBody(BaseModel):
    """Deployment submission.

    Every field is optional here so that missing values reach the pipeline
    validator and get its specific rejection codes.
    """

    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = Field(None, description="Contract source code")
    credential: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("credential", "privateKey", "private_key"),
        description="Deployer private key (64 hex characters, optional 0x prefix)",
    )
    target_address: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("targetAddress", "accountAddress", "target_address"),
        description="Account address the package is published under",
    )
    constructor_args: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("constructorArgs", "constructor_args"),
        description="Constructor arguments passed to the deploy script",
    )

    def to_request(self) -> DeploymentRequest:
        return DeploymentRequest(
            source_code=self.code,
            credential=self.credential,
            target_address=self.target_address,
            constructor_args=list(self.constructor_args),
        )


class ArtifactModel(BaseModel):
    """One extracted artifact."""

    model_config = ConfigDict(populate_by_name=True)

    address: Optional[str] = None
    transaction_hash: Optional[str] = Field(None, serialization_alias="transactionHash")


class DeployResponse(BaseModel):
    """Successful deployment."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    address: Optional[str] = None
    transaction_hash: Optional[str] = Field(None, serialization_alias="transactionHash")
    artifacts: dict[str, ArtifactModel] = Field(default_factory=dict)
    deployer: Optional[str] = None
    output: Optional[str] = None
    rate_limit_remaining: int = Field(..., serialization_alias="rateLimitRemaining")
    rate_limit_reset_in: int = Field(..., serialization_alias="rateLimitResetIn")
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorResponse(BaseModel):
    """Error body shared by every 4xx/5xx response."""

    error: str
    code: str
    timestamp: str = Field(default_factory=utc_timestamp)
    reset_in_seconds: Optional[int] = Field(None, serialization_alias="resetInSeconds")
    step: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
