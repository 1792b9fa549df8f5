"""Application configuration using pydantic-settings.

Every limit the deployment pipeline enforces (code size, rate limit window,
cleanup delay, toolchain timeouts, allowed programs) is read from here.
"""

import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    cors_origins: str = Field(
        default="", description="Comma-separated list of allowed CORS origins"
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ======================
    # Network
    # ======================
    rpc_url: str = Field(
        default="https://devnet.uminetwork.com", description="Remote network RPC URL"
    )
    evm_chain_id: int = Field(default=42069, description="EVM chain id of the RPC network")
    solidity_version: str = Field(default="0.8.28", description="Solidity compiler version")
    move_named_address: str = Field(
        default="example", description="Named address the Move package publishes under"
    )

    # ======================
    # Validation limits
    # ======================
    max_code_length: int = Field(default=50_000, description="Maximum source length in characters")
    max_identifier_length: int = Field(
        default=50, description="Maximum declared contract/module name length"
    )
    max_constructor_args: int = Field(default=16, description="Maximum constructor arguments")
    max_constructor_arg_length: int = Field(
        default=1024, description="Maximum length of a single constructor argument"
    )

    # ======================
    # Rate limiting
    # ======================
    rate_limit_window_seconds: int = Field(default=60, description="Fixed window length")
    rate_limit_max_requests: int = Field(default=5, description="Requests allowed per window")

    # ======================
    # Workspaces
    # ======================
    workspace_root: Path = Field(
        default=Path(tempfile.gettempdir()), description="Parent directory of build workspaces"
    )
    workspace_prefix: str = Field(default="umi-", description="Workspace directory name prefix")
    cleanup_delay_seconds: float = Field(
        default=300.0, description="Delay before the fallback workspace sweep"
    )

    # ======================
    # Toolchain
    # ======================
    allowed_programs: str = Field(
        default="npx,npm,aptos,hardhat",
        description="Comma-separated list of programs the toolchain may run",
    )
    step_timeout_seconds: float = Field(default=300.0, description="Timeout per toolchain step")
    deploy_timeout_seconds: float = Field(
        default=600.0, description="Timeout for the whole toolchain sequence"
    )
    toolchain_inherit_env: bool = Field(
        default=True, description="Pass the server environment through to toolchain steps"
    )
    output_patterns_file: Optional[Path] = Field(
        default=None, description="JSON file overriding the built-in output patterns"
    )
    include_toolchain_output: bool = Field(
        default=True, description="Return (redacted) toolchain stdout in success responses"
    )

    @property
    def allowed_program_list(self) -> list[str]:
        """Parse allowed programs into a list."""
        return [p.strip() for p in self.allowed_programs.split(",") if p.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict suitable for display."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "network": {
                "rpc_url": self.rpc_url,
                "evm_chain_id": self.evm_chain_id,
                "solidity_version": self.solidity_version,
            },
            "limits": {
                "max_code_length": self.max_code_length,
                "max_identifier_length": self.max_identifier_length,
                "max_constructor_args": self.max_constructor_args,
            },
            "rate_limit": {
                "window_seconds": self.rate_limit_window_seconds,
                "max_requests": self.rate_limit_max_requests,
            },
            "workspaces": {
                "root": str(self.workspace_root),
                "prefix": self.workspace_prefix,
                "cleanup_delay_seconds": self.cleanup_delay_seconds,
            },
            "toolchain": {
                "allowed_programs": self.allowed_program_list,
                "step_timeout_seconds": self.step_timeout_seconds,
                "deploy_timeout_seconds": self.deploy_timeout_seconds,
                "inherit_env": self.toolchain_inherit_env,
                "output_patterns_file": (
                    str(self.output_patterns_file) if self.output_patterns_file else "(built-in)"
                ),
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
