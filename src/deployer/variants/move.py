"""Move deployment through the Aptos CLI.

Workspace layout:
    .aptos/config.yaml                    (profile: key, account, REST URL)
    contracts/<package>/Move.toml
    contracts/<package>/sources/<module>.move

The CLI reads the key and endpoint from the workspace profile, so neither
appears on the command line.
"""

import re

from deployer.pipeline.parser import ArtifactPatterns, OutputPatternSet
from deployer.pipeline.toolchain import ToolchainStep
from deployer.pipeline.validation import DeploymentRequest
from deployer.pipeline.workspace import Scaffold
from deployer.variants.base import DeploymentVariant

PACKAGE_NAME = "counter"
PACKAGE_DIR = f"contracts/{PACKAGE_NAME}"

MOVE_PATTERNS = OutputPatternSet(
    version="1",
    artifacts={
        "contract": ArtifactPatterns(
            address=[
                r'"sender":\s*"(0x[0-9a-fA-F]+)"',
            ],
            transaction_hash=[
                r'"transaction_hash":\s*"(0x[0-9a-fA-F]+)"',
                r"Transaction [Hh]ash:\s*((?:0x)?[0-9a-fA-F]+)",
                r'"hash":\s*"((?:0x)?[0-9a-fA-F]+)"',
                r"txn_hash:\s*((?:0x)?[0-9a-fA-F]+)",
                r"\b((?:0x)?[0-9a-fA-F]{64})\b",
            ],
        ),
    },
)

MOVE_TOML = """\
[package]
name = "{package}"
version = "1.0.0"
authors = []

[addresses]
{named_address} = "{address}"

[dependencies.AptosFramework]
git = "https://github.com/aptos-labs/aptos-framework.git"
rev = "aptos-release-v1.27"
subdir = "aptos-framework"
"""

APTOS_PROFILE = """\
---
profiles:
  default:
    network: Custom
    private_key: "0x{private_key}"
    account: "{account}"
    rest_url: "{rest_url}"
"""


class MoveVariant(DeploymentVariant):
    """Move modules compiled and published with the Aptos CLI."""

    name = "move"
    label = "Move"
    declaration = re.compile(r"(?:^|[;{}])\s*module\s+(?:\w+::)?(\w+)", re.MULTILINE)
    requires_address = True
    default_identifier = "counter"

    def _named_addresses(self, request: DeploymentRequest) -> str:
        return f"{self.settings.move_named_address}={request.target_address}"

    def build_scaffold(self, request: DeploymentRequest, contract_name: str) -> Scaffold:
        account = (request.target_address or "").lower()
        return Scaffold(
            directories=[".aptos", f"{PACKAGE_DIR}/sources"],
            files={
                f"{PACKAGE_DIR}/sources/{contract_name}.move": request.source_code or "",
                f"{PACKAGE_DIR}/Move.toml": MOVE_TOML.format(
                    package=PACKAGE_NAME,
                    named_address=self.settings.move_named_address,
                    address=account,
                ),
                ".aptos/config.yaml": APTOS_PROFILE.format(
                    private_key=request.bare_credential,
                    account=account[2:] if account.startswith("0x") else account,
                    rest_url=self.settings.rpc_url,
                ),
            },
        )

    def steps(self, request: DeploymentRequest, contract_name: str) -> list[ToolchainStep]:
        named = self._named_addresses(request)
        return [
            ToolchainStep(
                "compile",
                ("aptos", "move", "compile", "--package-dir", PACKAGE_DIR, "--named-addresses", named),
            ),
            ToolchainStep(
                "publish",
                (
                    "aptos", "move", "publish",
                    "--assume-yes",
                    "--profile", "default",
                    "--package-dir", PACKAGE_DIR,
                    "--named-addresses", named,
                ),
            ),
        ]

    def default_patterns(self) -> OutputPatternSet:
        return MOVE_PATTERNS
