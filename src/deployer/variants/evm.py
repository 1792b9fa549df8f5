"""EVM deployment through a generated Hardhat project.

Workspace layout:
    contracts/<Name>.sol
    scripts/deploy.ts
    hardhat.config.ts
    package.json
    tsconfig.json

The private key and constructor arguments reach Hardhat through the
environment, never through argv or the generated files.
"""

import json
import logging
import re
from typing import Optional

from eth_account import Account

from deployer.pipeline.parser import ArtifactPatterns, OutputPatternSet
from deployer.pipeline.toolchain import ToolchainStep
from deployer.pipeline.validation import DeploymentRequest
from deployer.pipeline.workspace import Scaffold
from deployer.variants.base import DeploymentVariant

logger = logging.getLogger(__name__)

NETWORK_NAME = "umi"

EVM_PATTERNS = OutputPatternSet(
    version="1",
    artifacts={
        "contract": ArtifactPatterns(
            address=[
                r"{contract} is deployed to:\s*(0x[0-9a-fA-F]{40})",
                r"\b\w+ is deployed to:\s*(0x[0-9a-fA-F]{40})",
                r"\b\w+ deployed to:\s*(0x[0-9a-fA-F]{40})",
            ],
            transaction_hash=[
                r"Deployment transaction hash:\s*(0x[0-9a-fA-F]{64})",
                r"[Tt]ransaction [Hh]ash:\s*(0x[0-9a-fA-F]{64})",
            ],
        ),
    },
)

HARDHAT_CONFIG = """\
import {{ HardhatUserConfig }} from "hardhat/config";
import "@nomicfoundation/hardhat-toolbox";
import "@moved/hardhat-plugin";

const config: HardhatUserConfig = {{
  solidity: {solidity},
  defaultNetwork: {network},
  networks: {{
    {network_key}: {{
      url: {rpc_url},
      chainId: {chain_id},
      accounts: process.env.DEPLOYER_PRIVATE_KEY ? [process.env.DEPLOYER_PRIVATE_KEY] : [],
    }},
  }},
}};

export default config;
"""

DEPLOY_SCRIPT = """\
import {{ ethers }} from "hardhat";

async function main() {{
  const args: string[] = JSON.parse(process.env.CONSTRUCTOR_ARGS || "[]");
  const factory = await ethers.getContractFactory({contract});
  const contract = await factory.deploy(...args, {{
    gasLimit: 3000000,
    gasPrice: ethers.parseUnits("0.1", "gwei"),
  }});
  await contract.waitForDeployment();

  const tx = contract.deploymentTransaction();
  const receipt = tx ? await ethers.provider.getTransactionReceipt(tx.hash) : null;
  console.log("{name} is deployed to:", receipt?.contractAddress ?? (await contract.getAddress()));
  console.log("Deployment transaction hash:", tx?.hash);
}}

main()
  .then(() => process.exit(0))
  .catch((err) => {{
    console.error(err);
    process.exit(1);
  }});
"""

TSCONFIG = {
    "compilerOptions": {
        "target": "es2020",
        "module": "commonjs",
        "strict": True,
        "esModuleInterop": True,
        "skipLibCheck": True,
        "forceConsistentCasingInFileNames": True,
        "resolveJsonModule": True,
    }
}


class EvmVariant(DeploymentVariant):
    """Solidity contracts compiled and deployed with Hardhat."""

    name = "evm"
    label = "Solidity"
    # Concrete contract declarations only, never "abstract contract"
    declaration = re.compile(r"(?:^|[;}])\s*contract\s+(\w+)", re.MULTILINE)
    default_identifier = "HelloWorld"

    def build_scaffold(self, request: DeploymentRequest, contract_name: str) -> Scaffold:
        package = {
            "name": "umi-evm-temp",
            "version": "1.0.0",
            "private": True,
            "scripts": {"deploy": f"hardhat run scripts/deploy.ts --network {NETWORK_NAME}"},
            "devDependencies": {
                "hardhat": "^2.19.0",
                "@nomicfoundation/hardhat-toolbox": "^4.0.0",
                "@moved/hardhat-plugin": "^0.2.1",
                "typescript": "^5.0.0",
                "ts-node": "^10.9.0",
                "@types/node": "^20.0.0",
            },
        }

        return Scaffold(
            directories=["contracts", "scripts"],
            files={
                f"contracts/{contract_name}.sol": request.source_code or "",
                "hardhat.config.ts": HARDHAT_CONFIG.format(
                    solidity=json.dumps(self.settings.solidity_version),
                    network=json.dumps(NETWORK_NAME),
                    network_key=NETWORK_NAME,
                    rpc_url=json.dumps(self.settings.rpc_url),
                    chain_id=int(self.settings.evm_chain_id),
                ),
                "scripts/deploy.ts": DEPLOY_SCRIPT.format(
                    contract=json.dumps(contract_name),
                    name=contract_name,
                ),
                "package.json": json.dumps(package, indent=2),
                "tsconfig.json": json.dumps(TSCONFIG, indent=2),
            },
        )

    def steps(self, request: DeploymentRequest, contract_name: str) -> list[ToolchainStep]:
        return [
            ToolchainStep("install", ("npm", "install", "--no-audit", "--no-fund")),
            ToolchainStep("compile", ("npx", "hardhat", "compile")),
            ToolchainStep(
                "deploy",
                ("npx", "hardhat", "run", "scripts/deploy.ts", "--network", NETWORK_NAME),
            ),
        ]

    def default_patterns(self) -> OutputPatternSet:
        return EVM_PATTERNS

    def environment(self, request: DeploymentRequest) -> dict[str, str]:
        return {
            "DEPLOYER_PRIVATE_KEY": "0x" + request.bare_credential,
            "CONSTRUCTOR_ARGS": json.dumps(list(request.constructor_args or [])),
            "HARDHAT_DISABLE_TELEMETRY_PROMPT": "true",
        }

    def deployer_address(self, request: DeploymentRequest) -> Optional[str]:
        """Checksummed address controlled by the submitted key."""
        try:
            return Account.from_key("0x" + request.bare_credential).address
        except (ValueError, TypeError) as e:
            logger.debug(f"Could not derive deployer address: {e}")
            return None
