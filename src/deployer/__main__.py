"""Entry point for running as module: python -m deployer"""

# Load .env file before importing anything else
from dotenv import load_dotenv
load_dotenv()

from deployer.main import main

if __name__ == "__main__":
    main()
