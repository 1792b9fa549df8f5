"""HTTP API for the deployment service."""
