"""HTTP API over the orchestrator."""
