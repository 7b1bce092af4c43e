"""HTTP transport for the Praxis service."""
