"""HTTP API for the Blood Bank service."""
