"""Core configuration for the gateway."""
