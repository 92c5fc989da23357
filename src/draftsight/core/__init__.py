"""Core services: configuration, logging, notifications and errors."""
