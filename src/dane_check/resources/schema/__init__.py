"""JSON Schema for the configuration file."""
