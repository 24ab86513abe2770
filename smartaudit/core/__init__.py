"""Core data model: issues, scoring, capabilities and process execution."""
