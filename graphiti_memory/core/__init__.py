"""Core configuration, schemas, events and exceptions."""
