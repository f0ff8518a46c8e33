"""Configuration, logging, storage and locking for the store."""
