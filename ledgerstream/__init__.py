"""ledgerstream: streaming ingestion engine for design-session conversations."""

__version__ = "0.1.0"
