"""ghbridge - release automation bridge to the GitHub REST API."""

__version__ = "0.1.0"
