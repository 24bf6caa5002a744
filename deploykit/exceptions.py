"""
deploykit Exception Hierarchy

Clean exception hierarchy for consistent error handling across the CLI.
"""

from typing import Optional


class DeployKitError(Exception):
    """Base exception for all deploykit errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(DeployKitError):
    """Raised when a required tool, the project root or configuration is missing."""

    pass


class CredentialError(DeployKitError):
    """Raised when no verified AWS identity can be established."""

    pass


class CacheError(DeployKitError):
    """Raised when the deployment cache is missing or cannot satisfy a requirement."""

    pass


class DeploymentError(DeployKitError):
    """Raised when deploy, unlock or tooling repair fails."""

    pass


class MissingToolError(ConfigurationError):
    """Raised when a required command line tool is not installed."""

    def __init__(self, tool: str, hint: str):
        self.tool = tool
        message = f"{tool} is not installed"
        super().__init__(message, context=hint)
