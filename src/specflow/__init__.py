"""specflow - keeps git branches and GitHub issues in step with spec phases."""

__version__ = "0.1.0"
