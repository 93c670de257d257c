"""Rule-based maintainability checks for C# submissions."""

__version__ = "0.1.0"
