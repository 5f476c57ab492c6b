"""pmtrack: conversational quick updates for a project tracker."""

__version__ = "0.1.0"
