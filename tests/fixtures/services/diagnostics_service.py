"""Diagnostics service — failure paths and identity plumbing."""

from toolhost.core.decorators import authenticated, deprecated, render, service, tool
from toolhost.core.request_context import current_identity


@service
class DiagnosticsService:
    @tool(description="Always fails")
    def fail(self) -> None:
        raise RuntimeError("upstream rejected key sk-live-1234")

    @authenticated()
    @tool(description="Subject of the verified caller")
    def whoami(self) -> str:
        return current_identity().subject

    @tool(description="Echo raw arguments back")
    @render("json")
    def echo(self, arguments: dict) -> dict:
        return arguments

    @tool
    @deprecated(message="Use echo")
    def legacyEcho(self, arguments: dict) -> str:
        """Old echo."""
        return str(arguments)
