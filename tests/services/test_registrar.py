"""Service Registrar — tests for routing table construction.

Tests cover:
    - Names, descriptions and URIs of the fixture services
    - UI-linked tools register their HTML resource alongside
    - Duplicate names per namespace fail registration (namespaces are separate)
    - Auth resolution: unknown provider, default project, method-level override
    - Class-level @deprecated and @ui_app reach every capability a member does not override
    - Inherited capabilities and registration guards
"""

import pytest

from toolhost.core.auth_types import AuthRequirement
from toolhost.core.decorators import (
    authenticated, deprecated, elicitation, prompt, resource, service, tool, ui_app,
)
from toolhost.core.domain_types import CapabilityKind, RenderFormat, UI_RESOURCE_MIME_TYPE
from toolhost.core.errors import DuplicateCapabilityError, RegistrationError
from toolhost.services.registrar import ServiceRegistrar, build_routing_table


@service
class AlphaService:
    @tool
    def ping(self) -> str:
        return "alpha"


@service
class BetaService:
    @tool(name="ping")
    def pong(self) -> str:
        return "beta"


@service
class StatusService:
    @tool
    def status(self) -> str:
        return "tool"

    @prompt(name="status")
    def status_prompt(self) -> str:
        return "prompt"


@service
class GithubService:
    @authenticated("github")
    @tool
    def repos(self) -> list:
        return []


@service
class DefaultProjectService:
    @authenticated(project_id=True)
    @tool
    def run(self) -> str:
        return "ok"


@authenticated(scopes=["admin"])
@service
class LayeredAuthService:
    @tool
    def inherited(self) -> str:
        return "class"

    @authenticated(scopes=["read"])
    @tool
    def overridden(self) -> str:
        return "method"


@service
class BaseToolsService:
    @tool
    def version(self) -> str:
        return "1"


@service
class ExtendedToolsService(BaseToolsService):
    @tool
    def build(self) -> str:
        return "2"


@service
class InlineUiService:
    @tool
    @ui_app("<html><body>inline</body></html>", uri="ui://custom/panel")
    def panel(self) -> str:
        return "panel"


@deprecated(message="Use WeatherService")
@ui_app("LegacyPanel")
@service
class LegacyService:
    @tool
    def lookup(self) -> str:
        return "legacy"

    @deprecated(message="Removed next release")
    @tool
    def purge(self) -> str:
        return "purged"

    @tool
    @ui_app("<html><body>custom</body></html>", uri="ui://legacy/custom")
    def custom(self) -> str:
        return "custom"

    @resource
    def stations(self) -> list:
        return []

    @elicitation
    @tool
    def confirm(self, arguments: dict) -> dict:
        return {"needsElicitation": True}


class NotAService:
    @tool
    def hidden(self) -> str:
        return "hidden"


def _names(table, kind):
    return [entry.name for entry in table.entries(kind)]


def test_fixture_tools_are_registered_in_manifest_order(routing_table):
    assert _names(routing_table, CapabilityKind.TOOL) == [
        "increment", "current",
        "fail", "whoami", "echo", "legacyEcho",
        "getForecast", "premiumForecast",
    ]
    assert _names(routing_table, CapabilityKind.PROMPT) == ["alertSummary"]


def test_resources_get_generated_uris(routing_table):
    assert _names(routing_table, CapabilityKind.RESOURCE) == [
        "ui://weather/getForecast", "weather://stations",
    ]
    stations = routing_table.lookup(CapabilityKind.RESOURCE, "weather://stations")
    assert stations.mime_type == "application/json"
    assert stations.description == "Known weather stations"


def test_ui_tool_links_its_resource(routing_table):
    forecast = routing_table.lookup(CapabilityKind.TOOL, "getForecast")
    assert forecast.ui_resource_uri == "ui://weather/getForecast"
    assert forecast.title == "Forecast"
    ui = routing_table.lookup(CapabilityKind.RESOURCE, "ui://weather/getForecast")
    assert ui.mime_type == UI_RESOURCE_MIME_TYPE
    html = ui.handler()
    assert 'data-component="ForecastCard"' in html
    assert "<title>Forecast</title>" in html


def test_inline_html_component_is_served_verbatim():
    table = build_routing_table([InlineUiService()])
    ui = table.lookup(CapabilityKind.RESOURCE, "ui://custom/panel")
    assert ui.handler() == "<html><body>inline</body></html>"


def test_description_falls_back_to_docstring_first_line(routing_table):
    assert routing_table.lookup(CapabilityKind.TOOL, "current").description == (
        "Read this session's counter."
    )
    assert routing_table.lookup(CapabilityKind.TOOL, "legacyEcho").deprecated == "Use echo"


def test_entry_metadata(routing_table):
    echo = routing_table.lookup(CapabilityKind.TOOL, "echo")
    assert echo.accepts_arguments
    assert echo.input_schema is None
    assert echo.render_format is RenderFormat.JSON
    premium = routing_table.lookup(CapabilityKind.TOOL, "premiumForecast")
    assert premium.auth == AuthRequirement("default", "weather-pro", ("forecast:read",))
    assert premium.required_keys == ("WEATHER_API_KEY",)
    assert premium.security == ({"type": "oauth2", "scopes": ["forecast:read"]},)
    assert premium.qualified_name == "WeatherService.premiumForecast"


def test_duplicate_tool_names_fail_registration():
    with pytest.raises(DuplicateCapabilityError) as exc:
        build_routing_table([AlphaService(), BetaService()])
    assert exc.value.name == "ping"
    assert "AlphaService.ping" in exc.value.message
    assert "BetaService.pong" in exc.value.message


def test_namespaces_are_independent():
    table = build_routing_table([StatusService()])
    assert table.lookup(CapabilityKind.TOOL, "status").handler() == "tool"
    assert table.lookup(CapabilityKind.PROMPT, "status").handler() == "prompt"
    assert len(table) == 2


def test_unknown_provider_fails_registration():
    with pytest.raises(RegistrationError, match="github"):
        build_routing_table([GithubService()], providers=["default"])


def test_default_project_requires_configuration():
    with pytest.raises(RegistrationError, match="AUTH_PROJECT_ID"):
        build_routing_table([DefaultProjectService()], providers=["default"])

    table = build_routing_table(
        [DefaultProjectService()], providers=["default"], default_project_id="proj-1",
    )
    assert table.lookup(CapabilityKind.TOOL, "run").auth.project_id == "proj-1"


def test_method_level_auth_replaces_class_level():
    table = build_routing_table([LayeredAuthService()], providers=["default"])
    assert table.lookup(CapabilityKind.TOOL, "inherited").auth.scopes == ("admin",)
    overridden = table.lookup(CapabilityKind.TOOL, "overridden")
    assert overridden.auth.scopes == ("read",)
    assert overridden.security == (
        {"type": "oauth2", "scopes": ["admin"]},
        {"type": "oauth2", "scopes": ["read"]},
    )


def test_inherited_capabilities_come_first():
    table = build_routing_table([ExtendedToolsService()])
    assert _names(table, CapabilityKind.TOOL) == ["version", "build"]
    assert table.lookup(CapabilityKind.TOOL, "version").service_name == "ExtendedToolsService"


def test_undecorated_class_is_rejected():
    with pytest.raises(RegistrationError, match="missing @service"):
        build_routing_table([NotAService()])


def test_table_is_frozen_after_build():
    registrar = ServiceRegistrar()
    registrar.register(AlphaService())
    registrar.build()
    with pytest.raises(RegistrationError):
        registrar.register(StatusService())


def test_class_level_deprecation_reaches_every_capability():
    table = build_routing_table([LegacyService()])
    assert table.lookup(CapabilityKind.TOOL, "lookup").deprecated == "Use WeatherService"
    assert table.lookup(CapabilityKind.RESOURCE, "legacy://stations").deprecated == (
        "Use WeatherService"
    )
    assert table.lookup(CapabilityKind.TOOL, "purge").deprecated == "Removed next release"


def test_class_level_ui_app_links_each_tool_to_its_own_resource():
    table = build_routing_table([LegacyService()])
    lookup = table.lookup(CapabilityKind.TOOL, "lookup")
    assert lookup.ui_resource_uri == "ui://legacy/lookup"
    assert table.lookup(CapabilityKind.TOOL, "purge").ui_resource_uri == "ui://legacy/purge"
    html = table.lookup(CapabilityKind.RESOURCE, "ui://legacy/lookup").handler()
    assert 'data-component="LegacyPanel"' in html

    custom = table.lookup(CapabilityKind.TOOL, "custom")
    assert custom.ui_resource_uri == "ui://legacy/custom"
    assert table.lookup(CapabilityKind.RESOURCE, "ui://legacy/custom").handler() == (
        "<html><body>custom</body></html>"
    )
    assert table.lookup(CapabilityKind.RESOURCE, "legacy://stations").ui_resource_uri is None


def test_elicitation_flag_is_carried_on_the_entry():
    table = build_routing_table([LegacyService()])
    assert table.lookup(CapabilityKind.TOOL, "confirm").elicitation
    assert not table.lookup(CapabilityKind.TOOL, "lookup").elicitation


def test_class_level_ui_app_rejects_a_fixed_uri():
    with pytest.raises(TypeError, match="single method"):
        @ui_app("Panel", uri="ui://shared/panel")
        @service
        class SharedPanelService:
            @tool
            def one(self) -> str:
                return "one"
