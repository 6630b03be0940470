"""Service Discovery — tests for the manifest and service instantiation.

Tests cover:
    - Manifest order (sorted relative paths) and private-module skipping
    - Service classes taken in definition order, one instance each
    - Import and construction failures surface as RegistrationError
"""

from pathlib import Path

import pytest

from toolhost.core.errors import RegistrationError
from toolhost.services.discovery import build_manifest, discover_services

SERVICES_DIR = Path(__file__).parents[1] / "fixtures" / "services"


def test_manifest_is_sorted_and_skips_private_modules():
    manifest = [p.relative_to(SERVICES_DIR).as_posix() for p in build_manifest(SERVICES_DIR)]
    assert manifest == [
        "counter_service.py",
        "diagnostics_service.py",
        "nested/alerts_service.py",
        "weather_service.py",
    ]


def test_discovery_instantiates_each_service_once():
    instances = discover_services(SERVICES_DIR)
    assert [type(i).__name__ for i in instances] == [
        "CounterService", "DiagnosticsService", "AlertsService", "WeatherService",
    ]


def test_missing_directory_fails(tmp_path):
    with pytest.raises(RegistrationError, match="not found"):
        build_manifest(tmp_path / "absent")


def test_plain_classes_are_ignored(tmp_path):
    (tmp_path / "helpers.py").write_text("class Helper:\n    pass\n")
    assert discover_services(tmp_path) == []


def test_import_failure_fails_discovery(tmp_path):
    (tmp_path / "broken_service.py").write_text("import does_not_exist_anywhere\n")
    with pytest.raises(RegistrationError, match="broken_service.py"):
        discover_services(tmp_path)


def test_constructor_arguments_fail_discovery(tmp_path):
    (tmp_path / "needs_args.py").write_text(
        "from toolhost.core.decorators import service\n"
        "\n"
        "@service\n"
        "class NeedsArgs:\n"
        "    def __init__(self, client):\n"
        "        self.client = client\n"
    )
    with pytest.raises(RegistrationError, match="zero-argument"):
        discover_services(tmp_path)
