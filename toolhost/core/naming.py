"""Naming — deterministic URIs for auto-generated resources.

Invariants:
    - Same class name + method name always yields the same URI
    - normalize: lowercase, then strip one trailing "service" (if anything remains)

    WeatherService.getForecast -> weather://getForecast, ui://weather/getForecast
"""

_SERVICE_SUFFIX = "service"


def normalize_service_name(class_name: str) -> str:
    name = class_name.lower()
    if name.endswith(_SERVICE_SUFFIX) and len(name) > len(_SERVICE_SUFFIX):
        name = name[: -len(_SERVICE_SUFFIX)]
    return name


def resource_uri(class_name: str, method_name: str) -> str:
    return f"{normalize_service_name(class_name)}://{method_name}"


def ui_resource_uri(class_name: str, method_name: str) -> str:
    return f"ui://{normalize_service_name(class_name)}/{method_name}"
