"""Service Discovery — explicit, ordered manifest of service modules under a directory.

Invariants:
    - Manifest order is sorted relative path order (deterministic across machines)
    - Files whose name starts with "_" are skipped (__init__.py, private helpers)
    - Within a module, @service classes defined IN that module are taken in
      definition order; re-exported classes are ignored
    - Every discovered class must be zero-argument constructible
    - Any import or construction failure is a RegistrationError (server never starts)

Design Decisions:
    - build_manifest() is separate from import: the list of files can be logged
      and asserted on before any user code runs
    - Modules are loaded under a private "toolhost_services." name so they cannot
      shadow installed packages; relative imports inside them are not supported
"""

import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType

from toolhost.core.decorators import is_service
from toolhost.core.errors import RegistrationError
from toolhost.core.metadata_registry import MetadataRegistry

logger = logging.getLogger(__name__)

_MODULE_PREFIX = "toolhost_services"


def build_manifest(directory: str | Path) -> list[Path]:
    root = Path(directory)
    if not root.is_dir():
        raise RegistrationError(f"Services directory not found: {root}")
    return sorted(
        (
            path for path in root.rglob("*.py")
            if not path.name.startswith("_")
            and "__pycache__" not in path.parts
        ),
        key=lambda p: p.relative_to(root).as_posix(),
    )


def discover_services(
    directory: str | Path, *, registry: MetadataRegistry | None = None,
) -> list[object]:
    """Import every manifest module and instantiate its service classes."""
    root = Path(directory)
    instances: list[object] = []
    for path in build_manifest(root):
        module = _load_module(root, path)
        for cls in _service_classes(module, registry):
            instances.append(_instantiate(cls, path))
    logger.info(
        f"Discovered {len(instances)} services under {root}",
    )
    return instances


def _load_module(root: Path, path: Path) -> ModuleType:
    parts = path.relative_to(root).with_suffix("").parts
    module_name = ".".join((_MODULE_PREFIX, *parts))
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RegistrationError(f"Cannot load service module {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise RegistrationError(
            f"Failed to import service module {path}: {e}",
        ) from e
    return module


def _service_classes(
    module: ModuleType, registry: MetadataRegistry | None,
) -> list[type]:
    return [
        obj for obj in vars(module).values()
        if isinstance(obj, type)
        and obj.__module__ == module.__name__
        and is_service(obj, registry)
    ]


def _instantiate(cls: type, path: Path) -> object:
    try:
        return cls()
    except TypeError as e:
        raise RegistrationError(
            f"{cls.__name__} in {path} is not zero-argument constructible: {e}",
        ) from e
    except Exception as e:
        raise RegistrationError(
            f"{cls.__name__} in {path} failed to construct: {e}",
        ) from e
