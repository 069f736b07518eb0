"""Imports every activity and workflow module so their registry decorators run."""

import importlib
import pkgutil

from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

COMPONENT_PACKAGES = (
    "daylight.temporal.activities",
    "daylight.temporal.workflows",
)


def discover_all() -> None:
    for package_name in COMPONENT_PACKAGES:
        package = importlib.import_module(package_name)
        for module_info in pkgutil.iter_modules(package.__path__):
            module_name = f"{package_name}.{module_info.name}"
            importlib.import_module(module_name)
            LOGGER.debug(f"Loaded Temporal components from {module_name}")
