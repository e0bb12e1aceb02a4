from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import Iterable, List

from fastapi import APIRouter

logger = logging.getLogger(__name__)

MODULES_PACKAGE = "artifact_studio.modules"


def iter_feature_packages(package: str = MODULES_PACKAGE) -> Iterable[str]:
    pkg = importlib.import_module(package)
    for info in pkgutil.iter_modules(pkg.__path__):
        if info.ispkg:
            yield f"{package}.{info.name}"


def _import_optional(name: str) -> object | None:
    """Import ``name`` if it exists; errors raised inside it still propagate."""
    try:
        return importlib.import_module(name)
    except ModuleNotFoundError as exc:
        if exc.name != name:
            raise
        return None


def collect_routers(package: str = MODULES_PACKAGE) -> List[APIRouter]:
    """Import every feature package's models and router.

    Models are imported first so their tables are on ``Base.metadata`` before
    ``ensure_core_schema`` runs.
    """
    routers: List[APIRouter] = []
    for feature in iter_feature_packages(package):
        _import_optional(f"{feature}.models")
        router_mod = _import_optional(f"{feature}.router")
        router = getattr(router_mod, "router", None)
        if router is not None:
            logger.debug("Mounting router from %s", feature)
            routers.append(router)
    return routers
