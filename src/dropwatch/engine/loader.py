"""Resolve a compute engine from a ``'module:attr'`` reference."""

from __future__ import annotations

import importlib
from typing import Any

from dropwatch.core.errors import ConfigurationError
from dropwatch.engine.protocol import ComputeEngine
from dropwatch.framework.logging import get_logger

logger = get_logger(__name__)


def resolve_ref(ref: str) -> Any:
    """Import and return the object identified by ``'module:qualname'``.

    Raises:
        ConfigurationError: malformed reference, missing module or attribute.
    """
    module_path, _, attr_path = ref.partition(":")
    if not module_path or not attr_path:
        raise ConfigurationError(f"Invalid engine ref (expected 'module:attr'): {ref!r}")
    try:
        obj: Any = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(f"Engine module {module_path!r} not importable: {e}", cause=e) from e
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigurationError(f"Engine ref {ref!r} has no attribute {part!r}", cause=e) from e
    return obj


def load_engine(ref: str, **kwargs: Any) -> ComputeEngine:
    """Build the engine named by ``ref``.

    ``ref`` points at a class or a zero-argument factory. Keyword arguments
    are forwarded to it.

    Example:
        >>> engine = load_engine("dropwatch.engine.testing:JsonProjectEngine")
    """
    factory = resolve_ref(ref)
    if not callable(factory):
        raise ConfigurationError(f"Engine ref {ref!r} resolved to non-callable: {type(factory)}")

    try:
        engine = factory(**kwargs)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Engine factory {ref!r} failed: {e}", cause=e) from e

    if not isinstance(engine, ComputeEngine):
        raise ConfigurationError(
            f"Engine {type(engine).__name__} from {ref!r} does not implement ComputeEngine"
        )
    logger.debug("engine.loaded", ref=ref, engine=type(engine).__name__)
    return engine
