"""Utilities for locating workflow definitions by import path."""

from __future__ import annotations

import sys
from importlib import import_module
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path
from types import ModuleType
from typing import Any, Optional

from .contracts import Workflow
from .errors import WorkflowLoadError


def _split_target(target: str) -> tuple[str, str]:
    module_ref, sep, attribute = target.rpartition(":")
    if not sep or not module_ref or not attribute:
        raise WorkflowLoadError(
            f"Invalid workflow target '{target}': expected 'module:attribute' "
            "or 'path/to/file.py:attribute'"
        )
    return module_ref, attribute


def _load_module_from_path(path: Path) -> ModuleType:
    module_name = f"_taskloom_workflow_{path.stem}"
    spec = spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise WorkflowLoadError(f"Cannot import workflow file: {path}")
    module = module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def load_module(module_ref: str, base_path: Optional[Path] = None) -> ModuleType:
    """Import ``module_ref`` given as a dotted name or a ``.py`` path."""

    if module_ref.endswith(".py"):
        path = Path(module_ref)
        if not path.is_absolute() and base_path is not None:
            path = base_path / path
        path = path.expanduser().resolve()
        if not path.exists():
            raise WorkflowLoadError(f"Workflow file not found: {path}")
        return _load_module_from_path(path)

    search_root = str((base_path or Path.cwd()).resolve())
    if search_root not in sys.path:
        sys.path.insert(0, search_root)
    try:
        return import_module(module_ref)
    except ImportError as e:
        raise WorkflowLoadError(f"Cannot import module '{module_ref}': {e}") from e


def load_workflow(target: str, base_path: Optional[Path] = None) -> Workflow:
    """Resolve ``target`` to a :class:`Workflow`.

    The attribute may be a ``Workflow`` or a zero-argument callable that
    builds one.
    """

    module_ref, attribute = _split_target(target)
    module = load_module(module_ref, base_path)

    obj: Any = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise WorkflowLoadError(
                f"'{attribute}' not found in module '{module_ref}'"
            ) from e

    if callable(obj) and not isinstance(obj, Workflow):
        obj = obj()
    if not isinstance(obj, Workflow):
        raise WorkflowLoadError(
            f"'{target}' resolved to {type(obj).__name__}, expected a Workflow"
        )
    return obj
