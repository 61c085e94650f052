"""
Contexts handed to resolvers during evaluation.

``ELContext`` is the long-lived bundle the embedding application owns: the
resolver chain, its live function and variable mappers, an import handler and
the coercion mode. ``EvaluationContext`` is created fresh for every
evaluation call and carries the frozen binding tables of one compiled
expression, the "property resolved" flag and the lambda argument scopes.
"""
import importlib
import os
import sys
from typing import Any, Dict, List, Mapping, Optional

from elx.elx_coerce import coerce_to_type

_DEBUG = False


def set_debug(enabled: bool):
    global _DEBUG
    _DEBUG = bool(enabled)


def dbg(*parts):
    if _DEBUG or os.environ.get("ELX_DEBUG"):
        print("[DBG]", *parts, file=sys.stderr)


class ELClass:
    """Wraps a host class used as the base of a chain (``Math.max``, ``Point(1, 2)``)."""
    def __init__(self, klass: type):
        self.klass = klass

    def __eq__(self, other):
        return isinstance(other, ELClass) and other.klass is self.klass

    def __hash__(self):
        return hash(('ELClass', self.klass))

    def __repr__(self):
        return f"ELClass({self.klass.__qualname__})"


class ImportHandler:
    """Maps bare names to classes and statically imported members."""
    def __init__(self):
        self._classes: Dict[str, type] = {}
        self._packages: List[str] = ['builtins']
        self._statics: Dict[str, type] = {}

    def import_class(self, name: str):
        from elx.elx_types import type_for_name
        klass = type_for_name(name)
        self._classes[name.rsplit('.', 1)[-1]] = klass

    def import_package(self, name: str):
        importlib.import_module(name)
        if name not in self._packages:
            self._packages.append(name)

    def import_static(self, name: str):
        """``pkg.module.Class.member`` makes ``member`` resolvable on its own."""
        from elx.elx_types import type_for_name
        from elx.elx_errors import ELError
        class_name, _, member = name.rpartition('.')
        if not class_name or not member:
            raise ELError(f"Invalid static import: {name}")
        klass = type_for_name(class_name)
        if not hasattr(klass, member):
            raise ELError(f"Static member {member} not found on {class_name}")
        self._statics[member] = klass

    def resolve_class(self, name: str) -> Optional[type]:
        klass = self._classes.get(name)
        if klass is not None:
            return klass
        for package in self._packages:
            module = importlib.import_module(package)
            found = getattr(module, name, None)
            if isinstance(found, type):
                self._classes[name] = found
                return found
        return None

    def resolve_static(self, name: str) -> Optional[type]:
        return self._statics.get(name)


class ELContext:
    """Caller-owned evaluation environment."""
    def __init__(self, resolver=None, function_mapper=None, variable_mapper=None,
                 import_handler: Optional[ImportHandler] = None, legacy_coercion: bool = False):
        self.resolver = resolver
        self.function_mapper = function_mapper
        self.variable_mapper = variable_mapper
        self.import_handler = import_handler if import_handler is not None else ImportHandler()
        self.legacy_coercion = legacy_coercion
        self.property_resolved = False

    def convert_to_type(self, value: Any, target: Any) -> Any:
        self.property_resolved = False
        if self.resolver is not None:
            result = self.resolver.convert_to_type(self, value, target)
            if self.property_resolved:
                return result
        return coerce_to_type(value, target, self.legacy_coercion, self)


class EvaluationContext:
    """Per-call state over an ELContext. Never shared between evaluations."""
    def __init__(self, el_context: ELContext, functions: Optional[Mapping] = None,
                 variables: Optional[Mapping] = None):
        self.el_context = el_context
        self.functions = functions
        self.variables = variables
        self.property_resolved = False
        self._lambda_scopes: List[Dict[str, Any]] = []

    @property
    def resolver(self):
        return self.el_context.resolver

    @property
    def import_handler(self) -> Optional[ImportHandler]:
        return self.el_context.import_handler

    @property
    def legacy_coercion(self) -> bool:
        return self.el_context.legacy_coercion

    def convert_to_type(self, value: Any, target: Any) -> Any:
        self.property_resolved = False
        if self.resolver is not None:
            result = self.resolver.convert_to_type(self, value, target)
            if self.property_resolved:
                return result
        return coerce_to_type(value, target, self.legacy_coercion, self)

    # Lambda argument scopes

    def is_lambda_argument(self, name: str) -> bool:
        return any(name in scope for scope in self._lambda_scopes)

    def get_lambda_argument(self, name: str) -> Any:
        for scope in reversed(self._lambda_scopes):
            if name in scope:
                return scope[name]
        return None

    def enter_lambda_scope(self, arguments: Dict[str, Any]):
        self._lambda_scopes.append(dict(arguments))

    def exit_lambda_scope(self):
        self._lambda_scopes.pop()

    def lambda_arguments(self) -> Dict[str, Any]:
        """All visible lambda arguments, inner scopes shadowing outer ones."""
        merged: Dict[str, Any] = {}
        for scope in self._lambda_scopes:
            merged.update(scope)
        return merged
