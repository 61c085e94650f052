"""
Reference resolvers.

A resolver answers property reads, writes, type queries and method calls
for the bases it understands and marks the context as resolved when it
does; everything else falls through to the next resolver of a
CompositeResolver. ``default_resolver`` assembles the standard chain.
"""
import dataclasses
import inspect
import typing
from collections.abc import Mapping, MutableMapping
from enum import EnumMeta
from typing import Any, Dict, List, Optional

from elx.elx_context import ELClass, dbg
from elx.elx_errors import ELError, MethodNotFound, PropertyNotFound, PropertyNotWritable
from elx.elx_reflect import CONSTRUCTOR, find_method, invoke_method
from elx.elx_stream import Stream
from elx.elx_types import Char, normalize_type, type_name


class ELResolver:
    """Resolves nothing; subclasses override the operations they support."""

    def get_value(self, ctx, base, prop) -> Any:
        return None

    def set_value(self, ctx, base, prop, value) -> None:
        return None

    def is_read_only(self, ctx, base, prop) -> bool:
        return False

    def get_type(self, ctx, base, prop) -> Any:
        return None

    def invoke(self, ctx, base, method, param_types, params) -> Any:
        return None

    def convert_to_type(self, ctx, value, target) -> Any:
        return None


class CompositeResolver(ELResolver):
    """Asks each resolver in turn until one marks the property resolved."""
    def __init__(self, resolvers: Optional[List[ELResolver]] = None):
        self.resolvers: List[ELResolver] = list(resolvers or [])

    def add(self, resolver: ELResolver):
        if resolver is None:
            raise ValueError("resolver cannot be None")
        self.resolvers.append(resolver)

    def _first(self, ctx, op: str, *args):
        ctx.property_resolved = False
        for resolver in self.resolvers:
            result = getattr(resolver, op)(ctx, *args)
            if ctx.property_resolved:
                return result
        return None

    def get_value(self, ctx, base, prop):
        return self._first(ctx, 'get_value', base, prop)

    def set_value(self, ctx, base, prop, value):
        self._first(ctx, 'set_value', base, prop, value)

    def is_read_only(self, ctx, base, prop):
        return bool(self._first(ctx, 'is_read_only', base, prop))

    def get_type(self, ctx, base, prop):
        return self._first(ctx, 'get_type', base, prop)

    def invoke(self, ctx, base, method, param_types, params):
        return self._first(ctx, 'invoke', base, method, param_types, params)

    def convert_to_type(self, ctx, value, target):
        return self._first(ctx, 'convert_to_type', value, target)


# =================================================================
# Top-level names
# =================================================================

class BeanNameResolver(ELResolver):
    """Top-level identifiers backed by a plain dict of named beans."""
    def __init__(self, beans: Optional[Dict[str, Any]] = None, read_only: bool = False):
        self.beans = beans if beans is not None else {}
        self.read_only = read_only

    def _handles(self, base, prop) -> bool:
        return base is None and isinstance(prop, str) and prop in self.beans

    def get_value(self, ctx, base, prop):
        if self._handles(base, prop):
            ctx.property_resolved = True
            return self.beans[prop]
        return None

    def set_value(self, ctx, base, prop, value):
        if base is None and isinstance(prop, str):
            if self.read_only:
                ctx.property_resolved = True
                raise PropertyNotWritable(f"Bean '{prop}' is read only")
            # Assignment to an unknown top-level name defines a new bean
            self.beans[prop] = value
            ctx.property_resolved = True

    def is_read_only(self, ctx, base, prop):
        if self._handles(base, prop):
            ctx.property_resolved = True
            return self.read_only
        return False

    def get_type(self, ctx, base, prop):
        if self._handles(base, prop):
            ctx.property_resolved = True
            value = self.beans[prop]
            return None if value is None else type(value)
        return None


# =================================================================
# Classes used as values
# =================================================================

def _static_member(klass, name):
    if not isinstance(name, str) or name.startswith('_'):
        return False, None
    if isinstance(klass, EnumMeta) and name in klass.__members__:
        return True, klass.__members__[name]
    try:
        raw = inspect.getattr_static(klass, name)
    except AttributeError:
        return False, None
    if isinstance(raw, (staticmethod, classmethod, property)) or inspect.isfunction(raw):
        return False, None
    return True, getattr(klass, name)


class StaticFieldResolver(ELResolver):
    """Class attributes, static methods and constructors on ``ELClass`` bases."""

    def get_value(self, ctx, base, prop):
        if not isinstance(base, ELClass):
            return None
        ctx.property_resolved = True
        found, value = _static_member(base.klass, prop)
        if not found:
            raise PropertyNotFound(f"Static field '{prop}' not found on {type_name(base.klass)}", base, prop)
        return value

    def set_value(self, ctx, base, prop, value):
        if isinstance(base, ELClass):
            ctx.property_resolved = True
            raise PropertyNotWritable(f"Cannot write static field '{prop}' on {type_name(base.klass)}")

    def is_read_only(self, ctx, base, prop):
        if isinstance(base, ELClass):
            ctx.property_resolved = True
            return True
        return False

    def get_type(self, ctx, base, prop):
        if not isinstance(base, ELClass):
            return None
        ctx.property_resolved = True
        found, value = _static_member(base.klass, prop)
        if not found:
            raise PropertyNotFound(f"Static field '{prop}' not found on {type_name(base.klass)}", base, prop)
        return type(value)

    def invoke(self, ctx, base, method, param_types, params):
        if not isinstance(base, ELClass) or not isinstance(method, str):
            return None
        klass = base.klass
        ref = find_method(klass, method, param_types, params)
        if method != CONSTRUCTOR and not ref.is_static:
            raise MethodNotFound(f"Method {method} on {type_name(klass)} is not static")
        result = invoke_method(ctx, ref, None, params)
        ctx.property_resolved = True
        return result


# =================================================================
# Collections
# =================================================================

class StreamResolver(ELResolver):
    """``collection.stream()`` on lists, tuples and sets."""

    def invoke(self, ctx, base, method, param_types, params):
        if isinstance(base, (list, tuple, set, frozenset)) and method == "stream" and not params:
            ctx.property_resolved = True
            return Stream(base)
        return None


class MapResolver(ELResolver):
    """Mapping keys as properties: ``m.key`` and ``m['key']``."""
    def __init__(self, read_only: bool = False):
        self.read_only = read_only

    def get_value(self, ctx, base, prop):
        if isinstance(base, Mapping):
            ctx.property_resolved = True
            return base.get(prop)
        return None

    def set_value(self, ctx, base, prop, value):
        if isinstance(base, Mapping):
            ctx.property_resolved = True
            if self.read_only or not isinstance(base, MutableMapping):
                raise PropertyNotWritable(f"Mapping of type {type_name(type(base))} is not writable")
            base[prop] = value

    def is_read_only(self, ctx, base, prop):
        if isinstance(base, Mapping):
            ctx.property_resolved = True
            return self.read_only or not isinstance(base, MutableMapping)
        return False

    def get_type(self, ctx, base, prop):
        if isinstance(base, Mapping):
            ctx.property_resolved = True
            return object
        return None


def _index(prop) -> int:
    match prop:
        case bool():
            return 1 if prop else 0
        case Char():
            return ord(prop)
        case int():
            return prop
        case float():
            return int(prop)
        case str():
            try:
                return int(prop)
            except ValueError as e:
                raise ELError(f"Bad index: {prop!r}") from e
    raise ELError(f"Bad index: {prop!r}")


class ListResolver(ELResolver):
    """Integer-indexed access to lists and tuples; tuples are read only."""
    def __init__(self, read_only: bool = False):
        self.read_only = read_only

    def get_value(self, ctx, base, prop):
        if not isinstance(base, (list, tuple)):
            return None
        ctx.property_resolved = True
        index = _index(prop)
        if index < 0 or index >= len(base):
            return None
        return base[index]

    def set_value(self, ctx, base, prop, value):
        if not isinstance(base, (list, tuple)):
            return
        ctx.property_resolved = True
        if self.read_only or isinstance(base, tuple):
            raise PropertyNotWritable(f"{type_name(type(base))} is not writable")
        index = _index(prop)
        if index < 0 or index >= len(base):
            raise PropertyNotFound(f"Index {index} out of range for list of size {len(base)}", base, prop)
        base[index] = value

    def is_read_only(self, ctx, base, prop):
        if not isinstance(base, (list, tuple)):
            return False
        ctx.property_resolved = True
        index = _index(prop)
        if index < 0 or index >= len(base):
            raise PropertyNotFound(f"Index {index} out of range for list of size {len(base)}", base, prop)
        return self.read_only or isinstance(base, tuple)

    def get_type(self, ctx, base, prop):
        if not isinstance(base, (list, tuple)):
            return None
        ctx.property_resolved = True
        index = _index(prop)
        if index < 0 or index >= len(base):
            raise PropertyNotFound(f"Index {index} out of range for list of size {len(base)}", base, prop)
        return object


# =================================================================
# Plain objects
# =================================================================

def _declared_type(klass, prop):
    try:
        hints = typing.get_type_hints(klass)
    except (NameError, TypeError):
        hints = {}
    if prop in hints:
        return normalize_type(hints[prop])
    raw = inspect.getattr_static(klass, prop, None)
    if isinstance(raw, property) and raw.fget is not None:
        annotation = inspect.signature(raw.fget).return_annotation
        if annotation is not inspect.Signature.empty:
            return normalize_type(annotation)
    return None


def _attribute_read_only(base, prop) -> bool:
    raw = inspect.getattr_static(type(base), prop, None)
    if isinstance(raw, property):
        return raw.fset is None
    if dataclasses.is_dataclass(base) and base.__dataclass_params__.frozen:
        return True
    return False


class AttributeResolver(ELResolver):
    """Public attributes, properties and methods of arbitrary host objects."""
    def __init__(self, read_only: bool = False):
        self.read_only = read_only

    def _handles(self, base) -> bool:
        return base is not None and not isinstance(base, ELClass)

    def _check(self, base, prop):
        if not isinstance(prop, str) or prop.startswith('_') or not hasattr(base, prop):
            raise PropertyNotFound(f"Property '{prop}' not found on type {type_name(type(base))}", base, prop)

    def get_value(self, ctx, base, prop):
        if not self._handles(base):
            return None
        ctx.property_resolved = True
        self._check(base, prop)
        return getattr(base, prop)

    def set_value(self, ctx, base, prop, value):
        if not self._handles(base):
            return
        ctx.property_resolved = True
        self._check(base, prop)
        if self.read_only or _attribute_read_only(base, prop):
            raise PropertyNotWritable(f"Property '{prop}' is not writable on type {type_name(type(base))}")
        try:
            setattr(base, prop, value)
        except AttributeError as e:
            raise PropertyNotWritable(f"Property '{prop}' is not writable on type {type_name(type(base))}") from e

    def is_read_only(self, ctx, base, prop):
        if not self._handles(base):
            return False
        ctx.property_resolved = True
        self._check(base, prop)
        return self.read_only or _attribute_read_only(base, prop)

    def get_type(self, ctx, base, prop):
        if not self._handles(base):
            return None
        ctx.property_resolved = True
        self._check(base, prop)
        declared = _declared_type(type(base), prop)
        if declared is not None:
            return declared
        value = getattr(base, prop)
        return None if value is None else type(value)

    def invoke(self, ctx, base, method, param_types, params):
        if not self._handles(base) or method is None:
            return None
        ref = find_method(type(base), str(method), param_types, params)
        dbg("invoke", type_name(type(base)), method, "->", ref)
        result = invoke_method(ctx, ref, base, params)
        ctx.property_resolved = True
        return result


def default_resolver(beans: Optional[Dict[str, Any]] = None) -> CompositeResolver:
    """The standard chain: beans, classes, streams, mappings, sequences, then attributes."""
    return CompositeResolver([
        BeanNameResolver(beans),
        StaticFieldResolver(),
        StreamResolver(),
        MapResolver(),
        ListResolver(),
        AttributeResolver(),
    ])
