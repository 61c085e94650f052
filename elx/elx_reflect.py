"""
Method discovery, overload resolution and invocation on host objects.

Host classes expose their public methods (attributes not starting with an
underscore) to expressions. ``el_method`` marks a method explicitly and may
publish it under another expression-level name, which is how one class
carries several overloads of the same name. Parameter types come from
annotations; a ``*args`` parameter makes a method variadic.
"""
import functools
import importlib
import inspect
import sys
from abc import ABCMeta
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from elx.elx_context import dbg
from elx.elx_coerce import coerce_to_type
from elx.elx_errors import AmbiguousMethod, ELError, InvocationFault, MethodNotFound
from elx.elx_types import (
    box, element_type, is_array, is_assignable, is_instance_of, is_number_class,
    is_primitive, is_public_class, normalize_type, type_for_name, type_name, type_of,
)

CONSTRUCTOR = "<init>"


def el_method(name: Optional[str] = None, params: Optional[Sequence[Any]] = None,
              returns: Any = None, bridge: bool = False):
    """Marks a host method for expression access, optionally renaming it or fixing its signature."""
    def wrap(func):
        func._el_name = name or func.__name__
        func._el_params = None if params is None else tuple(params)
        func._el_returns = returns
        func._el_bridge = bridge
        return func
    return wrap


def _signature(fn):
    try:
        return inspect.signature(fn, eval_str=True)
    except NameError:
        return inspect.signature(fn)


def _describe(fn, drop_first: bool):
    """(param_types, varargs, return_type, required) for a Python callable.

    ``required`` counts the leading positional parameters without defaults.
    """
    sig = _signature(fn)
    params = list(sig.parameters.values())
    if drop_first and params and params[0].kind in (params[0].POSITIONAL_ONLY, params[0].POSITIONAL_OR_KEYWORD):
        params = params[1:]
    types: List[Any] = []
    varargs = False
    required = 0
    for p in params:
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            types.append(normalize_type(p.annotation))
            if p.default is p.empty and required == len(types) - 1:
                required += 1
        elif p.kind is p.VAR_POSITIONAL:
            types.append(list[normalize_type(p.annotation)])
            varargs = True
    explicit = getattr(fn, '_el_params', None)
    if explicit is not None:
        types = [normalize_type(t) for t in explicit]
        varargs = varargs and bool(types) and is_array(types[-1])
        required = len(types)
    returns = getattr(fn, '_el_returns', None)
    if returns is None:
        returns = normalize_type(sig.return_annotation)
    if varargs:
        required = len(types) - 1
    return types, varargs, returns, required


class MethodRef:
    """A resolved host callable.

    ``kind`` is one of ``instance``, ``static``, ``class``, ``function`` or
    ``constructor``. References rebuilt from persisted form carry only the
    owner name, attribute and parameter type names until first use.
    """
    def __init__(self, owner, attr: str, el_name: str, param_types, varargs: bool = False,
                 bridge: bool = False, kind: str = 'instance', return_type: Any = object,
                 declaring=None, target=None, required: Optional[int] = None):
        self.owner = owner
        self.attr = attr
        self.el_name = el_name
        self.param_types = tuple(param_types)
        self.varargs = varargs
        if required is None:
            required = len(self.param_types) - int(varargs)
        self.required = required
        self.bridge = bridge
        self.kind = kind
        self.return_type = return_type
        self.declaring = declaring if declaring is not None else owner
        self._target = target

    @classmethod
    def lazy(cls, owner_name: str, attr: str, type_names: Sequence[str]) -> 'MethodRef':
        ref = cls.__new__(cls)
        ref._pending = (owner_name, attr, tuple(type_names))
        return ref

    @classmethod
    def for_callable(cls, fn, el_name: Optional[str] = None) -> 'MethodRef':
        """Describes a function registered with a function mapper."""
        if inspect.ismethod(fn) and inspect.isclass(fn.__self__):
            types, varargs, returns, required = _describe(fn.__func__, drop_first=True)
            return cls(fn.__self__, fn.__name__, el_name or fn.__name__, types, varargs,
                       kind='class', return_type=returns, target=fn, required=required)
        types, varargs, returns, required = _describe(fn, drop_first=False)
        owner = sys.modules.get(getattr(fn, '__module__', None) or '', None)
        qualname = getattr(fn, '__qualname__', getattr(fn, '__name__', repr(fn)))
        kind = 'function'
        if owner is not None and '.' in qualname and '<locals>' not in qualname:
            holder = owner
            for part in qualname.split('.')[:-1]:
                holder = getattr(holder, part, None)
            if inspect.isclass(holder):
                owner, kind = holder, 'static'
        attr = getattr(fn, '__name__', qualname)
        return cls(owner, attr, el_name or attr, types, varargs, kind=kind,
                   return_type=returns, target=fn, required=required)

    def __getattr__(self, name):
        pending = self.__dict__.get('_pending')
        if pending is None or name.startswith('__'):
            raise AttributeError(name)
        self._resolve(pending)
        return getattr(self, name)

    def _resolve(self, pending):
        owner_name, attr, type_names = pending
        owner = _load_owner(owner_name)
        types = tuple(type_for_name(n) for n in type_names)
        if inspect.isclass(owner):
            for m in public_methods(owner) + constructors(owner):
                if m.attr == attr and m.param_types == types:
                    resolved = m
                    break
            else:
                raise MethodNotFound(f"Method {attr}({', '.join(type_names)}) not found on {owner_name}")
        else:
            fn = getattr(owner, attr, None)
            if fn is None:
                raise MethodNotFound(f"Function {attr} not found in {owner_name}")
            resolved = MethodRef.for_callable(fn)
        dbg("MethodRef resolve", owner_name, attr, type_names)
        del self.__dict__['_pending']
        self.__dict__.update(resolved.__dict__)

    @property
    def is_static(self) -> bool:
        return self.kind in ('static', 'class', 'function')

    @property
    def owner_name(self) -> str:
        pending = self.__dict__.get('_pending')
        if pending is not None:
            return pending[0]
        if inspect.ismodule(self.owner):
            return self.owner.__name__
        if self.owner is None:
            return ""
        return type_name(self.owner)

    def to_ref(self) -> dict:
        pending = self.__dict__.get('_pending')
        if pending is not None:
            return {'owner': pending[0], 'name': pending[1], 'types': list(pending[2])}
        return {'owner': self.owner_name, 'name': self.attr,
                'types': [type_name(t) for t in self.param_types]}

    def callable_for(self, base):
        if self.kind == 'constructor':
            if self.attr == '__init__':
                return self.owner
            return getattr(self.owner, self.attr)
        if base is not None and self.kind == 'instance':
            return getattr(base, self.attr)
        if self._target is not None:
            return self._target
        return getattr(self.owner if base is None else base, self.attr)

    def invoke(self, base, args: Sequence[Any]):
        if self.varargs and args:
            args = list(args[:-1]) + list(args[-1] or [])
        return self.callable_for(base)(*args)

    def __eq__(self, other):
        return isinstance(other, MethodRef) and self.to_ref() == other.to_ref()

    def __hash__(self):
        ref = self.to_ref()
        return hash((ref['owner'], ref['name'], tuple(ref['types'])))

    def __repr__(self):
        if '_pending' in self.__dict__:
            return f"<MethodRef {self._pending[0]}.{self._pending[1]} (unresolved)>"
        params = ", ".join(type_name(t) for t in self.param_types)
        return f"<MethodRef {self.owner_name}.{self.attr}({params})>"


def _load_owner(name: str):
    try:
        return importlib.import_module(name)
    except ImportError:
        return type_for_name(name)


def _unwrap(raw):
    if isinstance(raw, staticmethod):
        return raw.__func__, 'static'
    if isinstance(raw, classmethod):
        return raw.__func__, 'class'
    if inspect.isfunction(raw):
        return raw, 'instance'
    if inspect.ismethoddescriptor(raw) and not isinstance(raw, property) and callable(raw):
        return raw, 'instance'
    return None, None


@functools.lru_cache(maxsize=None)
def public_methods(klass) -> Tuple[MethodRef, ...]:
    """Public methods of ``klass`` in mro order; an override hides its inherited version."""
    seen = set()
    out: List[MethodRef] = []
    for c in klass.__mro__:
        if c is object:
            continue
        for attr, raw in vars(c).items():
            if attr in seen:
                continue
            seen.add(attr)
            fn, kind = _unwrap(raw)
            if fn is None:
                continue
            el_name = getattr(fn, '_el_name', None)
            if el_name is None:
                if attr.startswith('_'):
                    continue
                el_name = attr
            if el_name == CONSTRUCTOR:
                continue
            try:
                types, varargs, returns, required = _describe(fn, drop_first=kind in ('instance', 'class'))
            except (ValueError, TypeError):
                continue
            out.append(MethodRef(klass, attr, el_name, types, varargs,
                                 bridge=getattr(fn, '_el_bridge', False), kind=kind,
                                 return_type=returns, declaring=c, required=required))
    return tuple(out)


@functools.lru_cache(maxsize=None)
def constructors(klass) -> Tuple[MethodRef, ...]:
    """``__init__`` plus classmethods marked ``el_method(name='<init>')``."""
    out: List[MethodRef] = []
    for attr, raw in vars(klass).items():
        fn, kind = _unwrap(raw)
        if fn is not None and kind == 'class' and getattr(fn, '_el_name', None) == CONSTRUCTOR:
            types, varargs, _, required = _describe(fn, drop_first=True)
            out.append(MethodRef(klass, attr, CONSTRUCTOR, types, varargs, kind='constructor',
                                 return_type=klass, required=required))
    try:
        if klass.__init__ is not object.__init__:
            types, varargs, _, required = _describe(klass.__init__, drop_first=True)
        elif klass.__new__ is not object.__new__:
            types, varargs, _, required = _describe(klass.__new__, drop_first=True)
        else:
            types, varargs, required = [], False, 0
    except (ValueError, TypeError):
        types, varargs, required = [list[object]], True, 0
    out.append(MethodRef(klass, '__init__', CONSTRUCTOR, types, varargs, kind='constructor',
                         return_type=klass, required=required))
    return tuple(out)


# =================================================================
# Overload resolution
# =================================================================

class Candidate(NamedTuple):
    method: MethodRef
    param_types: Tuple[Any, ...]
    varargs: bool
    bridge: bool
    required: int


def types_from_values(values):
    if values is None:
        return None
    return [type_of(v) for v in values]


def _param_string(types) -> str:
    if types is None:
        return ""
    return ", ".join("null" if t is None else type_name(t) for t in types)


def _is_coercible(value, target) -> bool:
    try:
        coerce_to_type(value, target)
    except (ELError, ValueError, TypeError, ArithmeticError):
        return False
    return True


def _is_whole_array(values, i, array_type) -> bool:
    return values is not None and i < len(values) and isinstance(values[i], list) \
        and is_instance_of(values[i], array_type)


def find_method(klass, name: str, param_types=None, param_values=None) -> MethodRef:
    """Selects the single best public method ``name`` of ``klass`` for the given arguments."""
    if klass is None or name is None:
        raise MethodNotFound(f"Method not found: {klass}.{name}({_param_string(param_types)})")
    if param_types is None:
        param_types = types_from_values(param_values)
    if name == CONSTRUCTOR:
        methods = constructors(klass)
    else:
        methods = [m for m in public_methods(klass) if m.el_name == name]
    candidates = [Candidate(m, m.param_types, m.varargs, m.bridge, m.required) for m in methods]
    found = _find_candidate(klass, candidates, name, param_types, param_values)
    result = get_public_method(klass, found.method)
    if result is None:
        raise MethodNotFound(f"Method not found: {type_name(klass)}.{name}({_param_string(param_types)})")
    dbg("find_method", type_name(klass), name, _param_string(param_types), "->", result)
    return result


def find_constructor(klass, param_types=None, param_values=None) -> MethodRef:
    return find_method(klass, CONSTRUCTOR, param_types, param_values)


def _find_candidate(klass, candidates: List[Candidate], name, required, values) -> Candidate:
    assignable_candidates: List[Candidate] = []
    coercible_candidates: List[Candidate] = []
    varargs_candidates: List[Candidate] = []

    required = list(required or [])
    required_count = len(required)

    for cand in candidates:
        cand_types = cand.param_types
        cand_count = len(cand_types)

        if cand.varargs:
            if required_count < cand_count - 1:
                continue
        elif not cand.required <= required_count <= cand_count:
            continue

        assignable = coercible = varargs = no_match = False
        for i in range(cand_count if cand.varargs else required_count):
            if i == cand_count - 1 and cand.varargs:
                varargs = True
                if cand_count == required_count and (
                        cand_types[i] == required[i] or _is_whole_array(values, i, cand_types[i])):
                    continue
                var_type = element_type(cand_types[i])
                for j in range(i, required_count):
                    if not is_assignable(var_type, required[j]) and \
                            not (values is not None and j < len(values) and _is_coercible(values[j], var_type)):
                        no_match = True
                        break
            elif cand_types[i] == required[i]:
                pass
            elif is_assignable(cand_types[i], required[i]):
                assignable = True
            elif values is None or i >= len(values):
                no_match = True
                break
            elif _is_coercible(values[i], cand_types[i]):
                coercible = True
            else:
                no_match = True
                break

        if no_match:
            continue
        if varargs:
            varargs_candidates.append(cand)
        elif coercible:
            coercible_candidates.append(cand)
        elif assignable:
            assignable_candidates.append(cand)
        else:
            return cand

    error_msg = f"Unable to find unambiguous method: {type_name(klass)}.{name}({_param_string(required)})"
    if assignable_candidates:
        return _most_specific(assignable_candidates, required, False, error_msg)
    if coercible_candidates:
        return _most_specific(coercible_candidates, required, True, error_msg)
    if varargs_candidates:
        return _most_specific(varargs_candidates, required, True, error_msg)
    raise MethodNotFound(f"Method not found: {type_name(klass)}.{name}({_param_string(required)})")


def _most_specific(candidates: List[Candidate], matching, el_specific: bool, error_msg: str) -> Candidate:
    survivors: List[Candidate] = []
    for cand in candidates:
        less_specific = False
        for other in list(survivors):
            result = _compare_candidates(cand, other, matching, el_specific)
            if result == 1:
                survivors.remove(other)
            elif result == -1:
                less_specific = True
        if not less_specific:
            survivors.append(cand)
    if len(survivors) > 1:
        raise AmbiguousMethod(error_msg, [c.method for c in survivors])
    return survivors[0]


def _spread_varargs(types, length):
    out = list(types[:-1])
    var_type = element_type(types[-1])
    out.extend([var_type] * (length - len(out)))
    return out


def _compare_candidates(c1: Candidate, c2: Candidate, matching, el_specific: bool) -> int:
    types1, types2 = list(c1.param_types), list(c2.param_types)
    matching = list(matching)
    if c1.varargs:
        length = max(len(types1), len(types2), len(matching))
        types1 = _spread_varargs(types1, length)
        types2 = _spread_varargs(types2, length)
        matching = matching + [None] * (length - len(matching))
    else:
        # Positions left to defaults take no part
        types1, types2 = types1[:len(matching)], types2[:len(matching)]

    result = 0
    for i in range(len(types1)):
        if types1[i] != types2[i]:
            r2 = _compare_types(types1[i], types2[i], matching[i], el_specific)
            if r2 == 1:
                if result == -1:
                    return 0
                result = 1
            elif r2 == -1:
                if result == 1:
                    return 0
                result = -1
            else:
                return 0

    if result == 0 and not c1.varargs:
        # Taking exactly the supplied arguments beats relying on defaults
        result = int(len(c2.param_types) > len(matching)) - int(len(c1.param_types) > len(matching))
    if result == 0:
        result = int(c2.bridge) - int(c1.bridge)
    return result


def _compare_types(type1, type2, matching, el_specific: bool) -> int:
    type1 = box(type1)
    type2 = box(type2)

    if is_assignable(type2, type1):
        return 1
    if is_assignable(type1, type2):
        return -1
    if not el_specific:
        return 0

    # Integer and floating literals only ever produce int, BigInteger, float or Decimal
    if matching is not None and is_number_class(matching):
        b1 = is_number_class(type1) or is_primitive(type1)
        b2 = is_number_class(type2) or is_primitive(type2)
        if b1 and not b2:
            return 1
        if b2 and not b1:
            return -1
        return 0
    return 0


def get_public_method(klass, method: Optional[MethodRef]) -> Optional[MethodRef]:
    """Finds a redeclaration on a public class when ``klass`` itself is private."""
    if method is None or is_public_class(klass):
        return method
    bases = [b for b in klass.__bases__ if b is not object]
    interfaces = [b for b in bases if isinstance(b, ABCMeta)]
    supers = [b for b in bases if not isinstance(b, ABCMeta)]
    for base in interfaces + supers[:1]:
        for candidate in public_methods(base):
            if candidate.attr == method.attr and candidate.param_types == method.param_types:
                public = get_public_method(candidate.declaring, candidate)
                if public is not None:
                    return public
    return None


# =================================================================
# Invocation
# =================================================================

def build_parameters(context, param_types, varargs: bool, params) -> List[Any]:
    """Converts call arguments to the declared types, packing trailing variadic ones."""
    parameters: List[Any] = []
    if not param_types:
        return parameters
    params = list(params or [])
    count = len(params)
    if varargs:
        parameters = [None] * len(param_types)
        var_index = len(param_types) - 1
        for i in range(min(var_index, count)):
            parameters[i] = context.convert_to_type(params[i], param_types[i])
        last = params[var_index] if count == len(param_types) else None
        if last is not None and isinstance(last, list) and is_instance_of(last, param_types[var_index]):
            parameters[var_index] = last
        else:
            var_type = element_type(param_types[var_index])
            parameters[var_index] = [context.convert_to_type(params[i], var_type)
                                     for i in range(var_index, count)]
    else:
        # Omitted trailing arguments fall back to the callable's defaults
        parameters = [context.convert_to_type(params[i], param_types[i])
                      for i in range(min(len(param_types), count))]
    return parameters


def invoke_method(context, method: MethodRef, base, params) -> Any:
    args = build_parameters(context, method.param_types, method.varargs, params)
    try:
        return method.invoke(base, args)
    except ELError:
        raise
    except Exception as e:
        raise InvocationFault(f"{method.el_name}: {e}") from e
