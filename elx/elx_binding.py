"""
Function and variable mappers, and the capture pass that freezes them.

A compiled expression never consults the caller's live mappers. While it is
built, every function call and identifier in its tree is resolved once
through recording wrappers; the recorded results become read-only tables the
expression carries for the rest of its life.
"""
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from elx.elx_context import dbg
from elx.elx_errors import ELError, FunctionMapperMissing, UnsupportedOperation
from elx.elx_nodes import Function, Identifier, Node
from elx.elx_reflect import MethodRef


class FunctionMapper(ABC):
    @abstractmethod
    def resolve_function(self, prefix: str, local_name: str) -> Optional[MethodRef]:
        raise NotImplementedError


class VariableMapper(ABC):
    @abstractmethod
    def resolve_variable(self, name: str):
        raise NotImplementedError

    @abstractmethod
    def set_variable(self, name: str, expression):
        raise NotImplementedError


class MapFunctionMapper(FunctionMapper):
    """Functions registered by (prefix, local name)."""
    def __init__(self):
        self._functions: Dict[Tuple[str, str], MethodRef] = {}

    def add_function(self, prefix: str, local_name: str, fn):
        ref = fn if isinstance(fn, MethodRef) else MethodRef.for_callable(fn, local_name)
        self._functions[(prefix or "", local_name)] = ref

    def resolve_function(self, prefix: str, local_name: str) -> Optional[MethodRef]:
        return self._functions.get((prefix or "", local_name))

    def __len__(self):
        return len(self._functions)


class MapVariableMapper(VariableMapper):
    def __init__(self):
        self._variables: Dict[str, Any] = {}

    def resolve_variable(self, name: str):
        return self._variables.get(name)

    def set_variable(self, name: str, expression):
        previous = self._variables.get(name)
        if expression is None:
            self._variables.pop(name, None)
        else:
            self._variables[name] = expression
        return previous


class FunctionMapperFactory(FunctionMapper):
    """Records every function the wrapped mapper resolves during one build."""
    def __init__(self, target: FunctionMapper):
        if target is None:
            raise ValueError("FunctionMapper target cannot be None")
        self.target = target
        self._memento: Dict[Tuple[str, str], MethodRef] = {}

    def resolve_function(self, prefix: str, local_name: str) -> Optional[MethodRef]:
        ref = self.target.resolve_function(prefix, local_name)
        if ref is not None:
            self._memento[(prefix or "", local_name)] = ref
        return ref

    def create(self) -> Optional[Mapping[Tuple[str, str], MethodRef]]:
        if not self._memento:
            return None
        return MappingProxyType(dict(self._memento))


class VariableMapperFactory(VariableMapper):
    """Records every variable the wrapped mapper resolves during one build."""
    def __init__(self, target: VariableMapper):
        if target is None:
            raise ValueError("VariableMapper target cannot be None")
        self.target = target
        self._memento: Dict[str, Any] = {}

    def resolve_variable(self, name: str):
        expression = self.target.resolve_variable(name)
        if expression is not None:
            self._memento[name] = expression
        return expression

    def set_variable(self, name: str, expression):
        raise UnsupportedOperation("Cannot set variables on a capturing factory")

    def create(self) -> Optional[Mapping[str, Any]]:
        if not self._memento:
            return None
        return MappingProxyType(dict(self._memento))


def capture_bindings(node: Node, function_mapper: Optional[FunctionMapper],
                     variable_mapper: Optional[VariableMapper]):
    """Walks ``node`` once and returns the frozen (functions, variables) tables."""
    fn_factory = FunctionMapperFactory(function_mapper) if function_mapper is not None else None
    var_factory = VariableMapperFactory(variable_mapper) if variable_mapper is not None else None

    for n in node.walk():
        if isinstance(n, Function):
            if not n.prefix and (fn_factory is None or fn_factory.resolve_function(n.prefix, n.local_name) is None):
                # Possibly a lambda held by a variable or bean; decided at evaluation time
                if var_factory is not None:
                    var_factory.resolve_variable(n.local_name)
                continue
            if fn_factory is None:
                raise FunctionMapperMissing(f"Expression uses function {n.output_name} but no function mapper is available")
            ref = fn_factory.resolve_function(n.prefix, n.local_name)
            if ref is None:
                raise ELError(f"Function {n.output_name} not found")
            argument_count = len(n.arg_lists[0].args) if n.arg_lists else 0
            if argument_count != len(ref.param_types):
                raise ELError(f"Function {n.output_name} specifies {len(ref.param_types)} params, "
                              f"but {argument_count} were declared")
        elif isinstance(n, Identifier) and var_factory is not None:
            var_factory.resolve_variable(n.name)

    functions = fn_factory.create() if fn_factory is not None else None
    variables = var_factory.create() if var_factory is not None else None
    dbg("capture_bindings", "functions", list(functions or ()), "variables", list(variables or ()))
    return functions, variables
