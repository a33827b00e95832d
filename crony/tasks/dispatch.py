"""Validated invocation of arbitrary callables.

An :class:`Invocation` pairs a callable with the arguments it will receive.
Before anything is called the pairing is checked the same way every time:
the target must be callable, the arguments must bind to its signature and
each argument must be of a kind compatible with the annotation of the
parameter it lands on.  Kind compatibility is deliberately loose: generic
aliases are checked against their runtime origin, unions accept any member
and unannotated parameters accept anything.
"""
from __future__ import annotations

import collections.abc
import inspect
import logging
import numbers
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class InvocationError(TypeError):
    """Base class for callable/argument configuration errors."""


class NotCallableError(InvocationError):
    """Raised when the bound target cannot be called."""


class ArgumentCountError(InvocationError):
    """Raised when the bound arguments do not fit the callable's parameters."""


class ArgumentTypeError(InvocationError):
    """Raised when an argument's kind does not match the parameter annotation."""


_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


@dataclass(slots=True)
class Invocation:
    """A callable together with the arguments it is invoked with."""

    target: Any = None
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    def arity(self) -> int:
        """Number of positional parameters declared by the target."""

        signature = self._signature()
        if signature is None:
            return 0
        return sum(1 for param in signature.parameters.values() if param.kind in _POSITIONAL)

    def param_kind(self, index: int) -> Optional[Any]:
        """Return the annotation of the positional parameter at ``index``.

        ``None`` means the parameter is unannotated (or the target cannot be
        introspected).
        """

        signature = self._signature()
        if signature is None:
            return None
        positional = [p for p in signature.parameters.values() if p.kind in _POSITIONAL]
        param = positional[index]
        hints = _resolve_hints(self.target)
        return hints.get(param.name)

    def validate(self) -> None:
        """Raise an :class:`InvocationError` if the target cannot be invoked."""

        if not callable(self.target):
            raise NotCallableError(f"not a callable: {type(self.target).__name__}")

        signature = self._signature()
        if signature is None:
            return

        try:
            bound = signature.bind(*self.args, **self.kwargs)
        except TypeError as exc:
            raise ArgumentCountError(
                f"wrong number of arguments for {_describe(self.target)}: "
                f"got {len(self.args)} positional and {len(self.kwargs)} keyword ({exc})"
            ) from None

        hints = _resolve_hints(self.target)
        for name, value in bound.arguments.items():
            annotation = hints.get(name)
            if annotation is None:
                continue
            param = signature.parameters[name]
            if param.kind is inspect.Parameter.VAR_POSITIONAL:
                candidates: Sequence[Any] = value
            elif param.kind is inspect.Parameter.VAR_KEYWORD:
                candidates = list(value.values())
            else:
                candidates = (value,)
            for candidate in candidates:
                if not _kind_matches(candidate, annotation):
                    raise ArgumentTypeError(
                        f"wrong argument type for parameter {name!r} of {_describe(self.target)}: "
                        f"got {type(candidate).__name__} expecting {_annotation_name(annotation)}"
                    )

    def invoke(self) -> None:
        """Validate and call the target, discarding its return value."""

        self.validate()
        self.target(*self.args, **self.kwargs)

    # ------------------------------------------------------------------
    def _signature(self) -> Optional[inspect.Signature]:
        try:
            return inspect.signature(self.target)
        except (TypeError, ValueError):
            # Some builtins expose no signature; they are called unchecked.
            logger.debug("no signature available for %r, skipping checks", self.target)
            return None


def _describe(target: Any) -> str:
    return getattr(target, "__qualname__", None) or type(target).__name__


def _resolve_hints(target: Any) -> Mapping[str, Any]:
    if inspect.isclass(target):
        func = target.__init__
    elif inspect.isfunction(target) or inspect.ismethod(target):
        func = target
    else:
        func = getattr(target, "__call__", target)
    try:
        return typing.get_type_hints(func)
    except (NameError, TypeError, AttributeError):
        logger.debug("could not resolve annotations of %r", target)
        return {}


def _kind_matches(value: Any, annotation: Any) -> bool:
    if annotation is Any or isinstance(annotation, typing.TypeVar):
        return True
    if annotation is None or annotation is type(None):
        return value is None

    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return any(_kind_matches(value, member) for member in typing.get_args(annotation))
    if origin is typing.Literal:
        return value in typing.get_args(annotation)
    if origin is collections.abc.Callable or annotation is Callable:
        return callable(value)
    if origin is type:
        return isinstance(value, type)
    if origin is not None:
        annotation = origin

    if not isinstance(annotation, type):
        return True
    if annotation is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if annotation is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if annotation is complex:
        return isinstance(value, numbers.Complex) and not isinstance(value, bool)
    if getattr(annotation, "_is_protocol", False) and not getattr(
        annotation, "_is_runtime_protocol", False
    ):
        return True
    try:
        return isinstance(value, annotation)
    except TypeError:
        return True


def _annotation_name(annotation: Any) -> str:
    return getattr(annotation, "__name__", None) or repr(annotation)


__all__ = [
    "ArgumentCountError",
    "ArgumentTypeError",
    "Invocation",
    "InvocationError",
    "NotCallableError",
]
