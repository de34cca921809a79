"""C++ symbol name resolution.

Demangles Itanium symbol names with ``cxxfilt`` and parses the demangled text
into a ``ParsedFunctionDescriptor``. Parsing is a small scanner that tracks
angle bracket and parenthesis depth, so template argument lists and parameter
types containing commas, ``::`` or spaces are never split in the middle.
"""

import logging
import string
from collections.abc import Iterator
from dataclasses import dataclass

import cxxfilt

from .errors import UnparseableName

logger = logging.getLogger(__name__)

IDENTIFIER_CHARS = frozenset(string.ascii_letters + string.digits + "_$")

ANONYMOUS_NAMESPACE = "(anonymous namespace)"

# libc++ and libstdc++ inline namespaces, invisible at the source level
INLINE_NAMESPACES = frozenset(["__1", "__cxx11"])

# Longest first, so that "operator<<=" is not read as "operator<"
SYMBOLIC_OPERATORS = sorted(
    [
        "<=>", "<<=", ">>=", "->*", "<<", ">>", "<=", ">=", "==", "!=", "&&", "||", "++", "--",
        "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "->", "<", ">", "+", "-", "*", "/",
        "%", "^", "&", "|", "~", "!", "=", ",",
    ],
    key=len,
    reverse=True,
)


@dataclass(frozen=True)
class ParsedFunctionDescriptor:
    """Structured view of a demangled C++ function name.

    ``namespaces`` holds the enclosing scopes outer to inner, each as written
    (template arguments included). ``function_name`` has its own template
    arguments stripped. ``template_args`` is the first template argument list
    found, looking at the function itself before its enclosing scopes.
    """

    namespaces: tuple[str, ...]
    function_name: str
    template_args: tuple[str, ...] | None = None
    parameters: tuple[str, ...] = ()
    return_type: str | None = None
    is_operator: bool = False
    is_constructor: bool = False
    is_destructor: bool = False

    @property
    def qualified_name(self) -> str:
        """Scopes and function name joined by ``::``, scope templates kept."""
        return "::".join((*self.namespaces, self.function_name))

    @property
    def canonical_signature(self) -> str:
        """Template-erased qualified name shared by every instantiation.

        Inline library namespaces are dropped, so libc++ and libstdc++ builds
        of the same function agree.
        """
        scopes = [erase_templates(component) for component in self.namespaces]
        scopes = [scope for scope in scopes if scope not in INLINE_NAMESPACES]
        name = self.function_name if self.is_operator else erase_templates(self.function_name)
        return "::".join((*scopes, name))


def demangle(name: str) -> str:
    """Demangle an Itanium C++ symbol name.

    Names that are not mangled (C functions, already demangled text) are
    returned unchanged.

    Args:
        name: Raw symbol name

    Returns:
        Demangled name

    Raises:
        UnparseableName: if the name is empty or is not a valid mangled name
    """
    if not name:
        raise UnparseableName("empty symbol name")
    if not name.startswith("_Z"):
        return name
    try:
        return cxxfilt.demangle(name)
    except cxxfilt.InvalidName as e:
        raise UnparseableName(f"cannot demangle {name!r}") from e


def erase_templates(name: str) -> str:
    """Remove every ``<...>`` span from ``name``, including nested ones.

    The nesting depth never drops below zero; a ``>`` with no matching ``<``
    is dropped.
    """
    result = []
    depth = 0
    for ch in name:
        if ch == "<":
            depth += 1
        elif ch == ">":
            if depth > 0:
                depth -= 1
        elif depth == 0:
            result.append(ch)
    return "".join(result)


def find_last_balanced_namespace(name: str) -> str | None:
    """Recover a function name from the tail of a deeply nested name.

    Scans the ``::`` separators from the last one backwards and returns the
    text after the first separator whose remainder, up to the first ``(`` or
    space, has as many ``<`` as ``>``.

    Returns:
        The function-name tail, or None if ``name`` has no ``::`` or no
        balanced candidate
    """
    position = name.rfind("::")
    while position != -1:
        tail = name[position + 2 :]
        end = len(tail)
        for stop in "( ":
            index = tail.find(stop)
            if index != -1:
                end = min(end, index)
        candidate = tail[:end]
        if candidate and candidate.count("<") == candidate.count(">"):
            return candidate
        position = name.rfind("::", 0, position)
    return None


def canonical_signature(name: str) -> str:
    """Canonical, template-erased signature of a mangled or demangled name."""
    return resolve(name).canonical_signature


def resolve(name: str) -> ParsedFunctionDescriptor:
    """Demangle ``name`` and parse it into a ``ParsedFunctionDescriptor``.

    Args:
        name: Mangled or demangled function name

    Returns:
        Parsed descriptor

    Raises:
        UnparseableName: if the name cannot be demangled
    """
    text = _strip_abi_tags(demangle(name)).strip()
    if not text:
        raise UnparseableName(f"nothing to parse in {name!r}")

    open_index = _find_parameter_list(text)
    if open_index is None and not _angles_balanced(text):
        # An unclosed "<" hides the parameter list from the depth-aware scan
        open_index = text.find("(") if "(" in text else None
    if open_index is None:
        head, parameters = text, ()
    else:
        head = text[:open_index].rstrip()
        close_index = _matching_paren(text, open_index)
        parameters = _split_top_level(text[open_index + 1 : close_index], ",")

    if not _angles_balanced(head):
        logger.debug(f"unbalanced template brackets in {text!r}, using the whole name")
        return ParsedFunctionDescriptor(
            namespaces=(),
            function_name=head,
            parameters=parameters,
            is_operator="operator" in head,
            is_destructor="~" in head,
        )

    return_type, qualified = _split_return_type(head)
    components = _split_scopes(qualified)
    namespaces, last = tuple(components[:-1]), components[-1]

    is_operator = _operator_at(last, 0)
    is_destructor = not is_operator and last.startswith("~")
    if is_operator:
        end = _operator_end(last, 0)
        function_name = last[:end].rstrip()
        _, own_args = _strip_template(last[end:].strip() or "")
    else:
        function_name, own_args = _strip_template(last)

    template_args = own_args
    if template_args is None:
        for component in reversed(namespaces):
            _, template_args = _strip_template(component)
            if template_args is not None:
                break

    is_constructor = (
        not is_operator
        and not is_destructor
        and bool(namespaces)
        and function_name == _strip_template(namespaces[-1])[0]
    )

    return ParsedFunctionDescriptor(
        namespaces=namespaces,
        function_name=function_name,
        template_args=template_args,
        parameters=parameters,
        return_type=return_type,
        is_operator=is_operator,
        is_constructor=is_constructor,
        is_destructor=is_destructor,
    )


# -- scanning helpers -------------------------------------------------------


def _strip_abi_tags(text: str) -> str:
    while True:
        start = text.find("[abi:")
        if start == -1:
            return text
        end = text.find("]", start)
        if end == -1:
            return text
        text = text[:start] + text[end + 1 :]


def _operator_at(text: str, index: int) -> bool:
    """Whether the ``operator`` keyword starts at ``index``."""
    if not text.startswith("operator", index):
        return False
    if index > 0 and text[index - 1] in IDENTIFIER_CHARS:
        return False
    end = index + len("operator")
    return end == len(text) or text[end] not in IDENTIFIER_CHARS


def _operator_end(text: str, index: int) -> int:
    """Index just past the operator name starting at ``index``."""
    pos = index + len("operator")
    if text.startswith(("()", "[]"), pos):
        return pos + 2
    for symbol in SYMBOLIC_OPERATORS:
        if text.startswith(symbol, pos):
            return pos + len(symbol)
    if text.startswith('""', pos):
        pos += 2
        while pos < len(text) and (text[pos] == " " or text[pos] in IDENTIFIER_CHARS):
            pos += 1
        return pos
    while pos < len(text) and text[pos] == " ":
        pos += 1
    for keyword in ("new", "delete"):
        end = pos + len(keyword)
        if text.startswith(keyword, pos) and (end == len(text) or text[end] not in IDENTIFIER_CHARS):
            return end + 2 if text.startswith("[]", end) else end
    # Conversion operator: the target type runs up to the parameter list
    depth = 0
    while pos < len(text):
        ch = text[pos]
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth = max(0, depth - 1)
        elif ch == "(" and depth == 0:
            break
        pos += 1
    return pos


def _top_level(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(index, token)`` for text outside ``<...>`` and ``(...)``.

    Operator names are yielded as a single token and ``(anonymous namespace)``
    is skipped entirely.
    """
    angle = paren = 0
    i = 0
    while i < len(text):
        if angle == 0 and paren == 0:
            if text.startswith(ANONYMOUS_NAMESPACE, i):
                i += len(ANONYMOUS_NAMESPACE)
                continue
            if _operator_at(text, i):
                end = _operator_end(text, i)
                yield i, text[i:end]
                i = end
                continue
            yield i, text[i]
        ch = text[i]
        if ch == "<":
            angle += 1
        elif ch == ">":
            angle = max(0, angle - 1)
        elif ch == "(":
            paren += 1
        elif ch == ")":
            paren = max(0, paren - 1)
        i += 1


def _find_parameter_list(text: str) -> int | None:
    for index, token in _top_level(text):
        if token == "(":
            return index
    return None


def _matching_paren(text: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(text)):
        if text[index] == "(":
            depth += 1
        elif text[index] == ")":
            depth -= 1
            if depth == 0:
                return index
    return len(text)


def _angles_balanced(text: str) -> bool:
    depth = 0
    i = 0
    while i < len(text):
        if _operator_at(text, i):
            i = _operator_end(text, i)
            continue
        if text[i] == "<":
            depth += 1
        elif text[i] == ">":
            depth -= 1
            if depth < 0:
                return False
        i += 1
    return depth == 0


def _split_return_type(head: str) -> tuple[str | None, str]:
    """Split ``"int ns::f"`` into ``("int", "ns::f")``.

    Only spaces before an operator name are candidates, since operator names
    and trailing template arguments may contain spaces themselves.
    """
    split_at = None
    for index, token in _top_level(head):
        if len(token) > 1:
            break
        if token == " ":
            split_at = index
    if split_at is None:
        return None, head.strip()
    return_type = head[:split_at].strip()
    return return_type or None, head[split_at + 1 :].strip()


def _split_scopes(qualified: str) -> list[str]:
    components = []
    start = 0
    skip_next = False
    for index, token in _top_level(qualified):
        if skip_next:
            skip_next = False
            continue
        if token == ":" and qualified.startswith("::", index):
            components.append(qualified[start:index])
            start = index + 2
            skip_next = True
    components.append(qualified[start:])
    return components


def _split_top_level(text: str, separator: str) -> tuple[str, ...]:
    """Split on ``separator`` outside of brackets and parentheses."""
    text = text.strip()
    if not text:
        return ()
    parts = []
    depth = 0
    start = 0
    for index, ch in enumerate(text):
        if ch in "<(":
            depth += 1
        elif ch in ">)":
            depth = max(0, depth - 1)
        elif ch == separator and depth == 0:
            parts.append(text[start:index].strip())
            start = index + 1
    parts.append(text[start:].strip())
    return tuple(parts)


def _strip_template(component: str) -> tuple[str, tuple[str, ...] | None]:
    """Strip a trailing ``<...>`` block from one scope component.

    Returns:
        The component without the block, and the block's comma-separated
        arguments (None when there is no trailing block)
    """
    if not component.endswith(">"):
        return component, None
    depth = 0
    for index in range(len(component) - 1, -1, -1):
        ch = component[index]
        if ch == ">":
            depth += 1
        elif ch == "<":
            depth -= 1
            if depth == 0:
                return component[:index].rstrip(), _split_top_level(component[index + 1 : -1], ",")
    return component, None
