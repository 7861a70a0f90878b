# src/castengine/core/jsonpath.py
"""JSONPath templates evaluated over decoded JSON documents.

Supports the Kubernetes flavour of JSONPath used by run-tasks:

- ``{.a.b.c}`` dotted selection, with ``\\.`` escaping a literal dot in a key
- ``{.items[*].field}``, ``[0]``, ``[1:3]``, ``['key']`` and ``..`` descent
- ``{.items[?(@.name=='x')].field}`` filters (``== != < > <= >=`` and existence)
- ``{range .items[*]}{.x}/{.y};{end}`` repetition with literal text
- quoted literals such as ``{"\\n"}``

Documents are plain decoded JSON (dict, list, scalars). A key that does not
exist produces no output rather than an error; only malformed templates
raise.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from castengine.contracts.errors import TemplateError

NO_VALUE = "<no value>"

_COMPARATORS = ("==", "!=", "<=", ">=", "<", ">")


class JSONPathError(TemplateError):
    """Malformed JSONPath template."""


# =============================================================================
# AST
# =============================================================================


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class FieldUnion:
    names: tuple[str, ...]


@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class Recursive:
    pass


@dataclass(frozen=True)
class Index:
    indices: tuple[int, ...]


@dataclass(frozen=True)
class Slice:
    start: int | None
    end: int | None
    step: int | None


@dataclass(frozen=True)
class Operand:
    literal: Any = None
    path: Path | None = None


@dataclass(frozen=True)
class Filter:
    left: Operand
    op: str | None = None
    right: Operand | None = None


Step = Field | FieldUnion | Wildcard | Recursive | Index | Slice | Filter


@dataclass(frozen=True)
class Path:
    steps: tuple[Step, ...]
    from_root: bool = False


@dataclass
class Text:
    text: str


@dataclass
class Expr:
    path: Path


@dataclass
class Range:
    path: Path
    body: list[Text | Expr | Range] = field(default_factory=list)


Node = Text | Expr | Range


# =============================================================================
# Parsing
# =============================================================================


def _find_close(s: str, start: int, open_ch: str, close_ch: str) -> int:
    """Index of the bracket closing the one at ``start``; quote aware."""
    depth = 0
    quote = ""
    i = start
    while i < len(s):
        c = s[i]
        if quote:
            if c == "\\":
                i += 2
                continue
            if c == quote:
                quote = ""
        elif c in ("'", '"'):
            quote = c
        elif c == open_ch:
            depth += 1
        elif c == close_ch:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _unquote(token: str) -> str | None:
    token = token.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        body = token[1:-1]
        if token[0] == '"':
            try:
                return json.loads(token)
            except ValueError:
                return body
        return body.replace("\\'", "'")
    return None


def _split_top(s: str, sep: str) -> list[str]:
    parts: list[str] = []
    quote = ""
    buf: list[str] = []
    for c in s:
        if quote:
            if c == quote:
                quote = ""
        elif c in ("'", '"'):
            quote = c
        elif c == sep:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(c)
    parts.append("".join(buf))
    return parts


def _parse_int(token: str, expr: str) -> int | None:
    token = token.strip()
    if token == "":
        return None
    try:
        return int(token)
    except ValueError:
        raise JSONPathError(f"invalid array index {token!r} in {expr!r}") from None


def _parse_literal(token: str, expr: str) -> Operand:
    token = token.strip()
    quoted = _unquote(token)
    if quoted is not None:
        return Operand(literal=quoted)
    if token.startswith(("@", "$")):
        return Operand(path=parse_path(token))
    if token in ("true", "false"):
        return Operand(literal=token == "true")
    if token == "null":
        return Operand(literal=None)
    try:
        return Operand(literal=int(token))
    except ValueError:
        pass
    try:
        return Operand(literal=float(token))
    except ValueError:
        raise JSONPathError(f"unrecognized filter operand {token!r} in {expr!r}") from None


def _parse_filter(inner: str, expr: str) -> Filter:
    body = inner[1:].strip()
    if not (body.startswith("(") and body.endswith(")")):
        raise JSONPathError(f"filter must be wrapped in parentheses: {expr!r}")
    body = body[1:-1].strip()
    quote = ""
    i = 0
    while i < len(body):
        c = body[i]
        if quote:
            if c == quote:
                quote = ""
        elif c in ("'", '"'):
            quote = c
        else:
            for op in _COMPARATORS:
                if body.startswith(op, i):
                    left = _parse_literal(body[:i], expr)
                    right = _parse_literal(body[i + len(op) :], expr)
                    return Filter(left=left, op=op, right=right)
        i += 1
    left = _parse_literal(body, expr)
    if left.path is None:
        raise JSONPathError(f"filter needs a path or a comparison: {expr!r}")
    return Filter(left=left)


def _parse_bracket(inner: str, expr: str) -> Step:
    inner = inner.strip()
    if inner == "*":
        return Wildcard()
    if inner.startswith("?"):
        return _parse_filter(inner, expr)
    if inner.startswith(("'", '"')):
        names = []
        for part in _split_top(inner, ","):
            name = _unquote(part)
            if name is None:
                raise JSONPathError(f"invalid quoted key {part!r} in {expr!r}")
            names.append(name)
        return Field(names[0]) if len(names) == 1 else FieldUnion(tuple(names))
    if ":" in inner:
        parts = inner.split(":")
        if len(parts) > 3:
            raise JSONPathError(f"invalid slice {inner!r} in {expr!r}")
        parts += [""] * (3 - len(parts))
        return Slice(*(_parse_int(p, expr) for p in parts))
    indices = tuple(_parse_int(p, expr) for p in inner.split(","))
    if any(i is None for i in indices):
        raise JSONPathError(f"invalid array index {inner!r} in {expr!r}")
    return Index(indices)  # type: ignore[arg-type]


def parse_path(expr: str) -> Path:
    """Parse one path expression such as ``.items[*].metadata.name``.

    Raises:
        JSONPathError: If the expression is malformed
    """
    s = expr.strip()
    steps: list[Step] = []
    from_root = False
    pos = 0
    if s.startswith("$"):
        from_root = True
        pos = 1
    elif s.startswith("@"):
        pos = 1
    while pos < len(s):
        c = s[pos]
        if s.startswith("..", pos):
            steps.append(Recursive())
            pos += 1
            continue
        if c == ".":
            pos += 1
            name: list[str] = []
            while pos < len(s) and s[pos] not in ".[":
                if s[pos] == "\\" and pos + 1 < len(s):
                    name.append(s[pos + 1])
                    pos += 2
                    continue
                name.append(s[pos])
                pos += 1
            key = "".join(name).strip()
            if key == "*":
                steps.append(Wildcard())
            elif key:
                steps.append(Field(key))
            continue
        if c == "[":
            close = _find_close(s, pos, "[", "]")
            if close < 0:
                raise JSONPathError(f"unclosed array expect ] in {expr!r}")
            steps.append(_parse_bracket(s[pos + 1 : close], expr))
            pos = close + 1
            continue
        if c.isspace():
            pos += 1
            continue
        raise JSONPathError(f"unrecognized character {c!r} in {expr!r}")
    return Path(steps=tuple(steps), from_root=from_root)


def _parse_template(template: str) -> list[Node]:
    root: list[Node] = []
    stack: list[list[Node]] = [root]
    pos = 0
    while pos < len(template):
        start = template.find("{", pos)
        if start < 0:
            stack[-1].append(Text(template[pos:]))
            break
        if start > pos:
            stack[-1].append(Text(template[pos:start]))
        close = _find_close(template, start, "{", "}")
        if close < 0:
            raise JSONPathError(f"unclosed action in {template!r}")
        action = template[start + 1 : close].strip()
        pos = close + 1
        if action == "end":
            if len(stack) == 1:
                raise JSONPathError(f"not in range, nothing to end in {template!r}")
            stack.pop()
            continue
        if action.startswith("range ") or action.startswith("range\t"):
            node = Range(parse_path(action[len("range") :]))
            stack[-1].append(node)
            stack.append(node.body)
            continue
        literal = _unquote(action)
        if literal is not None:
            stack[-1].append(Text(literal))
            continue
        stack[-1].append(Expr(parse_path(action)))
    if len(stack) != 1:
        raise JSONPathError(f"range is not closed with end in {template!r}")
    return root


# =============================================================================
# Evaluation
# =============================================================================


def _descendants(node: Any) -> list[Any]:
    out = [node]
    if isinstance(node, dict):
        for v in node.values():
            out.extend(_descendants(v))
    elif isinstance(node, list):
        for v in node:
            out.extend(_descendants(v))
    return out


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _compare(a: Any, op: str, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        pass
    elif op in ("==", "!="):
        if type(a) is not type(b):
            a, b = to_text(a), to_text(b)
    elif not (isinstance(a, str) and isinstance(b, str)):
        return False
    if op == "==":
        return a == b
    if op == "!=":
        return a != b
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b


def _operand_values(operand: Operand, current: Any, root: Any) -> list[Any]:
    if operand.path is None:
        return [operand.literal]
    return _walk(operand.path, current, root)


def _matches(flt: Filter, item: Any, root: Any) -> bool:
    left = _operand_values(flt.left, item, root)
    if flt.op is None or flt.right is None:
        return bool(left)
    right = _operand_values(flt.right, item, root)
    if not left or not right:
        return False
    return _compare(left[0], flt.op, right[0])


def _apply(step: Step, nodes: list[Any], root: Any) -> list[Any]:
    out: list[Any] = []
    for node in nodes:
        if isinstance(step, Field):
            if isinstance(node, dict) and step.name in node:
                out.append(node[step.name])
        elif isinstance(step, FieldUnion):
            if isinstance(node, dict):
                out.extend(node[n] for n in step.names if n in node)
        elif isinstance(step, Wildcard):
            if isinstance(node, dict):
                out.extend(node.values())
            elif isinstance(node, list):
                out.extend(node)
        elif isinstance(step, Recursive):
            out.extend(_descendants(node))
        elif isinstance(step, Index):
            if isinstance(node, list):
                for i in step.indices:
                    if -len(node) <= i < len(node):
                        out.append(node[i])
        elif isinstance(step, Slice):
            if isinstance(node, list):
                out.extend(node[step.start : step.end : step.step])
        elif isinstance(step, Filter):
            if isinstance(node, list):
                out.extend(item for item in node if _matches(step, item, root))
    return out


def _walk(path: Path, current: Any, root: Any) -> list[Any]:
    nodes = [root if path.from_root else current]
    for step in path.steps:
        nodes = _apply(step, nodes, root)
        if not nodes:
            break
    return nodes


def to_text(value: Any) -> str:
    """Printable form of a matched value."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"))


def load_document(raw: Any) -> Any:
    """Decode raw JSON bytes or text; already-decoded values pass through.

    Raises:
        TemplateError: If the raw input is not valid JSON
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw) if raw.strip() else None
        except ValueError as e:
            raise TemplateError(f"invalid json document: {e}") from e
    return raw


class JSONPath:
    """A parsed JSONPath template.

    Example:
        jp = JSONPath("{range .spec.containers[*]}{.name},{end}")
        jp.render(pod)  # "bb,kubectl,"
    """

    def __init__(self, template: str) -> None:
        """Parse the template.

        Raises:
            JSONPathError: If the template is malformed
        """
        self.template = template
        self._nodes = _parse_template(template)

    def _run(self, nodes: list[Node], current: Any, root: Any, out: list[str]) -> bool:
        matched = False
        for node in nodes:
            if isinstance(node, Text):
                out.append(node.text)
            elif isinstance(node, Expr):
                values = _walk(node.path, current, root)
                if values:
                    matched = True
                    out.append(" ".join(to_text(v) for v in values))
            else:
                values = _walk(node.path, current, root)
                if len(values) == 1 and isinstance(values[0], list):
                    values = values[0]
                for item in values:
                    matched = True
                    self._run(node.body, item, root, out)
        return matched

    def execute(self, document: Any) -> tuple[str, bool]:
        """Render against ``document`` and report whether any path matched."""
        out: list[str] = []
        matched = self._run(self._nodes, document, document, out)
        return "".join(out), matched

    def render(self, document: Any) -> str:
        return self.execute(document)[0]

    def find(self, document: Any) -> list[Any]:
        """Matched values of every top-level expression, undecorated."""
        results: list[Any] = []
        for node in self._nodes:
            if isinstance(node, Expr):
                results.extend(_walk(node.path, document, document))
        return results


def query(raw: Any, template: str) -> str:
    """Render ``template`` against a raw or decoded JSON document."""
    return JSONPath(template).render(load_document(raw))
