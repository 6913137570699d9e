"""Symbol and type-shape extraction for TypeScript/JavaScript and Python."""

import ast
import logging
import re
from typing import Any

from tree_sitter import Node

from codecite.indexer.code_chunker import python_span
from codecite.indexer.models import Symbol
from codecite.indexer.syntax import (
    CLASS_TYPES,
    FUNCTION_TYPES,
    SourceTree,
    class_members,
    decorator_call,
    decorators_of,
    end_line,
    has_token,
    leading_node,
    node_name,
    outer_node,
    start_line,
    type_text,
    unwrap_export,
)

logger = logging.getLogger(__name__)

SIGNATURE_MAX_CHARS = 500
SHAPE_TEXT_MAX_CHARS = 800


def truncate(text: str, max_chars: int = SIGNATURE_MAX_CHARS) -> str:
    return text[:max_chars] + " …" if len(text) > max_chars else text


def compress(text: str, max_chars: int = SHAPE_TEXT_MAX_CHARS) -> str:
    return truncate(re.sub(r"\s+", " ", text).strip(), max_chars)


def normalize_type(text: str) -> str:
    """Reduce a type annotation to a coarse label for shapes."""
    t = re.sub(r"\s+", " ", text).strip()
    if re.fullmatch(r"string(\[\])?", t):
        return "string"
    if re.fullmatch(r"number(\[\])?", t):
        return "number"
    if re.fullmatch(r"boolean(\[\])?", t):
        return "boolean"
    if re.fullmatch(r"Record<.+>", t):
        return "record"
    if re.fullmatch(r"Array<.+>", t) or t.endswith("[]"):
        return "array"
    if re.fullmatch(r"Promise<.+>", t):
        return "promise"
    if re.fullmatch(r"\{.*\}", t, re.DOTALL):
        return "object"
    return t[:100]


# TypeScript / JavaScript


def extract_script_symbols(st: SourceTree, language: str) -> list[Symbol]:
    """Functions, classes, methods, interfaces, type aliases and enums at top level."""
    symbols: list[Symbol] = []

    for statement in st.root.named_children:
        declaration, exported = unwrap_export(statement)
        if declaration is None:
            continue
        name = node_name(declaration, st)

        if declaration.type in FUNCTION_TYPES and name:
            symbols.append(
                _script_symbol(
                    st, declaration, "function", name, language,
                    modifiers={"exported": exported, "async": has_token(declaration, "async")},
                )
            )

        elif declaration.type in CLASS_TYPES:
            class_name = name or "AnonymousClass"
            symbols.append(
                _script_symbol(
                    st, declaration, "class", class_name, language,
                    modifiers={
                        "exported": exported,
                        "decorators": _decorator_names(declaration, st),
                    },
                )
            )
            for member in class_members(declaration):
                method_name = node_name(member, st)
                if not method_name:
                    continue
                access = next(
                    (c for c in member.children if c.type == "accessibility_modifier"), None
                )
                symbols.append(
                    _script_symbol(
                        st, member, "method", f"{class_name}.{method_name}", language,
                        modifiers={
                            "async": has_token(member, "async"),
                            "decorators": _decorator_names(member, st),
                            "access": st.text(access) if access is not None else "public",
                            "static": has_token(member, "static"),
                        },
                    )
                )

        elif declaration.type == "interface_declaration" and name:
            symbols.append(
                _script_symbol(
                    st, declaration, "interface", name, language,
                    modifiers={"exported": exported},
                    shape=_interface_shape(declaration, st),
                )
            )

        elif declaration.type == "type_alias_declaration" and name:
            symbols.append(
                _script_symbol(
                    st, declaration, "type", name, language,
                    modifiers={"exported": exported},
                    shape=_type_alias_shape(declaration, st),
                )
            )

        elif declaration.type == "enum_declaration" and name:
            symbols.append(
                _script_symbol(
                    st, declaration, "enum", name, language,
                    modifiers={"exported": exported},
                    shape=_enum_shape(declaration, st),
                )
            )

    return symbols


def _script_symbol(
    st: SourceTree,
    node: Node,
    kind: str,
    name: str,
    language: str,
    modifiers: dict[str, Any],
    shape: dict[str, Any] | None = None,
) -> Symbol:
    first = leading_node(node)
    last = outer_node(node)
    meta: dict[str, Any] = {}
    if shape is not None:
        meta = {"shape": shape, "shape_kind": kind}
    return Symbol(
        kind=kind,
        name=name,
        signature=truncate(st.text(outer_node(node))),
        start_line=start_line(first),
        end_line=end_line(last),
        modifiers=modifiers,
        meta=meta,
        language=language,
    )


def _decorator_names(node: Node, st: SourceTree) -> list[str]:
    return [decorator_call(d, st)[0] for d in decorators_of(node)]


def _interface_shape(node: Node, st: SourceTree) -> dict[str, Any]:
    properties: dict[str, dict[str, Any]] = {}
    required: list[str] = []
    body = node.child_by_field_name("body")
    members = body.named_children if body is not None else []
    for member in members:
        if member.type != "property_signature":
            continue
        prop = node_name(member, st)
        if not prop:
            continue
        optional = has_token(member, "?")
        type_label = type_text(member.child_by_field_name("type"), st) or "any"
        properties[prop] = {"type": normalize_type(type_label), "optional": optional}
        if not optional:
            required.append(prop)
    return {"properties": properties, "required": required}


def _type_alias_shape(node: Node, st: SourceTree) -> dict[str, Any]:
    value = node.child_by_field_name("value")
    text = st.text(value)
    if re.search(r"\{[\s\S]*\}", text):
        return {"text": compress(text)}
    if "|" in text:
        return {"union": [part.strip() for part in text.split("|") if part.strip()]}
    return {"type": normalize_type(text)}


def _enum_shape(node: Node, st: SourceTree) -> dict[str, Any]:
    body = node.child_by_field_name("body")
    members: list[str] = []
    for member in body.named_children if body is not None else []:
        if member.type == "enum_assignment":
            members.append(node_name(member, st) or st.text(member))
        elif member.type in ("property_identifier", "string"):
            members.append(st.text(member).strip("'\""))
    return {"enum": members}


# Python


def extract_python_symbols(content: str, path: str) -> list[Symbol]:
    """Functions, classes and methods of a Python module."""
    try:
        tree = ast.parse(content, filename=path)
    except (SyntaxError, ValueError) as e:
        logger.debug("Cannot parse %s as Python: %s", path, e)
        return []

    lines = content.split("\n")
    symbols: list[Symbol] = []
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            symbols.append(
                _python_symbol(
                    node, "function", node.name, lines,
                    {
                        "exported": not node.name.startswith("_"),
                        "async": isinstance(node, ast.AsyncFunctionDef),
                        "decorators": _python_decorators(node),
                    },
                )
            )
        elif isinstance(node, ast.ClassDef):
            symbols.append(
                _python_symbol(
                    node, _python_class_kind(node), node.name, lines,
                    {
                        "exported": not node.name.startswith("_"),
                        "decorators": _python_decorators(node),
                    },
                )
            )
            for member in node.body:
                if not isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    continue
                decorators = _python_decorators(member)
                symbols.append(
                    _python_symbol(
                        member, "method", f"{node.name}.{member.name}", lines,
                        {
                            "async": isinstance(member, ast.AsyncFunctionDef),
                            "decorators": decorators,
                            "access": _python_access(member.name),
                            "static": "staticmethod" in decorators or "classmethod" in decorators,
                        },
                    )
                )
    return symbols


def _python_symbol(
    node: ast.stmt, kind: str, name: str, lines: list[str], modifiers: dict[str, Any]
) -> Symbol:
    start, end = python_span(node, lines)
    header = "\n".join(lines[node.lineno - 1 : end])
    meta: dict[str, Any] = {}
    if kind == "enum" and isinstance(node, ast.ClassDef):
        meta = {"shape": {"enum": _python_enum_members(node)}, "shape_kind": "enum"}
    return Symbol(
        kind=kind,
        name=name,
        signature=truncate(header),
        start_line=start,
        end_line=end,
        modifiers=modifiers,
        meta=meta,
        language="python",
    )


def _python_decorators(node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef) -> list[str]:
    names = []
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if isinstance(target, ast.Name):
            names.append(target.id)
        elif isinstance(target, ast.Attribute):
            names.append(target.attr)
    return names


def _python_class_kind(node: ast.ClassDef) -> str:
    for base in node.bases:
        name = base.id if isinstance(base, ast.Name) else getattr(base, "attr", "")
        if name in ("Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"):
            return "enum"
        if name == "Protocol":
            return "interface"
    return "class"


def _python_enum_members(node: ast.ClassDef) -> list[str]:
    members = []
    for statement in node.body:
        if isinstance(statement, ast.Assign):
            members.extend(t.id for t in statement.targets if isinstance(t, ast.Name))
    return members


def _python_access(name: str) -> str:
    if name.startswith("__") and not name.endswith("__"):
        return "private"
    if name.startswith("_") and not name.startswith("__"):
        return "protected"
    return "public"
