"""Structural chunking for source code and route controllers."""

import ast
import logging

from tree_sitter import Node

from codecite.indexer.models import ChunkUnit
from codecite.indexer.routes import find_routes
from codecite.indexer.syntax import (
    CLASS_TYPES,
    FUNCTION_TYPES,
    VARIABLE_TYPES,
    SourceTree,
    class_members,
    end_line,
    leading_node,
    node_name,
    outer_node,
    parse_script,
    start_line,
    unwrap_export,
)

logger = logging.getLogger(__name__)


def chunk_script(content: str, path: str) -> list[ChunkUnit]:
    """
    One chunk per top-level function, class and variable statement, plus
    one per class method, in discovery order.
    """
    st = parse_script(content, path)
    units: list[ChunkUnit] = []

    for statement in st.root.named_children:
        declaration, _ = unwrap_export(statement)
        if declaration is None:
            continue

        if declaration.type in FUNCTION_TYPES:
            name = node_name(declaration, st)
            if name:
                units.append(_script_unit(declaration, name, st))

        elif declaration.type in CLASS_TYPES:
            class_name = node_name(declaration, st) or "default"
            units.append(_script_unit(declaration, class_name, st))
            for member in class_members(declaration):
                method_name = node_name(member, st)
                if method_name:
                    units.append(_script_unit(member, f"{class_name}.{method_name}", st))

        elif declaration.type in VARIABLE_TYPES:
            units.append(_script_unit(declaration, _first_declarator(declaration, st), st))

    return units


def chunk_controller(content: str, path: str) -> list[ChunkUnit]:
    """One chunk per route-decorated controller method."""
    st = parse_script(content, path)
    units: list[ChunkUnit] = []
    for route in find_routes(st):
        first = leading_node(route.node)
        units.append(
            ChunkUnit(
                text=st.slice(first, route.node),
                kind="route",
                start_line=start_line(first),
                end_line=end_line(route.node),
                title=route.handler_name,
                symbol=f"{route.http_method} {route.path}",
                extra={"method": route.http_method, "route": route.path},
            )
        )
    return units


def chunk_python(content: str, path: str) -> list[ChunkUnit]:
    """Python counterpart of :func:`chunk_script`, using the ``ast`` module."""
    try:
        tree = ast.parse(content, filename=path)
    except (SyntaxError, ValueError) as e:
        logger.debug("Cannot parse %s as Python: %s", path, e)
        return []

    lines = content.split("\n")
    units: list[ChunkUnit] = []

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            units.append(_python_unit(node, node.name, lines))
        elif isinstance(node, ast.ClassDef):
            units.append(_python_unit(node, node.name, lines))
            for member in node.body:
                if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    units.append(_python_unit(member, f"{node.name}.{member.name}", lines))
        elif isinstance(node, (ast.Assign, ast.AnnAssign)):
            name = _assigned_name(node)
            if name:
                units.append(_python_unit(node, name, lines))

    return units


def _script_unit(node: Node, name: str, st: SourceTree) -> ChunkUnit:
    first = leading_node(node)
    last = outer_node(node)
    return ChunkUnit(
        text=st.slice(first, last),
        kind="code",
        start_line=start_line(first),
        end_line=end_line(last),
        symbol=name,
    )


def _first_declarator(node: Node, st: SourceTree) -> str:
    for child in node.named_children:
        if child.type == "variable_declarator":
            return node_name(child, st) or "var"
    return "var"


def python_span(node: ast.stmt, lines: list[str]) -> tuple[int, int]:
    """Line span of a statement including decorators and leading comments."""
    start = node.lineno
    for decorator in getattr(node, "decorator_list", []):
        start = min(start, decorator.lineno)
    while start > 1 and lines[start - 2].lstrip().startswith("#"):
        start -= 1
    end = node.end_lineno or node.lineno
    return start, end


def _python_unit(node: ast.stmt, name: str, lines: list[str]) -> ChunkUnit:
    start, end = python_span(node, lines)
    return ChunkUnit(
        text="\n".join(lines[start - 1 : end]),
        kind="code",
        start_line=start,
        end_line=end,
        symbol=name,
    )


def _assigned_name(node: ast.Assign | ast.AnnAssign) -> str | None:
    targets = node.targets if isinstance(node, ast.Assign) else [node.target]
    for target in targets:
        if isinstance(target, ast.Name):
            return target.id
        if isinstance(target, ast.Tuple):
            for element in target.elts:
                if isinstance(element, ast.Name):
                    return element.id
    return None
