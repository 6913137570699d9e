"""tree-sitter helpers shared by the code chunker and the fact extractors."""

import threading
from dataclasses import dataclass
from pathlib import PurePosixPath

import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser, Tree

TS_LANGUAGE = Language(tsts.language_typescript())
TSX_LANGUAGE = Language(tsts.language_tsx())

# Extensions parsed with the plain TypeScript grammar; everything else
# (tsx, js, jsx, mjs, cjs) uses the TSX grammar, which also accepts JSX.
TS_EXTENSIONS = frozenset({".ts", ".mts", ".cts"})

FUNCTION_TYPES = frozenset({"function_declaration", "generator_function_declaration"})
CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration"})
VARIABLE_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
METHOD_TYPES = frozenset({"method_definition", "abstract_method_signature"})

# Parsers are not thread-safe; keep one per thread and grammar
_local = threading.local()


def _get_parser(grammar: str) -> Parser:
    parsers = getattr(_local, "parsers", None)
    if parsers is None:
        parsers = _local.parsers = {}
    if grammar not in parsers:
        language = TS_LANGUAGE if grammar == "typescript" else TSX_LANGUAGE
        parsers[grammar] = Parser(language)
    return parsers[grammar]


def grammar_for(path: str) -> str:
    """Pick the grammar for a script file by extension."""
    suffix = PurePosixPath(path).suffix.lower()
    return "typescript" if suffix in TS_EXTENSIONS else "tsx"


@dataclass
class SourceTree:
    """A parsed script together with its UTF-8 source bytes."""

    tree: Tree
    source: bytes

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def text(self, node: Node | None) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def slice(self, start: Node, end: Node) -> str:
        """Source text from the start of ``start`` to the end of ``end``."""
        return self.source[start.start_byte : end.end_byte].decode("utf-8", errors="replace")


def parse_script(content: str, path: str) -> SourceTree:
    """Parse TypeScript/JavaScript source. tree-sitter never raises on bad input."""
    source = content.encode("utf-8")
    tree = _get_parser(grammar_for(path)).parse(source)
    return SourceTree(tree=tree, source=source)


def start_line(node: Node) -> int:
    """1-based line of the node's first character."""
    return node.start_point[0] + 1


def end_line(node: Node) -> int:
    """1-based line of the node's last character."""
    return node.end_point[0] + 1


def unwrap_export(node: Node) -> tuple[Node | None, bool]:
    """Return ``(declaration, exported)`` for a top-level statement."""
    if node.type == "export_statement":
        return node.child_by_field_name("declaration"), True
    return node, False


def node_name(node: Node, st: SourceTree) -> str | None:
    name = node.child_by_field_name("name")
    return st.text(name) if name is not None else None


def decorators_of(node: Node) -> list[Node]:
    """Collect the decorators attached to a class or class member.

    Decorators can be children of the declaration itself, of a wrapping
    ``export_statement``, or (for class members) preceding siblings in the
    class body.
    """
    found = [child for child in node.children if child.type == "decorator"]

    parent = node.parent
    if parent is not None and parent.type == "export_statement":
        found = [child for child in parent.children if child.type == "decorator"] + found
    elif parent is not None and parent.type == "class_body":
        preceding: list[Node] = []
        sibling = node.prev_sibling
        while sibling is not None and sibling.type in ("decorator", "comment"):
            if sibling.type == "decorator":
                preceding.append(sibling)
            sibling = sibling.prev_sibling
        found = list(reversed(preceding)) + found

    return found


def decorator_call(decorator: Node, st: SourceTree) -> tuple[str, list[Node]]:
    """Return the decorator's name and its call arguments (empty if not called)."""
    expression = next(iter(decorator.named_children), None)
    if expression is None:
        return "", []
    if expression.type == "call_expression":
        function = expression.child_by_field_name("function")
        arguments = expression.child_by_field_name("arguments")
        args = list(arguments.named_children) if arguments is not None else []
        return _last_segment(st.text(function)), [a for a in args if a.type != "comment"]
    return _last_segment(st.text(expression)), []


def _last_segment(name: str) -> str:
    return name.rsplit(".", 1)[-1].strip()


def string_value(node: Node | None, st: SourceTree) -> str | None:
    """Value of a string literal, or of the ``path`` key of an object literal."""
    if node is None:
        return None
    if node.type == "string":
        return st.text(node)[1:-1]
    if node.type == "template_string":
        text = st.text(node)[1:-1]
        return None if "${" in text else text
    if node.type == "object":
        for pair in node.named_children:
            if pair.type != "pair":
                continue
            key = st.text(pair.child_by_field_name("key")).strip("'\"")
            if key == "path":
                return string_value(pair.child_by_field_name("value"), st)
    return None


def leading_node(node: Node) -> Node:
    """First node of a declaration including its decorators and leading comments."""
    first = node
    if node.parent is not None and node.parent.type == "export_statement":
        first = node.parent

    sibling = first.prev_sibling
    while sibling is not None and sibling.type in ("decorator", "comment"):
        if sibling.type == "comment" and first.start_point[0] - sibling.end_point[0] > 1:
            break
        first = sibling
        sibling = sibling.prev_sibling
    return first


def outer_node(node: Node) -> Node:
    """The export statement wrapping a declaration, if any."""
    if node.parent is not None and node.parent.type == "export_statement":
        return node.parent
    return node


def type_text(annotation: Node | None, st: SourceTree) -> str | None:
    """Text of a type annotation without its leading colon."""
    if annotation is None:
        return None
    text = st.text(annotation).strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text or None


def has_token(node: Node, token: str) -> bool:
    """Whether the node has a direct child token of the given type."""
    return any(child.type == token for child in node.children)


def class_members(class_node: Node) -> list[Node]:
    body = class_node.child_by_field_name("body")
    if body is None:
        return []
    return [child for child in body.named_children if child.type in METHOD_TYPES]
