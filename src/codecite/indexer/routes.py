"""NestJS-style controller route discovery."""

from dataclasses import dataclass, field

from tree_sitter import Node

from codecite.indexer.syntax import (
    CLASS_TYPES,
    SourceTree,
    class_members,
    decorator_call,
    decorators_of,
    node_name,
    string_value,
    unwrap_export,
)

# Method decorator -> HTTP method
HTTP_DECORATORS = {
    "Get": "GET",
    "Post": "POST",
    "Put": "PUT",
    "Patch": "PATCH",
    "Delete": "DELETE",
    "Head": "HEAD",
    "Options": "OPTIONS",
    "All": "ALL",
}


@dataclass
class Route:
    """A route-decorated controller method."""

    class_name: str
    method_name: str
    http_method: str
    path: str
    node: Node  # The method_definition
    decorators: list[str] = field(default_factory=list)

    @property
    def handler_name(self) -> str:
        return f"{self.class_name}.{self.method_name}"


def join_route(base: str | None, sub: str | None) -> str:
    """Join a controller base path and a method sub-path into ``/a/b``."""
    parts = [p.strip("/") for p in (base or "", sub or "")]
    parts = [p for p in parts if p]
    return "/" + "/".join(parts) if parts else "/"


def find_routes(st: SourceTree) -> list[Route]:
    """Find every route-decorated method of every ``@Controller`` class, in source order."""
    routes: list[Route] = []
    for statement in st.root.named_children:
        declaration, _ = unwrap_export(statement)
        if declaration is None or declaration.type not in CLASS_TYPES:
            continue

        is_controller, base = _controller_base(declaration, st)
        if not is_controller:
            continue
        class_name = node_name(declaration, st) or "Controller"

        for member in class_members(declaration):
            method_name = node_name(member, st)
            if not method_name:
                continue
            names: list[str] = []
            http_method = None
            sub_path = None
            for decorator in decorators_of(member):
                name, args = decorator_call(decorator, st)
                names.append(name)
                if http_method is None and name in HTTP_DECORATORS:
                    http_method = HTTP_DECORATORS[name]
                    sub_path = string_value(args[0], st) if args else None
            if http_method is None:
                continue
            routes.append(
                Route(
                    class_name=class_name,
                    method_name=method_name,
                    http_method=http_method,
                    path=join_route(base, sub_path),
                    node=member,
                    decorators=names,
                )
            )
    return routes


def _controller_base(class_node: Node, st: SourceTree) -> tuple[bool, str | None]:
    """Whether the class is a ``@Controller`` and its base path."""
    for decorator in decorators_of(class_node):
        name, args = decorator_call(decorator, st)
        if name == "Controller":
            return True, string_value(args[0], st) if args else None
    return False, None
