"""HTTP endpoint extraction from route controllers."""

from codecite.indexer.models import Endpoint
from codecite.indexer.routes import find_routes
from codecite.indexer.syntax import (
    SourceTree,
    decorator_call,
    end_line,
    leading_node,
    start_line,
    type_text,
)

PARAMETER_TYPES = ("required_parameter", "optional_parameter")


def extract_endpoints(st: SourceTree, language: str) -> list[Endpoint]:
    """One endpoint per route-decorated controller method.

    The request shape is the type of the ``@Body()`` parameter and the
    response shape is the declared return type; both are best-effort labels.
    """
    endpoints: list[Endpoint] = []
    for route in find_routes(st):
        request = _body_type(route.node, st)
        response = type_text(route.node.child_by_field_name("return_type"), st)
        endpoints.append(
            Endpoint(
                method=route.http_method,
                path=route.path,
                handler_name=route.handler_name,
                start_line=start_line(leading_node(route.node)),
                end_line=end_line(route.node),
                decorators=route.decorators,
                request_shape={"type": request} if request else None,
                response_shape={"type": response} if response else None,
                language=language,
            )
        )
    return endpoints


def _body_type(method_node, st: SourceTree) -> str | None:
    parameters = method_node.child_by_field_name("parameters")
    if parameters is None:
        return None
    for parameter in parameters.named_children:
        if parameter.type not in PARAMETER_TYPES:
            continue
        names = [decorator_call(c, st)[0] for c in parameter.children if c.type == "decorator"]
        if "Body" in names:
            return type_text(parameter.child_by_field_name("type"), st) or "any"
    return None
