from retrace.model.mark import Mark
from retrace.model.node import Fragment, Node, Slice, TextNode
from retrace.model.resolvedpos import ResolvedPos
from retrace.model.schema import AttributeSpec, MarkSpec, MarkType, NodeSpec, NodeType, Schema

__all__ = [
    "AttributeSpec",
    "Fragment",
    "Mark",
    "MarkSpec",
    "MarkType",
    "Node",
    "NodeSpec",
    "NodeType",
    "ResolvedPos",
    "Schema",
    "Slice",
    "TextNode",
]
