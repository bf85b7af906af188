"""
Document grammar: node types, mark types and the schema tying them together.

Content expressions (``"paragraph block*"``, ``"list_item+"``, ``"inline*"``)
are compiled into regular expressions over the space-terminated names of a
node's children, so validating a child sequence is a single ``fullmatch``.
"""

import re
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from retrace.errors import ReplaceError, SchemaError
from retrace.model.mark import Mark
from retrace.model.node import Fragment, Node, TextNode

logger = structlog.get_logger(__name__)

_MISSING = object()
_CONTENT_TOKEN = re.compile(r"\w+|[()|*+?]|\{\d+(?:,\d*)?\}")


class AttributeSpec(BaseModel):
    """
    Declares one attribute. An attribute without an explicit ``default`` is
    required when a node or mark is created.
    """

    default: Any = Field(None, description="Value used when the attribute is not supplied.")

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class NodeSpec(BaseModel):
    content: str = Field("", description="Content expression, e.g. 'paragraph block*'. Empty for leaves.")
    group: str = Field("", description="Space-separated group names usable in content expressions.")
    inline: bool = Field(False, description="Whether the node is inline (text is always inline).")
    atom: bool = Field(False, description="Treat a non-leaf node as a single unit.")
    marks: Optional[str] = Field(
        None,
        description="Marks allowed on children: '_' for all, '' for none, or names/groups. "
        "Defaults to all for nodes with inline content and none otherwise.",
    )
    attrs: Dict[str, AttributeSpec] = Field(default_factory=dict)


class MarkSpec(BaseModel):
    attrs: Dict[str, AttributeSpec] = Field(default_factory=dict)
    excludes: Optional[str] = Field(
        None,
        description="Marks that cannot coexist with this one. Defaults to marks of the same type.",
    )
    inclusive: bool = Field(True, description="Whether the mark extends to text typed at its end.")
    group: str = ""


def _compute_attrs(attr_specs: Dict[str, AttributeSpec], given: Optional[Dict[str, Any]], owner: str) -> Dict[str, Any]:
    built = {}
    for name, spec in attr_specs.items():
        value = given.get(name, _MISSING) if given else _MISSING
        if value is _MISSING:
            if not spec.has_default:
                raise SchemaError(f"No value supplied for attribute {name} on {owner}")
            value = spec.default
        built[name] = value
    return built


class NodeType:
    def __init__(self, name: str, schema: "Schema", spec: NodeSpec):
        self.name = name
        self.schema = schema
        self.spec = spec
        self.groups = spec.group.split() if spec.group else []
        self.attrs = spec.attrs
        self.is_text = name == "text"
        self.is_block = not (spec.inline or self.is_text)
        self.is_inline = not self.is_block
        self.is_leaf = not spec.content.strip()
        self.is_atom = self.is_leaf or spec.atom
        # Filled in by Schema once every type exists.
        self.inline_content = False
        self.mark_set: Optional[List["MarkType"]] = []
        self._content_pattern = re.compile("")
        self._allowed_children: frozenset = frozenset()

    def __repr__(self) -> str:
        return f"<NodeType {self.name}>"

    @property
    def is_textblock(self) -> bool:
        return self.is_block and self.inline_content

    def _compile_content(self):
        expr = self.spec.content
        tokens = _CONTENT_TOKEN.findall(expr)
        if "".join(tokens) != re.sub(r"\s+", "", expr):
            raise SchemaError(f"Invalid content expression for {self.name}: {expr!r}")

        pieces = []
        allowed = set()
        for token in tokens:
            if token[0].isalnum() or token[0] == "_":
                types = self.schema.resolve_node_types(token)
                allowed.update(types)
                pieces.append("(?:" + "|".join(re.escape(t.name + " ") for t in types) + ")")
            elif token == "(":
                pieces.append("(?:")
            else:
                pieces.append(token)

        try:
            self._content_pattern = re.compile("".join(pieces))
        except re.error as e:
            raise SchemaError(f"Invalid content expression for {self.name}: {expr!r}") from e
        self._allowed_children = frozenset(allowed)
        self.inline_content = any(t.is_inline for t in allowed)

    def _compile_marks(self):
        expr = self.spec.marks
        if expr == "_" or (expr is None and self.inline_content):
            self.mark_set = None
        elif expr:
            self.mark_set = self.schema.resolve_mark_types(expr)
        else:
            self.mark_set = []

    def allows_mark_type(self, mark_type: "MarkType") -> bool:
        return self.mark_set is None or mark_type in self.mark_set

    def allows_marks(self, marks) -> bool:
        if self.mark_set is None:
            return True
        return all(self.allows_mark_type(mark.type) for mark in marks)

    def matches_sequence(self, children) -> bool:
        names = "".join(child.type.name + " " for child in children)
        return self._content_pattern.fullmatch(names) is not None

    def valid_content(self, content: Fragment) -> bool:
        if not self.matches_sequence(content):
            return False
        return all(self.allows_marks(child.marks) for child in content)

    def check_content(self, content: Fragment):
        if not self.valid_content(content):
            raise ReplaceError(f"Invalid content for node {self.name}: {content}")

    def compatible_content(self, other: "NodeType") -> bool:
        return self is other or bool(self._allowed_children & other._allowed_children)

    def compute_attrs(self, attrs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return _compute_attrs(self.attrs, attrs, self.name)

    def check_attrs(self, attrs: Dict[str, Any]):
        for name in attrs:
            if name not in self.attrs:
                raise SchemaError(f"Unsupported attribute {name} for node of type {self.name}")

    def create(self, attrs: Optional[Dict[str, Any]] = None, content=None, marks=None) -> Node:
        """Create a node of this type. Content is not checked against the grammar."""
        if self.is_text:
            raise SchemaError("NodeType.create cannot construct text nodes")
        return Node(self, self.compute_attrs(attrs), Fragment.from_(content), Mark.set_from(marks))

    def create_checked(self, attrs: Optional[Dict[str, Any]] = None, content=None, marks=None) -> Node:
        content = Fragment.from_(content)
        if not self.valid_content(content):
            raise SchemaError(f"Invalid content for node {self.name}: {content}")
        return self.create(attrs, content, marks)


class MarkType:
    def __init__(self, name: str, rank: int, schema: "Schema", spec: MarkSpec):
        self.name = name
        self.rank = rank
        self.schema = schema
        self.spec = spec
        self.attrs = spec.attrs
        self.groups = spec.group.split() if spec.group else []
        self.excluded: List["MarkType"] = []

    def __repr__(self) -> str:
        return f"<MarkType {self.name}>"

    def create(self, attrs: Optional[Dict[str, Any]] = None) -> Mark:
        return Mark(self, _compute_attrs(self.attrs, attrs, self.name))

    def excludes(self, other: "MarkType") -> bool:
        return other in self.excluded

    def remove_from_set(self, marks):
        return tuple(mark for mark in marks if mark.type is not self)

    def is_in_set(self, marks) -> Optional[Mark]:
        for mark in marks:
            if mark.type is self:
                return mark
        return None


class Schema:
    """
    A grammar over node and mark types.

    ``nodes`` and ``marks`` map names to specs (NodeSpec/MarkSpec or plain
    dicts). Their order matters: the first node type is the default top node
    and marks are ranked in declaration order.
    """

    def __init__(self, nodes: Dict[str, Any], marks: Optional[Dict[str, Any]] = None, top_node: Optional[str] = None):
        try:
            node_specs = {name: NodeSpec.model_validate(spec) for name, spec in nodes.items()}
            mark_specs = {name: MarkSpec.model_validate(spec) for name, spec in (marks or {}).items()}
        except ValidationError as e:
            raise SchemaError(f"Invalid schema definition: {e}") from e

        self.nodes: Dict[str, NodeType] = {name: NodeType(name, self, spec) for name, spec in node_specs.items()}
        self.marks: Dict[str, MarkType] = {
            name: MarkType(name, rank, self, spec) for rank, (name, spec) in enumerate(mark_specs.items())
        }

        if "text" not in self.nodes:
            raise SchemaError("Every schema needs a 'text' type")
        if self.nodes["text"].attrs:
            raise SchemaError("The text node type should not have attributes")

        top_name = top_node or next(iter(self.nodes))
        if top_name not in self.nodes:
            raise SchemaError(f"Top node type {top_name!r} is not defined")
        self.top_node_type = self.nodes[top_name]

        for node_type in self.nodes.values():
            node_type._compile_content()
        for node_type in self.nodes.values():
            node_type._compile_marks()

        for mark_type in self.marks.values():
            excludes = mark_type.spec.excludes
            if excludes is None:
                mark_type.excluded = [mark_type]
            elif excludes:
                mark_type.excluded = self.resolve_mark_types(excludes)

        self._text_type = self.nodes["text"]
        logger.debug(f"Schema compiled: {len(self.nodes)} node types, {len(self.marks)} mark types")

    # --- Name resolution ---

    def resolve_node_types(self, name: str) -> List[NodeType]:
        """Resolve a content-expression word to the node types it names (a type or a group)."""
        if name in self.nodes:
            return [self.nodes[name]]
        found = [t for t in self.nodes.values() if name in t.groups]
        if not found:
            raise SchemaError(f"No node type or group {name!r} found")
        return found

    def resolve_mark_types(self, expr: str) -> List[MarkType]:
        if expr == "_":
            return list(self.marks.values())
        found: List[MarkType] = []
        for name in expr.split():
            if name in self.marks:
                matched = [self.marks[name]]
            else:
                matched = [m for m in self.marks.values() if name in m.groups]
            if not matched:
                raise SchemaError(f"Unknown mark type or group {name!r}")
            found.extend(m for m in matched if m not in found)
        return found

    # --- Construction ---

    def node(self, type_name: str, attrs: Optional[Dict[str, Any]] = None, content=None, marks=None) -> Node:
        if type_name not in self.nodes:
            raise SchemaError(f"Unknown node type: {type_name}")
        return self.nodes[type_name].create(attrs, content, marks)

    def text(self, text: str, marks=None) -> TextNode:
        if not text:
            raise SchemaError("Empty text nodes are not allowed")
        return TextNode(self._text_type, {}, text, Mark.set_from(marks))

    def mark(self, type_name: str, attrs: Optional[Dict[str, Any]] = None) -> Mark:
        if type_name not in self.marks:
            raise SchemaError(f"There is no mark type {type_name} in this schema")
        return self.marks[type_name].create(attrs)

    # --- JSON ---

    def node_from_json(self, data: Any) -> Node:
        """
        Parse node JSON (the output of Node.to_json) into a Node.
        Raises SchemaError for anything the grammar cannot represent; content
        validity is checked separately by Node.check.
        """
        if not isinstance(data, dict):
            raise SchemaError(f"Invalid input for node_from_json: {data!r}")

        marks = None
        if "marks" in data:
            if not isinstance(data["marks"], list):
                raise SchemaError("Invalid mark data for node_from_json")
            marks = [self.mark_from_json(m) for m in data["marks"]]

        if data.get("type") == "text":
            text = data.get("text")
            if not isinstance(text, str):
                raise SchemaError("Invalid text node in JSON")
            return self.text(text, marks)

        type_name = data.get("type")
        if not isinstance(type_name, str) or type_name not in self.nodes:
            raise SchemaError(f"Unknown node type: {type_name!r}")

        attrs = data.get("attrs")
        if attrs is not None and not isinstance(attrs, dict):
            raise SchemaError(f"Invalid attrs for node of type {type_name}")

        raw_content = data.get("content")
        if raw_content is None:
            content = Fragment.empty
        elif isinstance(raw_content, list):
            content = Fragment.from_array([self.node_from_json(child) for child in raw_content])
        else:
            raise SchemaError(f"Invalid content for node of type {type_name}")

        return self.nodes[type_name].create(attrs, content, marks)

    def mark_from_json(self, data: Any) -> Mark:
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise SchemaError(f"Invalid mark JSON: {data!r}")
        attrs = data.get("attrs")
        if attrs is not None and not isinstance(attrs, dict):
            raise SchemaError(f"Invalid attrs for mark {data['type']}")
        return self.mark(data["type"], attrs)
