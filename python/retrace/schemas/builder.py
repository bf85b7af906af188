"""
Terse constructors for documents in the basic schema, e.g.

    doc(p("Before text", em("italic"), "After text"))

Strings become text nodes, lists are flattened and mark builders return the
marked copies of their children.
"""

from typing import Any, Dict, List, Optional

from retrace.model import Fragment
from retrace.schemas.basic import schema


def _children(items) -> List:
    nodes = []
    for item in items:
        if isinstance(item, str):
            if item:
                nodes.append(schema.text(item))
        elif isinstance(item, (list, tuple)):
            nodes.extend(_children(item))
        else:
            nodes.append(item)
    return nodes


def node_builder(type_name: str, attrs: Optional[Dict[str, Any]] = None):
    def build(*children):
        return schema.node(type_name, attrs, Fragment.from_array(_children(children)))

    build.__name__ = type_name
    return build


def mark_builder(type_name: str, attrs: Optional[Dict[str, Any]] = None):
    def build(*children):
        mark = schema.mark(type_name, attrs)
        return [child.mark(mark.add_to_set(child.marks)) for child in _children(children)]

    build.__name__ = type_name
    return build


doc = node_builder("doc")
p = node_builder("paragraph")
blockquote = node_builder("blockquote")
pre = node_builder("code_block")
h1 = node_builder("heading", {"level": 1})
h2 = node_builder("heading", {"level": 2})
h3 = node_builder("heading", {"level": 3})
ul = node_builder("bullet_list")
ol = node_builder("ordered_list")
li = node_builder("list_item")

em = mark_builder("em")
strong = mark_builder("strong")
code = mark_builder("code")


def hr():
    return schema.node("horizontal_rule")


def br():
    return schema.node("hard_break")


def img(src: str, alt: Optional[str] = None, title: Optional[str] = None):
    return schema.node("image", {"src": src, "alt": alt, "title": title})


def link(href: str, *children, title: Optional[str] = None):
    return mark_builder("link", {"href": href, "title": title})(*children)
