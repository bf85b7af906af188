"""
A ready-made grammar for rich text: paragraphs, headings, quotes, code
blocks, lists, images and hard breaks, with link/em/strong/code marks.
"""

from retrace.model import Schema

NODES = {
    "doc": {"content": "block+"},
    "paragraph": {"content": "inline*", "group": "block"},
    "blockquote": {"content": "block+", "group": "block"},
    "horizontal_rule": {"group": "block"},
    "heading": {"attrs": {"level": {"default": 1}}, "content": "inline*", "group": "block"},
    "code_block": {"content": "text*", "marks": "", "group": "block"},
    "text": {"group": "inline"},
    "image": {
        "inline": True,
        "attrs": {"src": {}, "alt": {"default": None}, "title": {"default": None}},
        "group": "inline",
    },
    "hard_break": {"inline": True, "group": "inline"},
    "ordered_list": {"attrs": {"order": {"default": 1}}, "content": "list_item+", "group": "block"},
    "bullet_list": {"content": "list_item+", "group": "block"},
    "list_item": {"content": "paragraph block*"},
}

# Declaration order is mark rank: sets always list link before em before strong before code.
MARKS = {
    "link": {"attrs": {"href": {}, "title": {"default": None}}, "inclusive": False},
    "em": {},
    "strong": {},
    "code": {},
}

schema = Schema(NODES, MARKS)
