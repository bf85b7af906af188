"""
Tests for steps and the Transform that records them.

Run: python3 test_steps.py
From: retrace/python/
"""

import sys

sys.path.insert(0, '.')

from retrace.errors import SchemaError, TransformError
from retrace.model import Fragment, Slice
from retrace.schemas.basic import schema
from retrace.schemas.builder import blockquote, doc, em, h1, h2, h3, li, p, pre, ul
from retrace.transform import (
    AddMarkStep,
    RemoveMarkStep,
    ReplaceAroundStep,
    ReplaceStep,
    SetNodeMarkupStep,
    Step,
    Transform,
)


def _text_slice(text, marks=None):
    return Slice(Fragment.from_(schema.text(text, marks)), 0, 0)


def test_replace_step_apply():
    """A ReplaceStep swaps a range for its slice and leaves the input untouched."""
    d = doc(p("abc"))
    result = ReplaceStep(2, 3, _text_slice("X")).apply(d)
    assert result.failed is None
    assert result.doc == doc(p("aXc"))
    assert d == doc(p("abc"))

    print("PASS: ReplaceStep apply")


def test_replace_step_failures():
    """Out-of-range and grammar-breaking replaces fail with a message instead of raising."""
    d = doc(p("abc"))
    assert ReplaceStep(0, 5, Slice.empty).apply(d).failed
    assert ReplaceStep(2, 40, Slice.empty).apply(d).failed

    result = ReplaceStep(1, 3, Slice.empty, True).apply(d)
    assert result.failed == "Structure replace would overwrite content"

    print("PASS: ReplaceStep failures")


def test_replace_around_wraps():
    """A ReplaceAroundStep wraps the gap content into the slice."""
    d = doc(p("abc"))
    step = ReplaceAroundStep(0, 5, 0, 5, Slice(Fragment.from_(blockquote()), 0, 0), 1, True)
    result = step.apply(d)
    assert result.failed is None
    assert result.doc == doc(blockquote(p("abc")))

    print("PASS: ReplaceAroundStep wrap")


def test_replace_around_rejects_open_gap():
    """The gap must be a flat range."""
    d = doc(p("abc"))
    step = ReplaceAroundStep(0, 5, 1, 5, Slice(Fragment.from_(blockquote()), 0, 0), 1)
    assert step.apply(d).failed == "Gap is not a flat range"

    print("PASS: ReplaceAroundStep open gap")


def test_set_node_markup():
    """SetNodeMarkupStep changes attrs or type while keeping the children."""
    d = doc(h1("A title"))
    step = SetNodeMarkupStep(0, None, {"level": 2})
    result = step.apply(d)
    assert result.doc == doc(h2("A title"))
    assert step.to_json() == {"stepType": "setNodeMarkup", "pos": 0, "attrs": {"level": 2}}

    retyped = SetNodeMarkupStep(0, "heading", {"level": 3}).apply(doc(p("x")))
    assert retyped.doc == doc(h3("x"))

    print("PASS: SetNodeMarkupStep")


def test_set_node_markup_failures():
    """Text nodes, missing nodes and content the new type forbids all fail."""
    d = doc(p("x"))
    assert SetNodeMarkupStep(1, None, {}).apply(d).failed == "Cannot set markup on a text node"
    assert SetNodeMarkupStep(3, None, {}).apply(d).failed
    assert SetNodeMarkupStep(0, "bullet_list", None).apply(d).failed
    assert SetNodeMarkupStep(0, "chapter", None).apply(d).failed

    print("PASS: SetNodeMarkupStep failures")


def test_add_and_remove_mark():
    """Mark steps rewrite the marks of inline content in their range."""
    plain = doc(p("Before textitalicAfter text"))
    marked = doc(p("Before text", em("italic"), "After text"))
    em_mark = schema.mark("em")

    added = AddMarkStep(12, 18, em_mark).apply(plain)
    assert added.doc == marked

    removed = RemoveMarkStep(12, 18, em_mark).apply(marked)
    assert removed.doc == plain

    print("PASS: add and remove mark")


def test_add_mark_respects_parent():
    """Marks are not added inside nodes whose grammar disallows them."""
    d = doc(pre("code"))
    result = AddMarkStep(1, 5, schema.mark("em")).apply(d)
    assert result.failed is None
    assert result.doc == d

    print("PASS: add mark respects parent")


def test_replace_step_merge():
    """Adjacent insertions merge into one step; distant ones do not."""
    first = ReplaceStep(1, 1, _text_slice("a"))
    second = ReplaceStep(2, 2, _text_slice("b"))
    merged = first.merge(second)
    assert merged is not None
    assert merged.to_json() == {
        "stepType": "replace",
        "from": 1,
        "to": 1,
        "slice": {"content": [{"type": "text", "text": "ab"}]},
    }

    assert first.merge(ReplaceStep(5, 5, _text_slice("b"))) is None
    assert first.merge(ReplaceStep(2, 2, _text_slice("b"), True)) is None

    print("PASS: ReplaceStep merge")


def test_mark_step_merge():
    """Touching mark steps with the same mark merge; different marks do not."""
    em_mark = schema.mark("em")
    merged = AddMarkStep(1, 3, em_mark).merge(AddMarkStep(3, 5, em_mark))
    assert merged.to_json() == {"stepType": "addMark", "mark": {"type": "em"}, "from": 1, "to": 5}
    assert AddMarkStep(1, 3, em_mark).merge(AddMarkStep(3, 5, schema.mark("strong"))) is None
    assert AddMarkStep(1, 3, em_mark).merge(RemoveMarkStep(3, 5, em_mark)) is None

    removed = RemoveMarkStep(4, 8, em_mark).merge(RemoveMarkStep(2, 4, em_mark))
    assert (removed.from_, removed.to) == (2, 8)

    print("PASS: mark step merge")


def test_step_json_round_trip():
    """Every step kind survives to_json/from_json unchanged."""
    steps = [
        ReplaceStep(2, 3, _text_slice("X", [schema.mark("em")])),
        ReplaceStep(3, 5, Slice.empty, True),
        ReplaceAroundStep(0, 5, 0, 5, Slice(Fragment.from_(blockquote()), 0, 0), 1, True),
        SetNodeMarkupStep(0, "heading", {"level": 2}, (schema.mark("em"),)),
        AddMarkStep(1, 4, schema.mark("link", {"href": "http://x", "title": None})),
        RemoveMarkStep(1, 4, schema.mark("strong")),
    ]
    for step in steps:
        data = step.to_json()
        restored = Step.from_json(schema, data)
        assert type(restored) is type(step)
        assert restored.to_json() == data
        assert restored == step

    print("PASS: step JSON round trip")


def test_step_from_json_rejects_bad_input():
    """Unknown step types and malformed fields raise SchemaError."""
    bad_inputs = [
        {"stepType": "teleport", "from": 1},
        {"from": 1, "to": 2},
        {"stepType": "replace", "from": "1", "to": 2},
        {"stepType": "addMark", "from": 1, "to": 2, "mark": {"type": "underline"}},
        [],
    ]
    for data in bad_inputs:
        try:
            Step.from_json(schema, data)
            assert False, f"Expected SchemaError for {data!r}"
        except SchemaError:
            pass

    print("PASS: step from_json rejects bad input")


def test_transform_records_documents():
    """A Transform keeps the document before each step."""
    start = doc(p("abc"))
    tr = Transform(start)
    assert tr.before is start
    assert not tr.doc_changed

    tr.insert(1, schema.text("x"))
    tr.delete(2, 3)
    assert len(tr.steps) == 2
    assert len(tr.docs) == 2
    assert tr.docs[0] is start
    assert tr.docs[1] == doc(p("xabc"))
    assert tr.doc == doc(p("xbc"))
    assert tr.before is start
    assert tr.doc_changed

    print("PASS: transform records documents")


def test_transform_step_raises():
    """Transform.step raises TransformError; maybe_step reports the failure."""
    tr = Transform(doc(p("abc")))
    try:
        tr.step(ReplaceStep(0, 5, Slice.empty))
        assert False, "Expected TransformError"
    except TransformError:
        pass
    assert tr.steps == []

    result = tr.maybe_step(ReplaceStep(0, 5, Slice.empty))
    assert result.failed
    assert tr.steps == []

    print("PASS: transform step raises")


def test_transform_split_and_join():
    """split() and join() move block boundaries with structure steps."""
    tr = Transform(doc(p("abcd")))
    tr.split(3)
    assert tr.doc == doc(p("ab"), p("cd"))
    assert tr.steps[0].structure

    tr.join(4)
    assert tr.doc == doc(p("abcd"))
    assert tr.steps[1].to_json() == {"stepType": "replace", "from": 3, "to": 5, "structure": True}

    deep = Transform(doc(ul(li(p("abc")), li(p("def")))))
    deep.split(4, 2)
    assert deep.doc == doc(ul(li(p("a")), li(p("bc")), li(p("def"))))

    print("PASS: transform split and join")


def test_transform_set_node_markup_and_marks():
    """Builder helpers wrap the step constructors."""
    tr = Transform(doc(p("hello")))
    tr.set_node_markup(0, schema.nodes["heading"], {"level": 1})
    tr.add_mark(1, 3, schema.mark("strong"))
    tr.remove_mark(1, 2, schema.mark("strong"))
    tr.add_mark(2, 2, schema.mark("em"))
    assert len(tr.steps) == 3
    assert tr.doc.type.name == "doc"
    assert tr.doc.child(0).type.name == "heading"
    assert [c.text for c in tr.doc.child(0).content] == ["h", "e", "llo"]

    print("PASS: transform builders")


if __name__ == "__main__":
    tests = [
        test_replace_step_apply,
        test_replace_step_failures,
        test_replace_around_wraps,
        test_replace_around_rejects_open_gap,
        test_set_node_markup,
        test_set_node_markup_failures,
        test_add_and_remove_mark,
        test_add_mark_respects_parent,
        test_replace_step_merge,
        test_mark_step_merge,
        test_step_json_round_trip,
        test_step_from_json_rejects_bad_input,
        test_transform_records_documents,
        test_transform_step_raises,
        test_transform_split_and_join,
        test_transform_set_node_markup_and_marks,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"FAIL: {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print("SOME TESTS FAILED")
