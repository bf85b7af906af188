"""
Tests for recovering steps from two document snapshots.

Run: python3 test_recreate.py
From: retrace/python/
"""

import sys
import random

sys.path.insert(0, '.')

from retrace.errors import NoValidDiffError
from retrace.model import Schema
from retrace.models import RecreateOptions, SimplifyMode
from retrace.recreate import BatchState, recreate_transform
from retrace.schemas.basic import schema
from retrace.schemas.builder import (
    blockquote,
    code,
    doc,
    em,
    h1,
    h2,
    hr,
    img,
    li,
    link,
    p,
    pre,
    strong,
    ul,
)
from retrace.transform import AddMarkStep, RemoveMarkStep, ReplaceStep, SetNodeMarkupStep, Step, Transform


def _replay(start, steps_json):
    """Apply serialized steps to `start` the way a remote client would."""
    tr = Transform(start)
    for data in steps_json:
        tr.step(Step.from_json(schema, data))
    return tr.doc


# A corpus of edits covering text, marks, attributes and structure.
CORPUS = [
    (doc(p("Hello world")), doc(p("Hello brave new world"))),
    (doc(p("abc"), p("def")), doc(p("abc"))),
    (doc(h1("Title"), p("x")), doc(h2("Title"), p("x", em("y")))),
    (doc(ul(li(p("one")), li(p("two")))), doc(ul(li(p("one")), li(p("two")), li(p("three"))))),
    (doc(p("Before text", em("styled"), "After text")), doc(p("Before text", strong("styled"), "After text"))),
    (doc(p("A quoted sentence")), doc(blockquote(p("A quoted sentence")))),
    (doc(p("a"), hr(), p("b")), doc(p("a"), p("b"))),
    (doc(p(link("http://a.example", "x"))), doc(p(link("http://b.example", "x")))),
    (doc(pre("let x = 1")), doc(pre("let y = 2"))),
    (doc(p("see ", img("a.png"))), doc(p("see ", img("b.png", alt="B")))),
    (doc(ul(li(p("abc")), li(p("def")))), doc(ul(li(p("abc"), ul(li(p("def"))))))),
    (doc(p("The Vendor shall deliver")), doc(p("The ", code("Supplier"), " must deliver"))),
    (doc(blockquote(p("bb"))), doc(h1("bb"))),
    (doc(ul(li(p("one")), li(p("two")))), doc(h1("one"), p("two"))),
    (doc(p("a", em("bc"), "d")), doc(p("a", em("bxc"), "d"))),
    (doc(h1(strong("Terms")), p("x")), doc(h2(em("Terms")), blockquote(p("x")))),
]


def test_add_em():
    """Adding a mark is a single addMark step."""
    d1 = doc(p("Before textitalicAfter text"))
    d2 = doc(p("Before text", em("italic"), "After text"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [{"stepType": "addMark", "mark": {"type": "em"}, "from": 12, "to": 18}]
    assert tr.doc == d2

    print("PASS: add em")


def test_remove_strong():
    """Removing a mark is a single removeMark step."""
    d1 = doc(p("Before text", strong("bold"), "After text"))
    d2 = doc(p("Before textboldAfter text"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [{"stepType": "removeMark", "mark": {"type": "strong"}, "from": 12, "to": 16}]

    print("PASS: remove strong")


def test_add_em_and_strong():
    """Two new marks on the same range come out in rank order."""
    d1 = doc(p("Before textitalic/boldAfter text"))
    d2 = doc(p("Before text", strong(em("italic/bold")), "After text"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [
        {"stepType": "addMark", "mark": {"type": "em"}, "from": 12, "to": 23},
        {"stepType": "addMark", "mark": {"type": "strong"}, "from": 12, "to": 23},
    ]

    print("PASS: add em and strong")


def test_replace_em_with_strong():
    """Swapping marks removes the old one before adding the new one."""
    d1 = doc(p("Before text", em("styled"), "After text"))
    d2 = doc(p("Before text", strong("styled"), "After text"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [
        {"stepType": "removeMark", "mark": {"type": "em"}, "from": 12, "to": 18},
        {"stepType": "addMark", "mark": {"type": "strong"}, "from": 12, "to": 18},
    ]

    print("PASS: replace em with strong")


def test_replace_em_with_strong_in_different_parts():
    """Mark changes over several ranges produce one step per overlap."""
    d1 = doc(p("Before text", em("styledAfter text")))
    d2 = doc(p(strong("Before textstyled"), "After text"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [
        {"stepType": "addMark", "mark": {"type": "strong"}, "from": 1, "to": 12},
        {"stepType": "removeMark", "mark": {"type": "em"}, "from": 12, "to": 18},
        {"stepType": "addMark", "mark": {"type": "strong"}, "from": 12, "to": 18},
        {"stepType": "removeMark", "mark": {"type": "em"}, "from": 18, "to": 28},
    ]
    assert tr.doc == d2

    print("PASS: replace em with strong in different parts")


def test_wrap_in_blockquote():
    """A new wrapper is one replace covering the wrapped block."""
    d1 = doc(p("A quoted sentence"))
    d2 = doc(blockquote(p("A quoted sentence")))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [
        {
            "stepType": "replace",
            "from": 0,
            "to": 19,
            "slice": {
                "content": [
                    {
                        "type": "blockquote",
                        "content": [
                            {"type": "paragraph", "content": [{"type": "text", "text": "A quoted sentence"}]}
                        ],
                    }
                ]
            },
        }
    ]
    assert tr.doc == d2

    print("PASS: wrap in blockquote")


def test_unwrap_blockquote():
    """Removing a wrapper replaces it with its content."""
    d1 = doc(blockquote(p("A quoted sentence")))
    d2 = doc(p("A quoted sentence"))
    tr = recreate_transform(d1, d2)
    assert len(tr.steps) == 1
    step = tr.steps[0]
    assert isinstance(step, ReplaceStep)
    assert (step.from_, step.to) == (0, 21)
    assert tr.doc == d2

    print("PASS: unwrap blockquote")


def test_change_heading_level():
    """An attribute change is a single setNodeMarkup step."""
    d1 = doc(h1("A title"))
    d2 = doc(h2("A title"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [{"stepType": "setNodeMarkup", "pos": 0, "attrs": {"level": 2}}]
    assert isinstance(tr.steps[0], SetNodeMarkupStep)

    print("PASS: change heading level")


def test_change_node_type():
    """A type change keeps the children and names the new type."""
    d1 = doc(p("Title"), p("body"))
    d2 = doc(h1("Title"), p("body"))
    tr = recreate_transform(d1, d2)
    assert len(tr.steps) == 1
    data = tr.steps[0].to_json()
    assert data["stepType"] == "setNodeMarkup"
    assert data["type"] == "heading"
    assert tr.doc == d2

    print("PASS: change node type")


def test_single_character_edit():
    """Changing one character touches only that character."""
    d1 = doc(p("abc"))
    d2 = doc(p("abd"))
    tr = recreate_transform(d1, d2)
    assert tr.to_json() == [
        {"stepType": "replace", "from": 3, "to": 4, "slice": {"content": [{"type": "text", "text": "d"}]}}
    ]

    print("PASS: single character edit")


def test_text_edit_keeps_marks():
    """Characters typed inside marked text carry its marks."""
    d1 = doc(p("plain ", em("emphasis")))
    d2 = doc(p("plain ", em("emphasised")))
    tr = recreate_transform(d1, d2, {"separate_mark_phase": False})
    assert tr.doc == d2
    for step in tr.steps:
        assert isinstance(step, ReplaceStep)
        for node in step.slice.content:
            assert [m.type.name for m in node.marks] == ["em"]

    print("PASS: text edit keeps marks")


def test_identical_documents():
    """Equal documents need no steps, in every mode."""
    d = doc(h1("Title"), p("Body with ", em("marks"), " and ", link("http://x", "links")))
    for simplify in SimplifyMode:
        for separate in (True, False):
            tr = recreate_transform(d, d, RecreateOptions(simplify=simplify, separate_mark_phase=separate))
            assert tr.steps == []
            assert tr.doc == d

    print("PASS: identical documents")


def test_replay_reproduces_target():
    """Serialized steps replayed on the source always give the target."""
    for d1, d2 in CORPUS:
        for simplify in SimplifyMode:
            for separate in (True, False):
                options = RecreateOptions(simplify=simplify, separate_mark_phase=separate)
                tr = recreate_transform(d1, d2, options)
                assert tr.doc == d2, f"{d1} -> {d2} with {options}"
                assert _replay(d1, tr.to_json()) == d2, f"replay {d1} -> {d2} with {options}"

    print("PASS: replay reproduces target")


def test_type_change_with_incompatible_content():
    """A new node type that cannot hold the old children is reached by a replace."""
    pairs = [
        (doc(blockquote(p("bb"))), doc(h1("bb"))),
        (doc(ul(li(p("x")))), doc(h1("x"))),
    ]
    for d1, d2 in pairs:
        for separate in (True, False):
            tr = recreate_transform(d1, d2, {"separate_mark_phase": separate})
            assert tr.doc == d2
            assert not any(isinstance(step, SetNodeMarkupStep) for step in tr.steps)
            assert _replay(d1, tr.to_json()) == d2

    print("PASS: type change with incompatible content")


WORDS = ["a", "bb", "the", "cat", "sat", "on", "mat", "x"]


def _random_inline(rng):
    parts = []
    for _ in range(rng.randint(0, 3)):
        text = " ".join(rng.choice(WORDS) for _ in range(rng.randint(1, 3)))
        style = rng.choice([None, None, em, strong])
        parts.append(style(text) if style else text)
    return parts


def _random_block(rng, depth=0):
    kind = rng.choice(["p", "p", "h1", "h2", "pre", "quote", "list"] if depth < 2 else ["p", "h1"])
    if kind == "p":
        return p(_random_inline(rng))
    if kind == "h1":
        return h1(_random_inline(rng))
    if kind == "h2":
        return h2(_random_inline(rng))
    if kind == "pre":
        return pre(" ".join(rng.choice(WORDS) for _ in range(rng.randint(0, 3))))
    if kind == "quote":
        return blockquote(*[_random_block(rng, depth + 1) for _ in range(rng.randint(1, 2))])
    return ul(*[li(p(_random_inline(rng))) for _ in range(rng.randint(1, 2))])


def _random_doc(rng):
    return doc(*[_random_block(rng) for _ in range(rng.randint(1, 3))])


def test_random_pairs_replay():
    """Seeded random documents: every option set reaches and replays to the target."""
    rng = random.Random(20240611)
    option_sets = [
        RecreateOptions(),
        RecreateOptions(word_diffs=True),
        RecreateOptions(separate_mark_phase=False),
        RecreateOptions(simplify=SimplifyMode.PATTERNS),
    ]
    for _ in range(60):
        d1 = _random_doc(rng)
        d2 = _random_doc(rng)
        d1.check()
        d2.check()
        for options in option_sets:
            tr = recreate_transform(d1, d2, options)
            assert tr.doc == d2, f"{d1} -> {d2} with {options}"
            assert _replay(d1, tr.to_json()) == d2, f"replay {d1} -> {d2} with {options}"
            assert recreate_transform(d1, d1, options).steps == []

    print("PASS: random pairs replay")


def test_granularity_does_not_change_result():
    """Word and character diffs reach the same document."""
    d1 = doc(p("the quick brown fox jumps"), p("over the lazy dog"))
    d2 = doc(p("the slow brown cat jumps"), p("over a lazy dog"))
    by_char = recreate_transform(d1, d2, {"word_diffs": False, "simplify": "off"})
    by_word = recreate_transform(d1, d2, {"word_diffs": True, "simplify": "off"})
    assert by_char.doc == d2
    assert by_word.doc == d2
    # Whole words replaced: quick->slow, fox->cat, the->a
    assert len(by_word.steps) == 3
    assert by_word.to_json()[0]["slice"]["content"][0]["text"] == "slow"

    print("PASS: granularity does not change the result")


def test_mark_only_changes_give_mark_steps():
    """With the separate mark phase, mark-only differences never touch content."""
    d1 = doc(p("one ", strong("two"), " three"), p(em("four")))
    d2 = doc(p(em("one "), "two", " three"), p(strong(em("four"))))
    tr = recreate_transform(d1, d2)
    assert tr.steps
    assert all(isinstance(step, (AddMarkStep, RemoveMarkStep)) for step in tr.steps)
    assert tr.doc == d2

    print("PASS: mark-only changes give mark steps")


def test_mixed_mark_mode():
    """Without the separate phase, adding a mark is a content replace."""
    d1 = doc(p("Before textitalicAfter text"))
    d2 = doc(p("Before text", em("italic"), "After text"))
    tr = recreate_transform(d1, d2, RecreateOptions(separate_mark_phase=False))
    assert len(tr.steps) == 1
    step = tr.steps[0]
    assert isinstance(step, ReplaceStep)
    assert (step.from_, step.to) == (12, 18)
    assert tr.doc == d2

    print("PASS: mixed mark mode")


def test_options_accept_plain_dicts():
    """Options may be a dict, a RecreateOptions or None."""
    d1 = doc(p("abc"))
    d2 = doc(p("abd"))
    assert recreate_transform(d1, d2, {"simplify": "off"}).doc == d2
    assert recreate_transform(d1, d2, None).doc == d2
    try:
        recreate_transform(d1, d2, {"simplfy": "off"})
        assert False, "Unknown option names should be rejected"
    except ValueError:
        pass

    description = RecreateOptions.model_fields["simplify"].description
    assert "replaces merging" in description

    print("PASS: options accept plain dicts")


def test_patterns_mode_recognises_sink():
    """Moving a list item into a nested list becomes one replaceAround step."""
    d1 = doc(ul(li(p("abc")), li(p("def"))))
    d2 = doc(ul(li(p("abc"), ul(li(p("def"))))))

    raw = recreate_transform(d1, d2, {"simplify": "off"})
    assert len(raw.steps) == 2

    tr = recreate_transform(d1, d2, {"simplify": "patterns"})
    assert tr.to_json() == [
        {
            "stepType": "replaceAround",
            "from": 7,
            "to": 15,
            "gapFrom": 8,
            "gapTo": 15,
            "insert": 1,
            "slice": {"content": [{"type": "list_item", "content": [{"type": "bullet_list"}]}], "openStart": 1},
            "structure": True,
        }
    ]
    assert _replay(d1, tr.to_json()) == d2

    print("PASS: patterns mode recognises sink")


def test_target_outside_grammar_raises():
    """A target the source grammar cannot reach raises NoValidDiffError."""
    loose = Schema({"doc": {"content": "text*"}, "text": {}})
    d1 = doc(p("x"))
    d2 = loose.node("doc", None, [loose.text("plain")])
    try:
        recreate_transform(d1, d2)
        assert False, "Expected NoValidDiffError"
    except NoValidDiffError as e:
        assert "No valid diff possible" in str(e)

    print("PASS: target outside grammar raises")


def test_target_with_unknown_types_raises():
    """A target using node types the source grammar lacks raises NoValidDiffError."""
    other = Schema({"doc": {"content": "note+"}, "note": {"content": "text*"}, "text": {}})
    d2 = other.node("doc", None, [other.node("note", None, [other.text("hi")])])
    try:
        recreate_transform(doc(p("hi")), d2)
        assert False, "Expected NoValidDiffError"
    except NoValidDiffError:
        pass

    print("PASS: target with unknown types raises")


def test_batch_states():
    """Batch states are plain string enums."""
    assert BatchState.VALIDATED == "VALIDATED"
    assert BatchState("EXHAUSTED") is BatchState.EXHAUSTED

    print("PASS: batch states")


if __name__ == "__main__":
    tests = [
        test_add_em,
        test_remove_strong,
        test_add_em_and_strong,
        test_replace_em_with_strong,
        test_replace_em_with_strong_in_different_parts,
        test_wrap_in_blockquote,
        test_unwrap_blockquote,
        test_change_heading_level,
        test_change_node_type,
        test_single_character_edit,
        test_text_edit_keeps_marks,
        test_identical_documents,
        test_replay_reproduces_target,
        test_type_change_with_incompatible_content,
        test_random_pairs_replay,
        test_granularity_does_not_change_result,
        test_mark_only_changes_give_mark_steps,
        test_mixed_mark_mode,
        test_options_accept_plain_dicts,
        test_patterns_mode_recognises_sink,
        test_target_outside_grammar_raises,
        test_target_with_unknown_types_raises,
        test_batch_states,
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
