#!/usr/bin/env python3

import pytest
from hypothesis import given

from clspformat import Formatter, format_source, serialize
from element import Atom, CommentMap, SExpr, to_list
from errors import GenerationError
from strategies import elements

@given(elements)
def test_compact_round_trip(el):
    assert SExpr.parse(serialize(el)) == el

@given(elements)
def test_formatted_round_trip(el):
    assert SExpr.parse(serialize(el, indent=True, max_line_length=20)) == el

def test_compact_is_one_line():
    el = SExpr.parse("(mod (A b) (if b (x \"no\") (list A b)))")
    assert serialize(el) == '(mod (A b) (if b (x "no") (list A b)))'

def test_long_lists_wrap():
    el = to_list([Atom(10**6 + i) for i in range(30)])
    text = serialize(el, indent=True)
    lines = text.split("\n")
    assert len(lines) > 1
    assert all(len(line) <= 80 for line in lines)
    assert serialize(el, indent=True, max_line_length=1000) == serialize(el)

def test_head_arguments_stay_on_the_first_line():
    el = SExpr.parse("(defun name (a b) (if (= a b) (some-long-function a b a b) (another-function b a b a)))")
    lines = serialize(el, indent=True, max_line_length=40).split("\n")
    assert lines[0] == "(defun name (a b)"
    assert lines[1].startswith("  (if (= a b)")

def test_deep_nesting_goes_multi_line():
    el = SExpr.parse("(a (b (c (d (e)))))")
    assert "\n" in serialize(el, indent=True)
    assert SExpr.parse(serialize(el, indent=True)) == el

def test_comments_survive_formatting():
    text = format_source("; the program\n(mod (a)\n  ; double it\n  (* a 2))")
    assert text.split("\n")[0] == "; the program"
    assert "; double it" in text
    assert SExpr.parse(text) == SExpr.parse("(mod (a) (* a 2))")

def test_keyword_rendering():
    el = SExpr.parse("(2 (1 . 5) 1)")
    assert serialize(el, keywords=True) == "(a (q . 5) 1)"
    assert serialize(el) == "(2 (1 . 5) 1)"

def test_nesting_cap():
    el = Atom(1)
    for _ in range(50):
        el = to_list([el])
    with pytest.raises(GenerationError):
        Formatter(indent=True, max_line_length=10, max_depth=20).serialize(el)

def test_formatter_uses_given_comments():
    el = SExpr.parse("(a b)")
    comments = CommentMap()
    comments.attach(el, "note")
    assert serialize(el, indent=True, comments=comments) == "; note\n(a b)"
