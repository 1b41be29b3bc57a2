#!/usr/bin/env python3

import pytest
from hypothesis import given
from hypothesis import strategies as st

from element import Atom, SExpr, nil, one, to_list
from treehash import (NIL_HASH, curried_puzzle_hash, curried_values_hash, curry, hexhash,
                      sha256tree, uncurry, unhexhash)
from strategies import elements

@given(elements, st.lists(elements, max_size=5))
def test_curried_hash_matches_materialized_curry(mod, args):
    assert curried_puzzle_hash(sha256tree(mod), *[sha256tree(a) for a in args]) == sha256tree(curry(mod, *args))

@given(elements, st.lists(elements, max_size=5))
def test_uncurry_inverts_curry(mod, args):
    got_mod, got_args = uncurry(curry(mod, *args))
    assert got_mod == mod
    assert got_args == args

def test_curry_shape():
    prog = curry(SExpr.parse("(+ 2 5)"), Atom(7))
    assert str(prog) == "(2 (1 + 2 5) (4 (1 . 7) 1))"
    assert curried_values_hash() == one.tree_hash()

def test_uncurry_rejects_other_shapes():
    assert uncurry(nil) is None
    assert uncurry(SExpr.parse("(a (q . 1) 1)")) is None
    assert uncurry(SExpr.parse("(2 (1 . 1) (4 (1 . 5) 2))")) is None

def test_hex_helpers():
    h = NIL_HASH
    assert unhexhash(hexhash(h)) == h
    assert unhexhash(h.hex()) == h
    with pytest.raises(ValueError):
        unhexhash("0x1234")
    assert sha256tree(to_list([])) == NIL_HASH
