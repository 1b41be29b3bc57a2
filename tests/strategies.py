#!/usr/bin/env python3

from hypothesis import strategies as st

from element import Atom, Cons, to_list

int_atoms = st.integers(min_value=-2**70, max_value=2**70).map(Atom)
byte_atoms = st.binary(max_size=40).map(Atom)
symbol_atoms = st.from_regex(r"\A[a-z_<>=+*/-][a-z0-9_<>=+*/-]{0,10}\Z").map(Atom.symbol)
string_atoms = st.text(max_size=20).map(Atom.string)
atoms = st.one_of(int_atoms, byte_atoms, symbol_atoms, string_atoms)

def _extend(children):
    return st.one_of(
        st.lists(children, max_size=6).map(to_list),
        st.tuples(children, children).map(lambda p: Cons(*p)),
    )

elements = st.recursive(atoms, _extend, max_leaves=40)

hashes = st.binary(min_size=32, max_size=32)
