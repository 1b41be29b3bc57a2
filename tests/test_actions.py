#!/usr/bin/env python3

import pytest
from hypothesis import given, strategies as st

from actions import (EMPTY_ROOT, ActionMerkleTree, FieldChange, StateManager, StatefulCoinManager,
                     action_leaf, parse_type, verify_proof)
from element import Atom, Cons, nil, to_list
from errors import MerkleProofError
from strategies import hashes
from treehash import atom_hash

names = st.lists(st.text(alphabet="abcdefghijklmnop_", min_size=1, max_size=8), min_size=1, max_size=12, unique=True)

def tree_of(ns, hs):
    return ActionMerkleTree({n: h for n, h in zip(ns, hs)})

@given(names, st.lists(hashes, min_size=12, max_size=12))
def test_every_proof_verifies(ns, hs):
    tree = tree_of(ns, hs)
    root = tree.root()
    for n in ns:
        assert tree.verify(n, tree.proof(n), root)
        assert verify_proof(tree.leaf(n), tree.proof(n), root)

@given(names, st.lists(hashes, min_size=12, max_size=12), st.data())
def test_altered_proofs_fail(ns, hs, data):
    tree = tree_of(ns, hs)
    name = data.draw(st.sampled_from(ns))
    proof = tree.proof(name)
    if not proof:
        return
    i = data.draw(st.integers(0, len(proof) - 1))
    bit = data.draw(st.integers(0, 255))
    bad = bytearray(proof[i])
    bad[bit // 8] ^= 1 << (bit % 8)
    proof[i] = bytes(bad)
    assert not tree.verify(name, proof, tree.root())

@given(names, st.lists(hashes, min_size=12, max_size=12), st.data())
def test_altered_leaf_fails(ns, hs, data):
    tree = tree_of(ns, hs)
    name = data.draw(st.sampled_from(ns))
    bit = data.draw(st.integers(0, 255))
    leaf = bytearray(tree.leaf(name))
    leaf[bit // 8] ^= 1 << (bit % 8)
    assert not verify_proof(bytes(leaf), tree.proof(name), tree.root())

def test_leaf_is_tree_hash_of_pair():
    h = b"\x01" * 32
    assert action_leaf("go", h) == Cons(Atom.string("go"), Atom(h)).tree_hash()

def test_small_trees():
    assert ActionMerkleTree().root() == EMPTY_ROOT
    h = b"\x05" * 32
    tree = ActionMerkleTree({"only": h})
    assert tree.root() == action_leaf("only", h)
    assert tree.proof("only") == []
    assert "only" in tree and len(tree) == 1

def test_tree_rejects_bad_input():
    tree = ActionMerkleTree({"a": b"\x01" * 32})
    with pytest.raises(ValueError):
        tree.add("a", b"\x02" * 32)
    with pytest.raises(ValueError):
        tree.add("b", b"\x02" * 31)
    with pytest.raises(KeyError):
        tree.proof("b")
    assert not tree.verify("b", [], tree.root())

def test_check_raises():
    tree = ActionMerkleTree({"a": b"\x01" * 32, "b": b"\x02" * 32})
    tree.check("a", tree.proof("a"), tree.root())
    with pytest.raises(MerkleProofError):
        tree.check("a", tree.proof("b"), tree.root())

def test_adding_changes_root():
    tree = ActionMerkleTree({"a": b"\x01" * 32, "b": b"\x02" * 32})
    before = tree.root()
    tree.add("c", b"\x03" * 32)
    assert tree.root() != before
    assert tree.names() == ["a", "b", "c"]

####

SCHEMA = [("count", "uint64"), ("owner", "address"), ("balances", "mapping(address => uint64)"),
          ("open", "bool"), ("label", "string")]

def test_parse_type():
    assert parse_type("uint64") == ("uint",)
    assert parse_type("int8") == ("int",)
    assert parse_type("mapping(address=>uint256)") == ("mapping", ("address",), ("uint",))
    with pytest.raises(ValueError):
        parse_type("float")

def test_state_round_trip():
    sm = StateManager(SCHEMA)
    values = {"count": 7, "owner": b"\x11" * 32, "balances": {b"\x22" * 32: 5}, "open": True, "label": "hi"}
    payload = sm.encode(values)
    assert len(payload.as_list()) == 5
    assert payload.as_list()[0] == Atom(7)
    assert sm.decode(payload) == values
    assert sm.hash(values) == payload.tree_hash()

def test_state_defaults(caplog):
    sm = StateManager(SCHEMA)
    payload = sm.encode({"count": 1, "colour": "red"})
    assert "defaulting state fields owner" in caplog.text
    assert "colour" in caplog.text
    decoded = sm.decode(payload)
    assert decoded["owner"] == bytes(32)
    assert decoded["balances"] == {}
    assert decoded["open"] is False

def test_strict_state():
    sm = StateManager(SCHEMA, strict=True)
    with pytest.raises(KeyError):
        sm.encode({"count": 1})

def test_bad_state_values():
    sm = StateManager([("count", "uint64")])
    with pytest.raises(ValueError):
        sm.encode({"count": -1})
    with pytest.raises(ValueError):
        sm.encode({"count": "one"})
    with pytest.raises(ValueError):
        sm.decode(to_list([Atom(1), Atom(2)]))
    with pytest.raises(ValueError):
        StateManager([("a", "uint8"), ("a", "bool")])

def test_state_diff():
    sm = StateManager([("count", "uint64"), ("open", "bool")])
    assert sm.diff({"count": 1, "open": True}, {"count": 2, "open": True}) == [FieldChange("count", 1, 2)]

def test_coin_manager_tracks_lineage():
    mgr = StatefulCoinManager([("count", "uint64")], {"count": 3})
    sol = mgr.prepare_solution("increment", 2, extra=[1]).build().as_list()
    assert sol[0].as_str() == "increment"
    assert sol[1].as_int() == 2
    assert sol[2].as_int() == 1
    assert sol[3] == to_list([Atom(3)])
    assert mgr.advance(count=5) == [FieldChange("count", 3, 5)]
    assert mgr.current.version == 1
    assert len(mgr.history) == 2
    assert mgr.payload() == to_list([Atom(5)])

def test_coin_manager_without_dispatch():
    mgr = StatefulCoinManager([("count", "uint64")], {"count": 0}, dispatch=False)
    sol = mgr.prepare_solution("ignored", 4).build().as_list()
    assert sol[0].as_int() == 4
    assert sol[1] == to_list([nil])
    assert atom_hash(b"") == nil.tree_hash()
