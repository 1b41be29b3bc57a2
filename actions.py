#!/usr/bin/env python3

import logging
import re
from dataclasses import dataclass

from builder import SolutionBuilder
from element import Atom, Cons, nil, one, sha256, to_list
from errors import MerkleProofError
from treehash import atom_hash, hexhash, pair_hash

logger = logging.getLogger(__name__)

EMPTY_ROOT = bytes(32)

def action_leaf(name, program_hash):
    """tree hash of (name . program_hash)"""
    return pair_hash(atom_hash(name.encode('utf8')), atom_hash(program_hash))

def merkle_parent(a, b):
    if a > b:
        a, b = b, a
    return sha256(a, b)

def _check_hash(h, what):
    if not isinstance(h, (bytes, bytearray)) or len(h) != 32:
        raise ValueError(f"{what} must be a 32 byte hash")

def verify_proof(leaf, proof, root):
    """needs only the leaf, the sibling path and the claimed root"""
    _check_hash(leaf, "leaf")
    _check_hash(root, "root")
    cur = bytes(leaf)
    for sib in proof:
        _check_hash(sib, "proof element")
        cur = merkle_parent(cur, bytes(sib))
    return cur == bytes(root)

class ActionMerkleTree:
    def __init__(self, actions=None):
        self._leaves = []
        self._index = {}
        self._levels = None
        for name, h in (actions or {}).items():
            self.add(name, h)

    def add(self, name, program_hash):
        if name in self._index:
            raise ValueError(f"duplicate action {name}")
        _check_hash(program_hash, "program hash")
        self._index[name] = len(self._leaves)
        self._leaves.append((name, bytes(program_hash), action_leaf(name, bytes(program_hash))))
        self._levels = None
        return self

    def __len__(self):
        return len(self._leaves)

    def __contains__(self, name):
        return name in self._index

    def names(self):
        return [n for n, _, _ in self._leaves]

    def program_hash(self, name):
        return self._leaves[self._lookup(name)][1]

    def leaf(self, name):
        return self._leaves[self._lookup(name)][2]

    def _lookup(self, name):
        if name not in self._index:
            raise KeyError(f"unknown action {name}")
        return self._index[name]

    def _build(self):
        if self._levels is None:
            level = [leaf for _, _, leaf in self._leaves]
            levels = [level]
            while len(level) > 1:
                nxt = [merkle_parent(level[i], level[i+1]) for i in range(0, len(level) - 1, 2)]
                if len(level) % 2:
                    nxt.append(level[-1])
                levels.append(nxt)
                level = nxt
            self._levels = levels
        return self._levels

    def root(self):
        if not self._leaves:
            return EMPTY_ROOT
        return self._build()[-1][0]

    def root_hex(self):
        return hexhash(self.root())

    def proof(self, name):
        idx = self._lookup(name)
        path = []
        for level in self._build()[:-1]:
            sib = idx ^ 1
            if sib < len(level):
                path.append(level[sib])
            idx //= 2
        return path

    def verify(self, name, proof, root):
        if name not in self._index:
            return False
        return verify_proof(self.leaf(name), proof, root)

    def check(self, name, proof, root):
        if not self.verify(name, proof, root):
            raise MerkleProofError(f"proof for action {name} does not match root {hexhash(bytes(root))}")

####

re_mapping = re.compile(r"^mapping\s*\(\s*(\w+)\s*=>\s*(\w+)\s*\)$")

INT_TYPES = {f"uint{n}" for n in range(8, 257, 8)} | {f"int{n}" for n in range(8, 257, 8)} | {"uint", "int"}

def parse_type(t):
    t = str(t).strip()
    m = re_mapping.match(t)
    if m:
        return ("mapping", parse_type(m.group(1)), parse_type(m.group(2)))
    if t in INT_TYPES:
        return ("uint",) if t.startswith("u") else ("int",)
    if t in ("bool", "address", "bytes32", "bytes", "string"):
        return (t,)
    raise ValueError(f"unsupported state type {t}")

def zero_value(ty):
    kind = ty[0]
    if kind in ("uint", "int"):
        return 0
    if kind == "bool":
        return False
    if kind in ("address", "bytes32"):
        return bytes(32)
    if kind == "bytes":
        return b''
    if kind == "string":
        return ""
    return {}

def encode_value(ty, v):
    kind = ty[0]
    if kind in ("uint", "int"):
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError(f"expected an integer, got {v!r}")
        if kind == "uint" and v < 0:
            raise ValueError(f"negative value {v} for unsigned field")
        return Atom(v)
    if kind == "bool":
        return one if v else nil
    if kind in ("address", "bytes32"):
        if isinstance(v, str):
            v = bytes.fromhex(v[2:] if v.startswith("0x") else v)
        if len(v) != 32:
            raise ValueError(f"{kind} values are 32 bytes")
        return Atom(bytes(v))
    if kind == "bytes":
        return Atom(bytes(v))
    if kind == "string":
        return Atom.string(v)
    return to_list([Cons(encode_value(ty[1], k), encode_value(ty[2], val)) for k, val in dict(v).items()])

def decode_value(ty, el):
    kind = ty[0]
    if kind == "mapping":
        pairs = el.as_list()
        if pairs is None:
            raise ValueError("mapping payload is not a list")
        res = {}
        for p in pairs:
            if not p.is_cons():
                raise ValueError("mapping entries are (key . value) pairs")
            res[decode_value(ty[1], p.first)] = decode_value(ty[2], p.rest)
        return res
    if not el.is_atom():
        raise ValueError(f"expected an atom for {kind}")
    if kind in ("uint", "int"):
        return el.as_int()
    if kind == "bool":
        return not el.is_nil()
    if kind in ("address", "bytes32"):
        if len(el.atom) != 32:
            raise ValueError(f"{kind} values are 32 bytes")
        return el.atom
    if kind == "bytes":
        return el.atom
    return el.as_str()

@dataclass(frozen=True)
class FieldChange:
    name: str
    old: object
    new: object

class StateManager:
    """schema ordered state payloads"""

    def __init__(self, schema, strict=False):
        self.schema = [(name, str(t)) for name, t in schema]
        self.types = {name: parse_type(t) for name, t in self.schema}
        if len(self.types) != len(self.schema):
            raise ValueError("duplicate state field")
        self.strict = strict

    def field_names(self):
        return [n for n, _ in self.schema]

    def defaults(self):
        return {n: zero_value(self.types[n]) for n, _ in self.schema}

    def _complete(self, values):
        unknown = [k for k in values if k not in self.types]
        missing = [n for n, _ in self.schema if n not in values]
        if self.strict and (unknown or missing):
            raise KeyError(f"state fields missing {missing} unknown {unknown}")
        if unknown:
            logger.warning("ignoring unknown state fields %s", ", ".join(unknown))
        if missing:
            logger.warning("defaulting state fields %s to zero", ", ".join(missing))
        res = self.defaults()
        res.update((k, v) for k, v in values.items() if k in self.types)
        return res

    def encode(self, values):
        full = self._complete(dict(values))
        return to_list([encode_value(self.types[n], full[n]) for n, _ in self.schema])

    def decode(self, payload):
        items = payload.as_list()
        if items is None or len(items) != len(self.schema):
            raise ValueError(f"state payload must be a list of {len(self.schema)} fields")
        return {n: decode_value(self.types[n], el) for (n, _), el in zip(self.schema, items)}

    def diff(self, old, new):
        old = self._complete(dict(old))
        new = self._complete(dict(new))
        return [FieldChange(n, old[n], new[n]) for n, _ in self.schema if old[n] != new[n]]

    def hash(self, values):
        return self.encode(values).tree_hash()

@dataclass(frozen=True)
class CoinState:
    values: dict
    version: int = 0

    def evolve(self, **changes):
        v = dict(self.values)
        v.update(changes)
        return CoinState(v, self.version + 1)

class StatefulCoinManager:
    """tracks the state of one coin lineage and prepares its spends"""

    def __init__(self, schema, initial=None, dispatch=True):
        self.state = StateManager(schema)
        self.dispatch = dispatch
        self.current = CoinState(self.state._complete(dict(initial or {})))
        self.history = [self.current]

    def payload(self):
        return self.state.encode(self.current.values)

    def prepare_solution(self, action, *args, extra=()):
        sb = SolutionBuilder()
        if self.dispatch:
            sb.add_action(action, *args)
        else:
            sb.add(*args)
        sb.add(*extra)
        return sb.add_state(self.state, self.current.values)

    def advance(self, **changes):
        """record the state a spend produced, returning what changed"""
        nxt = self.current.evolve(**changes)
        changed = self.state.diff(self.current.values, nxt.values)
        self.current = nxt
        self.history.append(nxt)
        return changed
