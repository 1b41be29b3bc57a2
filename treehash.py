#!/usr/bin/env python3

from element import Atom, Cons, Element, nil, one, sha256, to_list

# opcode atoms used by the curry wrapper
OP_Q = Atom(1)
OP_A = Atom(2)
OP_C = Atom(4)

def atom_hash(b):
    return sha256(b'\x01', b)

def pair_hash(first, rest):
    return sha256(b'\x02', first, rest)

NIL_HASH = atom_hash(b'')
ONE_HASH = atom_hash(b'\x01')
Q_HASH = atom_hash(OP_Q.atom)
A_HASH = atom_hash(OP_A.atom)
C_HASH = atom_hash(OP_C.atom)

def sha256tree(el):
    return el.tree_hash()

def hexhash(h):
    return "0x" + h.hex()

def unhexhash(s):
    if isinstance(s, bytes):
        return s
    if s.startswith("0x"):
        s = s[2:]
    b = bytes.fromhex(s)
    if len(b) != 32:
        raise ValueError(f"expected a 32 byte hash, got {len(b)} bytes")
    return b

def curry(mod, *args):
    """(a (q . mod) (c (q . arg1) (c (q . arg2) ... 1)))"""
    env = one
    for arg in reversed(args):
        assert isinstance(arg, Element)
        env = to_list([OP_C, Cons(OP_Q, arg), env])
    return to_list([OP_A, Cons(OP_Q, mod), env])

def uncurry(el):
    """inverse of curry: (mod, [args]) or None if el is not curried"""
    parts = el.as_list()
    if parts is None or len(parts) != 3 or parts[0] != OP_A:
        return None
    quoted = parts[1]
    if not quoted.is_cons() or quoted.first != OP_Q:
        return None
    args = []
    env = parts[2]
    while env != one:
        step = env.as_list()
        if step is None or len(step) != 3 or step[0] != OP_C:
            return None
        q = step[1]
        if not q.is_cons() or q.first != OP_Q:
            return None
        args.append(q.rest)
        env = step[2]
    return quoted.rest, args

def curried_values_hash(*arg_hashes):
    """hash of the environment built by curry, given hashes of its arguments"""
    env = ONE_HASH
    for h in reversed(arg_hashes):
        quoted = pair_hash(Q_HASH, h)
        env = pair_hash(C_HASH, pair_hash(quoted, pair_hash(env, NIL_HASH)))
    return env

def curried_puzzle_hash(mod_hash, *arg_hashes):
    """sha256tree(curry(mod, *args)) from sha256tree of mod and of each arg"""
    env = curried_values_hash(*arg_hashes)
    quoted_mod = pair_hash(Q_HASH, mod_hash)
    return pair_hash(A_HASH, pair_hash(quoted_mod, pair_hash(env, NIL_HASH)))
