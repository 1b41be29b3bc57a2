#!/usr/bin/env python3

import logging
import os
import re
import threading
from dataclasses import dataclass
from typing import Optional

from verystable.core import segwit_addr

from element import SExpr, SYMBOL
from treehash import hexhash

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = "xch"

@dataclass(frozen=True)
class IncludeFile:
    path: str
    constants: tuple = ()
    functions: tuple = ()
    macros: tuple = ()

    def provides(self, name):
        return name in self.constants or name in self.functions or name in self.macros

INCLUDES = [
    IncludeFile("condition_codes.clib", constants=(
        "REMARK", "AGG_SIG_PARENT", "AGG_SIG_PUZZLE", "AGG_SIG_AMOUNT",
        "AGG_SIG_PUZZLE_AMOUNT", "AGG_SIG_PARENT_AMOUNT", "AGG_SIG_PARENT_PUZZLE",
        "AGG_SIG_UNSAFE", "AGG_SIG_ME", "CREATE_COIN", "RESERVE_FEE",
        "CREATE_COIN_ANNOUNCEMENT", "ASSERT_COIN_ANNOUNCEMENT",
        "CREATE_PUZZLE_ANNOUNCEMENT", "ASSERT_PUZZLE_ANNOUNCEMENT",
        "ASSERT_CONCURRENT_SPEND", "ASSERT_CONCURRENT_PUZZLE",
        "SEND_MESSAGE", "RECEIVE_MESSAGE",
        "ASSERT_MY_COIN_ID", "ASSERT_MY_PARENT_ID", "ASSERT_MY_PUZZLEHASH",
        "ASSERT_MY_AMOUNT", "ASSERT_MY_BIRTH_SECONDS", "ASSERT_MY_BIRTH_HEIGHT",
        "ASSERT_EPHEMERAL", "ASSERT_SECONDS_RELATIVE", "ASSERT_SECONDS_ABSOLUTE",
        "ASSERT_HEIGHT_RELATIVE", "ASSERT_HEIGHT_ABSOLUTE",
        "ASSERT_BEFORE_SECONDS_RELATIVE", "ASSERT_BEFORE_SECONDS_ABSOLUTE",
        "ASSERT_BEFORE_HEIGHT_RELATIVE", "ASSERT_BEFORE_HEIGHT_ABSOLUTE",
        "SOFTFORK")),
    IncludeFile("sha256tree.clib", functions=("sha256tree",)),
    IncludeFile("curry-and-treehash.clinc",
        constants=("ONE", "TWO", "A_KW", "Q_KW", "C_KW"),
        functions=("update-hash-for-parameter-hash", "build-curry-list",
                   "tree-hash-of-apply", "puzzle-hash-of-curried-function")),
    IncludeFile("utility_macros.clib", macros=("assert", "or", "and")),
    IncludeFile("singleton_truths.clib", functions=(
        "truth_data_to_truth_struct", "my_id_truth", "my_full_puzzle_hash_truth",
        "my_inner_puzzle_hash_truth", "my_amount_truth", "my_lineage_proof_truth",
        "singleton_struct_truth", "singleton_mod_hash_truth",
        "singleton_launcher_id_truth", "singleton_launcher_puzzle_hash_truth",
        "parent_info_for_lineage_proof", "puzzle_hash_for_lineage_proof",
        "amount_for_lineage_proof", "is_not_eve_proof",
        "parent_info_for_eve_proof", "amount_for_eve_proof")),
    IncludeFile("cat_truths.clib", functions=(
        "cat_truth_data_to_truth_struct", "my_inner_puzzle_hash_cat_truth",
        "cat_struct_truth", "my_id_cat_truth", "my_coin_info_truth",
        "my_amount_cat_truth", "my_full_puzzle_hash_cat_truth",
        "my_parent_cat_truth", "cat_mod_hash_truth", "cat_mod_hash_hash_truth",
        "cat_tail_program_hash_truth")),
    IncludeFile("opcodes.clib", constants=(
        "QUOTE", "APPLY", "IF", "CONS", "FIRST", "REST", "LISTP", "RAISE", "EQ",
        "ADD", "SUBTRACT", "MULTIPLY", "DIVIDE", "DIVMOD", "GT", "GTS",
        "ASH", "LSH", "LOGAND", "LOGIOR", "LOGXOR", "LOGNOT",
        "SHA256", "SUBSTR", "STRLEN", "CONCAT", "NOT", "ANY", "ALL")),
]
INCLUDE_INDEX = {inc.path: inc for inc in INCLUDES}

def include_for(vm_name):
    """the include file providing a function, macro or constant"""
    for inc in INCLUDES:
        if inc.provides(vm_name):
            return inc.path
    return None

def camel_case(name):
    parts = [p for p in re.split(r"[-_]", name) if p]
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])

def _Do_LIBRARY_FUNCTIONS():
    funcs = {}
    for inc in INCLUDES:
        for name in inc.functions + inc.macros:
            for alias in (name, camel_case(name)):
                assert alias not in funcs or funcs[alias][0] == name
                funcs[alias] = (name, inc.path)
    return funcs
LIBRARY_FUNCTIONS = _Do_LIBRARY_FUNCTIONS()

def library_function(author_name):
    """(vm name, include path) for a library function callable from source"""
    return LIBRARY_FUNCTIONS.get(author_name)

####

@dataclass(frozen=True)
class ReferenceProgram:
    name: str
    source: str
    tree: object
    curry_params: tuple
    solution_params: tuple
    rest_param: Optional[str] = None

    @property
    def mod_hash(self):
        return self.tree.tree_hash()

    @property
    def mod_hash_hex(self):
        return hexhash(self.mod_hash)

def is_curry_name(name):
    return any(ch.isalpha() for ch in name) and name == name.upper()

def program_params(tree):
    """split a (mod PARAMS ...) parameter list into curried and solution names"""
    items = tree.as_list()
    if not items or len(items) < 2 or not items[0].is_atom() or items[0].atom != b"mod":
        return (), (), None
    names = []
    params = items[1]
    while params.is_cons():
        p = params.first
        names.append(p.as_str() if p.is_atom() and p.hint == SYMBOL else str(p))
        params = params.rest
    rest = params.as_str() if not params.is_nil() and params.hint == SYMBOL else None
    curried = []
    for n in names:
        if not is_curry_name(n):
            break
        curried.append(n)
    return tuple(curried), tuple(names[len(curried):]), rest

class ProgramLibrary:
    """reference programs by name, parsed and hashed once per process"""
    SUFFIXES = ("", ".clsp", ".clvm", ".clib", ".clinc", ".cl")

    def __init__(self, loader):
        self._loader = loader
        self._cache = {}
        self._lock = threading.Lock()

    @classmethod
    def from_mapping(cls, sources):
        sources = dict(sources)
        def load(name):
            if name not in sources:
                raise KeyError(f"unknown reference program {name}")
            return sources[name]
        return cls(load)

    @classmethod
    def from_directory(cls, path):
        def load(name):
            for suffix in cls.SUFFIXES:
                fn = os.path.join(path, name + suffix)
                if os.path.isfile(fn):
                    with open(fn, encoding="utf8") as f:
                        return f.read()
            raise KeyError(f"unknown reference program {name}")
        return cls(load)

    def load(self, name):
        prog = self._cache.get(name)
        if prog is not None:
            return prog
        logger.debug("loading reference program %s", name)
        source = self._loader(name)
        prog = self.parse_program(name, source)
        with self._lock:
            self._cache[name] = prog
        return prog

    def __contains__(self, name):
        try:
            self.load(name)
        except KeyError:
            return False
        return True

    def mod_hash(self, name):
        return self.load(name).mod_hash

    @staticmethod
    def parse_program(name, source):
        els = SExpr.parse(source, many=True)
        if not els:
            raise ValueError(f"reference program {name} is empty")
        tree = els[0]
        curried, solution, rest = program_params(tree)
        return ReferenceProgram(name, source, tree, curried, solution, rest)

####

class AddressCodec:
    """bech32m addresses <-> 32 byte puzzle hashes"""
    def __init__(self, prefix=ADDRESS_PREFIX):
        self.prefix = prefix

    def is_address(self, s):
        return isinstance(s, str) and s.lower().startswith(self.prefix + "1")

    def decode(self, address):
        encoding, hrp, data = segwit_addr.bech32_decode(address)
        if data is None:
            raise ValueError(f"invalid address {address}")
        if encoding != segwit_addr.Encoding.BECH32M:
            raise ValueError(f"address {address} is not bech32m")
        if hrp != self.prefix:
            raise ValueError(f"address prefix {hrp} is not {self.prefix}")
        decoded = segwit_addr.convertbits(data, 5, 8, False)
        if decoded is None or len(decoded) != 32:
            raise ValueError(f"address {address} does not hold a 32 byte puzzle hash")
        return bytes(decoded)

    def try_decode(self, s):
        """the puzzle hash for a valid address, None for any other text"""
        if not self.is_address(s):
            return None
        try:
            return self.decode(s)
        except ValueError:
            return None

    def encode(self, puzzle_hash):
        if len(puzzle_hash) != 32:
            raise ValueError("puzzle hashes are 32 bytes")
        data = segwit_addr.convertbits(list(puzzle_hash), 8, 5, True)
        return segwit_addr.bech32_encode(segwit_addr.Encoding.BECH32M, self.prefix, data)
