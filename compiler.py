#!/usr/bin/env python3

import logging
from dataclasses import dataclass, field
from typing import Optional

from actions import ActionMerkleTree, StateManager
from builder import SolutionBuilder
from clspformat import DEFAULT_LINE_LENGTH, MAX_DEPTH
from cscheck import BYTES32, SymbolKind, analyze, category
from csast import Identifier, Literal
from csgen import AUTO, DIRECT, DISPATCH, MERKLE, MOD_HASH, ACTION_MERKLE_ROOT, generate
from csparse import parse
from element import Atom, Cons, Element, nil, one
from errors import GenerationError
from library import AddressCodec
from treehash import curry, curried_puzzle_hash, hexhash

logger = logging.getLogger(__name__)

SINGLETON_MOD = "singleton_top_layer_v1_1"
SINGLETON_LAUNCHER = "singleton_launcher"

@dataclass
class CompileOptions:
    dispatch: str = AUTO
    indent: bool = True
    max_line_length: int = DEFAULT_LINE_LENGTH
    storage_values: dict = field(default_factory=dict)
    library: Optional[object] = None
    address_codec: Optional[AddressCodec] = None
    max_depth: int = MAX_DEPTH

    @property
    def codec(self):
        return self.address_codec or AddressCodec()

def value_element(v, codec):
    """compile time value for a curried parameter"""
    if isinstance(v, Element):
        return v
    if v is None:
        return nil
    if isinstance(v, bool):
        return one if v else nil
    if isinstance(v, int):
        return Atom(v)
    if isinstance(v, (bytes, bytearray)):
        return Atom(bytes(v))
    if isinstance(v, str):
        decoded = codec.try_decode(v)
        if decoded is not None:
            return Atom(decoded)
        if v.startswith("0x"):
            h = v[2:]
            return Atom(bytes.fromhex(h if len(h) % 2 == 0 else "0" + h))
        return Atom.string(v)
    raise TypeError(f"cannot curry a {type(v).__name__}")

@dataclass
class CompiledProgram:
    name: str
    mode: str
    mod: Element
    source: str
    curried: list
    signatures: dict
    state_schema: list
    includes: list
    action_mods: dict = field(default_factory=dict)
    action_sources: dict = field(default_factory=dict)
    action_tree: Optional[ActionMerkleTree] = None
    storage: list = field(default_factory=list)
    launcher_id: Optional[bytes] = None
    library: Optional[object] = None
    codec: AddressCodec = field(default_factory=AddressCodec)

    @property
    def mod_hash(self):
        return self.mod.tree_hash()

    @property
    def mod_hash_hex(self):
        return hexhash(self.mod_hash)

    @property
    def curried_names(self):
        return [n for n, _ in self.curried]

    @property
    def curried_values(self):
        return [v for _, v in self.curried]

    @property
    def puzzle(self):
        return curry(self.mod, *self.curried_values)

    @property
    def puzzle_hash(self):
        return curried_puzzle_hash(self.mod_hash, *[v.tree_hash() for v in self.curried_values])

    @property
    def puzzle_hash_hex(self):
        return hexhash(self.puzzle_hash)

    @property
    def solution_params(self):
        if self.mode == DIRECT:
            return next(iter(self.signatures.values())).template
        if self.mode == DISPATCH:
            return ("action", "args")
        return ("action_name", "action_puzzle", "action_solution", "proof")

    def action_params(self, name):
        return self.signature(name).template

    def signature(self, name):
        if name is None:
            if self.mode == DIRECT:
                return next(iter(self.signatures.values()))
            name = "default"
        if name not in self.signatures:
            raise KeyError(f"{self.name} has no action {name}")
        return self.signatures[name]

    def state_manager(self, strict=False):
        return StateManager(self.state_schema, strict=strict)

    def action_puzzle(self, name):
        if name not in self.action_mods:
            raise KeyError(f"{self.name} has no merkle action {name}")
        return curry(self.action_mods[name], *[v for _, v in self.storage])

    def action_puzzle_hash(self, name):
        mod = self.action_mods[name]
        return curried_puzzle_hash(mod.tree_hash(), *[v.tree_hash() for _, v in self.storage])

    def _arg(self, v):
        decoded = self.codec.try_decode(v) if isinstance(v, str) else None
        return v if decoded is None else Atom(decoded)

    def solution(self, action=None, *args, signer=None, amount=None, state=None):
        sig = self.signature(action)
        if len(args) != len(sig.params):
            raise ValueError(f"action {sig.name} takes {len(sig.params)} argument(s), got {len(args)}")
        values = [self._arg(a) for a in args]
        for wanted, v, what in ((sig.signer, signer, "signer"), (sig.amount, amount, "amount")):
            if wanted:
                if v is None:
                    raise ValueError(f"action {sig.name} needs a {what}")
                values.append(self._arg(v))
        inner = SolutionBuilder()
        if self.mode == DISPATCH:
            inner.add_action(None if action is None else sig.name, *values)
        else:
            inner.add(*values)
        if sig.stateful:
            if state is None:
                raise ValueError(f"action {sig.name} needs the current state")
            inner.add_state(self.state_manager(), state)
        if self.mode != MERKLE:
            return inner
        return (SolutionBuilder()
                .add(sig.name, self.action_puzzle(sig.name), inner)
                .add_merkle_proof(self.action_tree.proof(sig.name)))

    def singleton_puzzle_hash(self, library=None):
        """full singleton puzzle hash, when the library has the singleton programs"""
        library = library if library is not None else self.library
        if library is None or self.launcher_id is None:
            return None
        if SINGLETON_MOD not in library or SINGLETON_LAUNCHER not in library:
            return None
        mod_hash = library.mod_hash(SINGLETON_MOD)
        struct = Cons(Atom(mod_hash), Cons(Atom(self.launcher_id), Atom(library.mod_hash(SINGLETON_LAUNCHER))))
        return curried_puzzle_hash(mod_hash, struct.tree_hash(), self.puzzle_hash)

def storage_values(analysis, options):
    overrides = dict(options.storage_values)
    codec = options.codec
    values = []
    for s in analysis.storage():
        if s.name in overrides:
            el = value_element(overrides.pop(s.name), codec)
        elif s.node.init is not None:
            el = gen_literal(s.node.init, codec)
        else:
            logger.warning("no value for storage variable %s, using zero", s.name)
            el = Atom(bytes(32)) if category(s.type) == BYTES32 else nil
        if category(s.type) == BYTES32 and not (el.is_atom() and len(el.atom) == 32):
            raise GenerationError(f"storage variable {s.name} needs a 32 byte value", s.pos)
        values.append((s.vm_name, el))
    for name in overrides:
        logger.warning("ignoring value for unknown storage variable %s", name)
    return values

def gen_literal(e, codec):
    if e.kind == "bool":
        return one if e.value else nil
    if e.kind == "string":
        decoded = codec.try_decode(e.value)
        return Atom.string(e.value) if decoded is None else Atom(decoded)
    return Atom(e.value)

def launcher_id(analysis, storage, codec):
    e = analysis.launcher_id
    if e is None:
        return None
    if isinstance(e, Literal):
        return gen_literal(e, codec).atom
    assert isinstance(e, Identifier)
    s = analysis.symbol(e.name)
    if s.kind == SymbolKind.CONSTANT:
        return gen_literal(s.node.value, codec).atom
    return dict(storage)[s.vm_name].atom

def compile_coinscript(source, options=None):
    """CoinScript source to a compiled, curried Chialisp program"""
    options = options or CompileOptions()
    codec = options.codec
    logger.debug("parsing %d characters", len(source))
    coin = parse(source)
    logger.debug("analyzing coin %s", coin.name)
    analysis = analyze(coin, codec)
    gen = generate(analysis, options.dispatch, codec, options.max_depth)
    storage = storage_values(analysis, options)

    def render(pb):
        return pb.serialize(indent=options.indent, max_line_length=options.max_line_length)

    mod = gen.main.build()
    action_mods, action_sources, tree = {}, {}, None
    if gen.mode == MERKLE:
        tree = ActionMerkleTree()
        for name, pb in gen.action_mods.items():
            action_mods[name] = pb.build()
            action_sources[name] = render(pb)
            tree.add(name, curried_puzzle_hash(action_mods[name].tree_hash(), *[v.tree_hash() for _, v in storage]))
        curried = [(ACTION_MERKLE_ROOT, Atom(tree.root()))]
        logger.debug("action merkle root %s", tree.root_hex())
    else:
        curried = list(storage)
    if analysis.has_state:
        curried.insert(0, (MOD_HASH, Atom(mod.tree_hash())))

    prog = CompiledProgram(
        name=coin.name,
        mode=gen.mode,
        mod=mod,
        source=render(gen.main),
        curried=curried,
        signatures=gen.signatures,
        state_schema=[(v.name, str(v.type)) for v in coin.state_vars],
        includes=gen.main.includes(),
        action_mods=action_mods,
        action_sources=action_sources,
        action_tree=tree,
        storage=storage,
        launcher_id=launcher_id(analysis, storage, codec),
        library=options.library,
        codec=codec,
    )
    logger.debug("compiled %s: mod hash %s", prog.name, prog.mod_hash_hex)
    return prog

def compile_file(path, options=None):
    with open(path, encoding="utf8") as f:
        return compile_coinscript(f.read(), options)
