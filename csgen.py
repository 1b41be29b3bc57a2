#!/usr/bin/env python3

import logging
from dataclasses import dataclass, field

from builder import (PuzzleBuilder, call, condition, cons_condition, fail_node, if_node, sym,
                     Expr)
from clspformat import MAX_DEPTH
from csast import (Assign, BinaryOp, Call, Emit, ExprStmt, Fail, Identifier, If, Index, Literal,
                   MemberAccess, Require, Return, Send, UnaryOp)
from cscheck import BUILTINS, STATEMENT_CALLS, SymbolKind, is_msg, is_name
from element import CONS, Atom, CommentMap, nil, one, to_list
from errors import GenerationError
from library import AddressCodec

logger = logging.getLogger(__name__)

DIRECT = "direct"
DISPATCH = "dispatch"
MERKLE = "merkle"
AUTO = "auto"
MODES = (AUTO, DIRECT, DISPATCH, MERKLE)

MOD_HASH = "MOD_HASH"
ACTION_MERKLE_ROOT = "ACTION_MERKLE_ROOT"
SELF_PUZZLE_HASH = "self_puzzle_hash"
PROOF_FN = "merkle_root_from_proof"
MERGE_FN = "merge_list"

@dataclass(frozen=True)
class ActionSignature:
    """what a spend of one action carries, in solution order"""
    name: str
    params: tuple
    signer: bool = False
    amount: bool = False
    stateful: bool = False

    @property
    def template(self):
        t = list(self.params)
        if self.signer:
            t.append("signer")
        if self.amount:
            t.append("my_amount")
        if self.stateful:
            t.append("state")
        return tuple(t)

@dataclass
class Generated:
    mode: str
    main: PuzzleBuilder
    signatures: dict
    action_mods: dict = field(default_factory=dict)
    comments: CommentMap = field(default_factory=CommentMap)

def nth(base, i):
    el = base
    for _ in range(i):
        el = call("r", el)
    return call("f", el)

def nesting_depth(el):
    deepest = 0
    stk = [(el, 1)]
    while stk:
        el, d = stk.pop()
        if el.kind != CONS:
            continue
        deepest = max(deepest, d)
        while el.kind == CONS:
            stk.append((el.first, d + 1))
            el = el.rest
        stk.append((el, d + 1))
    return deepest

MAPPING_GET = to_list([
    sym("if"), sym("m"),
    call("if", call("=", call("f", call("f", "m")), "k"),
         call("r", call("f", "m")),
         call("mapping_get", call("r", "m"), "k")),
    nil])

MAPPING_SET = to_list([
    sym("if"), sym("m"),
    call("if", call("=", call("f", call("f", "m")), "k"),
         call("c", call("c", "k", "v"), call("r", "m")),
         call("c", call("f", "m"), call("mapping_set", call("r", "m"), "k", "v"))),
    call("list", call("c", "k", "v"))])

MERGE_LIST = to_list([
    sym("if"), sym("a"),
    call("c", call("f", "a"), call(MERGE_FN, call("r", "a"), "b")),
    sym("b")])

PROOF_WALK = to_list([
    sym("if"), sym("proof"),
    call(PROOF_FN,
         call("if", call(">s", "cur", call("f", "proof")),
              call("sha256", call("f", "proof"), "cur"),
              call("sha256", "cur", call("f", "proof"))),
         call("r", "proof")),
    sym("cur")])

def needs_continuation(stmts):
    """an arm that can end the spend or rebind a value has to carry the statements after its if"""
    stk = list(stmts)
    while stk:
        s = stk.pop()
        if isinstance(s, (Return, Fail)):
            return True
        if isinstance(s, Assign) and s.decl_type is None:
            return True
        if isinstance(s, If):
            stk.extend(s.then)
            stk.extend(s.otherwise or ())
    return False

class _Ctx:
    def __init__(self, sig=None, function=False, self_ph=None, amount=None, state_fields=(), message=None):
        self.sig = sig
        self.function = function
        self.self_ph = self_ph
        self.amount = amount
        self.state_fields = state_fields
        self.message = message

class CodeGenerator:
    def __init__(self, analysis, mode=AUTO, address_codec=None, max_depth=MAX_DEPTH):
        if mode not in MODES:
            raise GenerationError(f"unknown dispatch mode {mode}")
        self.a = analysis
        self.coin = analysis.coin
        self.codec = address_codec or AddressCodec()
        self.max_depth = max_depth
        self.comments = CommentMap()
        self.mode = self.pick_mode(mode)
        self.state_fields = [v.name for v in self.coin.state_vars]
        self.uses_mappings = False
        self.uses_merge = False

    def pick_mode(self, mode):
        n = len(self.coin.actions)
        if mode == AUTO:
            if self.a.merkle:
                return MERKLE
            return DIRECT if n == 1 else DISPATCH
        if mode == DIRECT and n != 1:
            raise GenerationError(f"direct mode needs exactly one action, {self.coin.name} has {n}")
        return mode

    def signature(self, info):
        return ActionSignature(info.action.name, tuple(p.name for p in info.action.params),
                               signer=info.uses_signer,
                               amount=info.uses_amount or info.stateful,
                               stateful=info.stateful)

    def generate(self):
        logger.debug("generating %s in %s mode", self.coin.name, self.mode)
        sigs = {name: self.signature(info) for name, info in self.a.actions.items()}
        if self.mode == MERKLE:
            gen = self.generate_merkle(sigs)
        else:
            gen = Generated(self.mode, self.generate_single(sigs), sigs, comments=self.comments)
        for b in [gen.main] + list(gen.action_mods.values()):
            self.check_depth(b.build())
        return gen

    def check_depth(self, el):
        d = nesting_depth(el)
        if d > self.max_depth:
            raise GenerationError(f"generated program nests {d} deep, more than {self.max_depth}")

    # program assembly

    def new_builder(self, name, curried):
        pb = PuzzleBuilder(name, comments=self.comments)
        pb.with_curried_params(*curried)
        for path in self.a.includes:
            pb.include(path)
        for c in self.coin.consts:
            pb.defconstant(self.a.name_map[c.name], self.literal(c.value))
        return pb

    def storage_names(self):
        return [s.vm_name for s in self.a.storage()]

    def add_functions(self, pb):
        for fn in self.coin.functions:
            scope = self.a.functions[fn.name]
            env = {p.name: sym(scope.symbols[p.name].vm_name) for p in fn.params}
            body = self.lower_block(fn.body, env, _Ctx(function=True), 0)
            pb.comment(f"function {fn.name}")
            pb.defun(self.a.name_map[fn.name], [scope.symbols[p.name].vm_name for p in fn.params],
                     body, inline=fn.inline)
        if self.uses_mappings:
            pb.defun("mapping_get", ["m", "k"], MAPPING_GET)
            pb.defun("mapping_set", ["m", "k", "v"], MAPPING_SET)
        if self.uses_merge:
            pb.defun(MERGE_FN, ["a", "b"], MERGE_LIST)

    def self_puzzle_hash(self, curried):
        """puzzle hash of this program curried with its own curried params"""
        hashes = [call("sha256", 1, n) for n in reversed(curried)]
        return call("puzzle-hash-of-curried-function", MOD_HASH, *hashes)

    def generate_single(self, sigs):
        curried = ([MOD_HASH] if self.a.has_state else []) + self.storage_names()
        pb = self.new_builder(self.coin.name, curried)
        self_ph = self.self_puzzle_hash(curried) if self.a.has_state else None
        if self.mode == DIRECT:
            info = next(iter(self.a.actions.values()))
            sig = sigs[info.action.name]
            names = self.direct_names(info, sig)
            pb.with_solution_params(*names)
            body = self.action_body(info, sig, [sym(n) for n in names], self_ph)
        else:
            pb.with_solution_params("action").rest_param("args")
            body = self.dispatch_chain(sigs, self_ph)
        self.add_functions(pb)
        pb.returns(body)
        return pb

    def direct_names(self, info, sig):
        names = [info.scope.symbols[p.name].vm_name for p in info.action.params]
        return names + list(sig.template[len(names):])

    def dispatch_chain(self, sigs, self_ph):
        chain = fail_node("unknown action")
        default = None
        for action in reversed(self.coin.actions):
            info = self.a.actions[action.name]
            sig = sigs[action.name]
            args = [nth(sym("args"), i) for i in range(len(sig.template))]
            body = self.action_body(info, sig, args, self_ph)
            self.comments.attach(body, f"action {action.name}")
            if action.name == "default":
                default = body
            else:
                chain = if_node(call("=", "action", Atom.string(action.name)), body, chain)
        if default is not None:
            sel = call("any", call("not", "action"), call("=", "action", Atom.string("default")))
            chain = if_node(sel, default, chain)
        return chain

    def generate_merkle(self, sigs):
        mods = {}
        for action in self.coin.actions:
            self.uses_mappings = False
            self.uses_merge = False
            info = self.a.actions[action.name]
            sig = sigs[action.name]
            pb = self.new_builder(f"{self.coin.name}.{action.name}", self.storage_names())
            names = ([SELF_PUZZLE_HASH] if self.a.has_state else []) + self.direct_names(info, sig)
            pb.with_solution_params(*names)
            self_ph = sym(SELF_PUZZLE_HASH) if self.a.has_state else None
            body = self.action_body(info, sig, [sym(n) for n in names[1 if self.a.has_state else 0:]], self_ph)
            self.add_functions(pb)
            pb.returns(body)
            mods[action.name] = pb
        main = PuzzleBuilder(self.coin.name, comments=self.comments)
        curried = ([MOD_HASH] if self.a.has_state else []) + [ACTION_MERKLE_ROOT]
        main.with_curried_params(*curried)
        main.with_solution_params("action_name", "action_puzzle", "action_solution", "proof")
        main.defun(PROOF_FN, ["cur", "proof"], PROOF_WALK)
        leaf = call("sha256", 2, call("sha256", 1, "action_name"),
                    call("sha256", 1, call("sha256tree", "action_puzzle")))
        solution = sym("action_solution")
        if self.a.has_state:
            solution = call("c", self.self_puzzle_hash(curried), solution)
        body = if_node(call("=", call(PROOF_FN, leaf, "proof"), ACTION_MERKLE_ROOT),
                       call("a", "action_puzzle", solution),
                       fail_node("invalid action proof"))
        main.returns(body)
        return Generated(MERKLE, main, sigs, mods, self.comments)

    # actions

    def action_body(self, info, sig, slots, self_ph):
        """slots hold the elements for sig.template, in order"""
        n = len(info.action.params)
        env = {p.name: slots[i] for i, p in enumerate(info.action.params)}
        extra = dict(zip(sig.template[n:], slots[n:]))
        signer = extra.get("signer")
        amount = extra.get("my_amount")
        if amount is not None:
            env["msg.value"] = amount
        if sig.stateful:
            state = extra["state"]
            for i, f in enumerate(self.state_fields):
                env["state." + f] = nth(state, i)
        message = call("sha256tree", call("list", *slots[:n]) if n else nil)
        ctx = _Ctx(sig, self_ph=self_ph, amount=amount, state_fields=self.state_fields if sig.stateful else (),
                   message=message)
        body = self.lower_block(info.action.body, env, ctx, 0)
        if amount is not None:
            body = cons_condition(condition("ASSERT_MY_AMOUNT", amount), body)
        addrs = [self.expr(a, {}) for a in info.access]
        if len(addrs) == 1:
            body = cons_condition(condition("AGG_SIG_ME", addrs[0], message), body)
        elif addrs:
            allowed = call("any", *[call("=", signer, a) for a in addrs])
            body = if_node(allowed, cons_condition(condition("AGG_SIG_ME", signer, message), body),
                           fail_node("unauthorized"))
        return body

    def exit(self, env, ctx):
        if ctx.function or not ctx.sig.stateful:
            return nil
        new_state = call("list", *[env["state." + f] for f in ctx.state_fields])
        memo = call("list", call("sha256tree", new_state))
        return cons_condition(condition("CREATE_COIN", ctx.self_ph, ctx.amount, memo), nil)

    # statements

    def lower_block(self, stmts, env, ctx, depth, end=None):
        """end replaces the exit conditions when the block runs off its last statement"""
        if depth > self.max_depth:
            raise GenerationError(f"if statements nest more than {self.max_depth} deep")
        steps = []
        tail = None
        stmts = tuple(stmts)
        for i, s in enumerate(stmts):
            if isinstance(s, Require):
                target = self.a.sender_checks.get(s)
                if target is not None:
                    steps.append(("cons", condition("AGG_SIG_ME", self.expr(target, env), ctx.message)))
                else:
                    steps.append(("require", self.expr(s.cond, env), s.message))
            elif isinstance(s, Send):
                args = [self.expr(s.recipient, env), self.expr(s.amount, env)]
                if s.memo is not None:
                    args.append(call("list", self.expr(s.memo, env)))
                steps.append(("cons", condition("CREATE_COIN", *args)))
            elif isinstance(s, Emit):
                payload = call("list", Atom.string(s.event), *[self.expr(a, env) for a in s.args])
                steps.append(("cons", condition("CREATE_COIN_ANNOUNCEMENT", call("sha256tree", payload))))
            elif isinstance(s, ExprStmt):
                steps.append(("cons", self.condition_call(s.expr, env, ctx)))
            elif isinstance(s, Assign):
                env = self.assign(s, env)
            elif isinstance(s, If):
                cond = self.expr(s.cond, env)
                arms = (tuple(s.then), tuple(s.otherwise or ()))
                if ctx.function or any(map(needs_continuation, arms)):
                    rest = stmts[i+1:]
                    then, otherwise = [self.lower_block(arm + rest, env, ctx, depth + 1, end) for arm in arms]
                    tail = if_node(cond, then, otherwise)
                    break
                then, otherwise = [self.lower_block(arm, env, ctx, depth + 1, nil) for arm in arms]
                if not (then.is_nil() and otherwise.is_nil()):
                    self.uses_merge = True
                    steps.append(("merge", if_node(cond, then, otherwise)))
            elif isinstance(s, Return):
                if ctx.function:
                    tail = nil if s.value is None else self.expr(s.value, env)
                else:
                    tail = self.exit(env, ctx)
                break
            elif isinstance(s, Fail):
                tail = fail_node(s.message)
                break
            else:
                raise GenerationError(f"cannot generate {type(s).__name__}", getattr(s, "pos", None))
        if tail is None:
            tail = self.exit(env, ctx) if end is None else end
        for step in reversed(steps):
            if step[0] == "cons":
                tail = cons_condition(step[1], tail)
            elif step[0] == "merge":
                tail = call(MERGE_FN, step[1], tail)
            else:
                tail = if_node(step[1], tail, fail_node(step[2]))
        return tail

    def condition_call(self, e, env, ctx):
        if not isinstance(e, Call) or e.callee not in STATEMENT_CALLS:
            raise GenerationError("expression statements must produce a condition", e.pos)
        name = STATEMENT_CALLS[e.callee][0]
        args = [self.expr(a, env) for a in e.args]
        if name == "AGG_SIG_ME" and len(args) == 1:
            args.append(ctx.message)
        return condition(name, *args)

    def assign(self, s, env):
        t = s.target
        if isinstance(t, Identifier):
            key = t.name
        elif isinstance(t, MemberAccess) and is_name(t.obj, "state"):
            key = "state." + t.prop
        elif isinstance(t, Index):
            m = "state." + t.obj.prop
            cur = self.lookup(env, m, t.pos)
            k = self.expr(t.key, env)
            value = self.expr(s.value, env)
            if s.op != "=":
                value = call(s.op[0], call("mapping_get", cur, k), value)
            self.uses_mappings = True
            return {**env, m: call("mapping_set", cur, k, value)}
        else:
            raise GenerationError("invalid assignment target", s.pos)
        value = self.expr(s.value, env)
        if s.op != "=":
            value = call(s.op[0], self.lookup(env, key, s.pos), value)
        return {**env, key: value}

    # expressions

    def lookup(self, env, key, pos):
        if key not in env:
            raise GenerationError(f"unresolved symbol {key}", pos)
        return env[key]

    def literal(self, e):
        if e.kind == "int":
            return Atom(e.value)
        if e.kind == "bool":
            return one if e.value else nil
        if e.kind == "hex":
            return Atom(e.value)
        decoded = self.codec.try_decode(e.value)
        return Atom.string(e.value) if decoded is None else Atom(decoded)

    def expr(self, e, env):
        if isinstance(e, Literal):
            return self.literal(e)
        if isinstance(e, Identifier):
            if e.name in env:
                return env[e.name]
            s = self.a.globals.lookup(e.name)
            if s is not None and s.kind in (SymbolKind.STORAGE, SymbolKind.CONSTANT):
                return sym(s.vm_name)
            raise GenerationError(f"unresolved symbol {e.name}", e.pos)
        if isinstance(e, BinaryOp):
            return self.binary(e, env)
        if isinstance(e, UnaryOp):
            x = self.expr(e.operand, env)
            if e.op == "!":
                return call("not", x)
            return call("-", 0, x)
        if isinstance(e, MemberAccess):
            if is_msg(e, "value"):
                return self.lookup(env, "msg.value", e.pos)
            if is_name(e.obj, "state"):
                return self.lookup(env, "state." + e.prop, e.pos)
            raise GenerationError(f"cannot generate member {e.prop}", e.pos)
        if isinstance(e, Index):
            self.uses_mappings = True
            m = self.lookup(env, "state." + e.obj.prop, e.pos)
            return call("mapping_get", m, self.expr(e.key, env))
        if isinstance(e, Call):
            args = [self.expr(a, env) for a in e.args]
            s = self.a.globals.lookup(e.callee)
            if s is not None and s.kind == SymbolKind.FUNCTION:
                return call(s.vm_name, *args)
            if e.callee in BUILTINS:
                return call(BUILTINS[e.callee][0], *args)
            if e in self.a.library_calls:
                return call(self.a.library_calls[e][0], *args)
            raise GenerationError(f"unresolved function {e.callee}", e.pos)
        raise GenerationError(f"cannot generate {type(e).__name__}", getattr(e, "pos", None))

    def binary(self, e, env):
        left = Expr(self.expr(e.left, env))
        right = self.expr(e.right, env)
        ops = {
            "+": left.add, "-": left.sub, "*": left.mul, "/": left.div, "%": left.mod,
            ">": left.gt, "<": left.lt, ">=": left.gte, "<=": left.lte,
            "==": left.eq, "!=": left.ne, "&&": left.and_, "||": left.or_,
        }
        if e.op not in ops:
            raise GenerationError(f"unknown operator {e.op}", e.pos)
        return ops[e.op](right).el

def generate(analysis, mode=AUTO, address_codec=None, max_depth=MAX_DEPTH):
    return CodeGenerator(analysis, mode, address_codec, max_depth).generate()
