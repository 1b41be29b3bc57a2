#!/usr/bin/env python3

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from csast import (Action, Assign, BinaryOp, Call, Emit, ExprStmt, Fail, Identifier, If, Index,
                   Literal, MemberAccess, Require, Return, Send, TypeRef, UnaryOp)
from errors import SemanticError, SemanticErrors
from library import INCLUDE_INDEX, INCLUDES, AddressCodec, library_function
from opcodes import SExpr_FUNCS

logger = logging.getLogger(__name__)

class SymbolKind(enum.Enum):
    STORAGE = "storage"
    STATE = "state"
    PARAMETER = "parameter"
    CONSTANT = "constant"
    EVENT = "event"
    FUNCTION = "function"
    LOCAL = "local"

class Binding(enum.Enum):
    CURRIED = "curried"
    THREADED = "threaded"
    SOLUTION = "solution"

@dataclass
class Symbol:
    name: str
    kind: SymbolKind
    type: object
    scope: str
    vm_name: str
    binding: Optional[Binding] = None
    pos: object = None
    node: object = None

class Scope:
    def __init__(self, name, parent=None):
        self.name = name
        self.parent = parent
        self.symbols = {}

    def define(self, sym):
        self.symbols[sym.name] = sym
        return sym

    def lookup(self, name):
        s = self
        while s is not None:
            if name in s.symbols:
                return s.symbols[name]
            s = s.parent
        return None

    def child(self, name):
        return Scope(name, self)

# chialisp names a generated program uses itself
RESERVED = set(SExpr_FUNCS) | {
    "mod", "defun", "defun-inline", "defmacro", "defconstant", "include", "if",
    "list", "qq", "unquote", "assign", "lambda", "@", "sha256tree",
    "action", "args", "state", "signer", "my_amount", "self_puzzle_hash",
    "action_name", "action_puzzle", "action_solution", "proof", "mapping_get",
    "mapping_set", "merkle_root_from_proof", "merge_list", "MOD_HASH", "ACTION_MERKLE_ROOT",
}
# names the include files define
RESERVED |= {n for inc in INCLUDES for n in inc.constants + inc.functions + inc.macros}

def snake_case(name):
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()

def upper_snake(name):
    return snake_case(name).upper()

def vm_safe(name):
    return name + "_" if name in RESERVED else name

INT = "int"
BOOL = "bool"
BYTES32 = "bytes32"
BYTES = "bytes"
STRING = "string"
ANY = "any"

def category(t):
    """collapse declared types into the classes the checker compares"""
    if t is None:
        return ANY
    s = str(t)
    if s.startswith("mapping"):
        return s
    if s.startswith("uint") or s.startswith("int"):
        return INT
    if s in ("address", "bytes32"):
        return BYTES32
    return s

def compatible(expected, actual):
    if ANY in (expected, actual):
        return True
    if expected == actual:
        return True
    return expected == BYTES and actual in (BYTES32, STRING)

# calls that produce a spend condition, usable as statements
STATEMENT_CALLS = {
    "requireSignature": ("AGG_SIG_ME", (BYTES, ANY), 1),
    "requireSignatureUnsafe": ("AGG_SIG_UNSAFE", (BYTES, ANY), 2),
    "reserveFee": ("RESERVE_FEE", (INT,), 1),
    "createAnnouncement": ("CREATE_COIN_ANNOUNCEMENT", (ANY,), 1),
    "assertAnnouncement": ("ASSERT_COIN_ANNOUNCEMENT", (BYTES32,), 1),
    "createPuzzleAnnouncement": ("CREATE_PUZZLE_ANNOUNCEMENT", (ANY,), 1),
    "assertPuzzleAnnouncement": ("ASSERT_PUZZLE_ANNOUNCEMENT", (BYTES32,), 1),
    "assertMyAmount": ("ASSERT_MY_AMOUNT", (INT,), 1),
    "assertMyPuzzleHash": ("ASSERT_MY_PUZZLEHASH", (BYTES32,), 1),
    "assertMyCoinId": ("ASSERT_MY_COIN_ID", (BYTES32,), 1),
    "assertMyParentId": ("ASSERT_MY_PARENT_ID", (BYTES32,), 1),
    "assertSecondsRelative": ("ASSERT_SECONDS_RELATIVE", (INT,), 1),
    "assertSecondsAbsolute": ("ASSERT_SECONDS_ABSOLUTE", (INT,), 1),
    "assertHeightRelative": ("ASSERT_HEIGHT_RELATIVE", (INT,), 1),
    "assertHeightAbsolute": ("ASSERT_HEIGHT_ABSOLUTE", (INT,), 1),
    "assertBeforeSecondsRelative": ("ASSERT_BEFORE_SECONDS_RELATIVE", (INT,), 1),
    "assertBeforeSecondsAbsolute": ("ASSERT_BEFORE_SECONDS_ABSOLUTE", (INT,), 1),
    "assertBeforeHeightRelative": ("ASSERT_BEFORE_HEIGHT_RELATIVE", (INT,), 1),
    "assertBeforeHeightAbsolute": ("ASSERT_BEFORE_HEIGHT_ABSOLUTE", (INT,), 1),
    "remark": ("REMARK", (ANY,), 0),
}

# (vm operator, argument class, result class, fixed arity or None)
BUILTINS = {
    "sha256": ("sha256", ANY, BYTES32, None),
    "concat": ("concat", ANY, BYTES, None),
    "strlen": ("strlen", ANY, INT, 1),
    "coinid": ("coinid", ANY, BYTES32, 3),
}

ACTION_DECORATORS = {"onlyAddress", "stateful"}
COIN_DECORATORS = {"singleton", "merkle"}

@dataclass
class ActionInfo:
    action: Action
    scope: Scope
    stateful: bool = False
    access: tuple = ()
    uses_amount: bool = False

    @property
    def uses_signer(self):
        return len(self.access) > 1

@dataclass
class Analysis:
    coin: object
    globals: Scope
    actions: dict = field(default_factory=dict)
    functions: dict = field(default_factory=dict)
    types: dict = field(default_factory=dict)
    sender_checks: dict = field(default_factory=dict)
    library_calls: dict = field(default_factory=dict)
    includes: list = field(default_factory=list)
    name_map: dict = field(default_factory=dict)
    launcher_id: object = None
    merkle: bool = False

    def symbol(self, name):
        return self.globals.lookup(name)

    def storage(self):
        return [self.globals.symbols[v.name] for v in self.coin.storage_vars]

    def state(self):
        return [self.globals.symbols[v.name] for v in self.coin.state_vars]

    @property
    def has_state(self):
        return bool(self.coin.state_vars)

class _Ctx:
    def __init__(self, scope, action=None, function=None):
        self.scope = scope
        self.action = action
        self.function = function

    @property
    def stateful(self):
        return self.action is not None and self.action.stateful

class Analyzer:
    def __init__(self, coin, address_codec=None):
        self.coin = coin
        self.codec = address_codec or AddressCodec()
        self.errors = []
        self.result = Analysis(coin, Scope("coin"))
        self._vm_names = {}

    def error(self, message, pos):
        self.errors.append(SemanticError(message, pos))

    def analyze(self):
        logger.debug("analyzing coin %s", self.coin.name)
        self.declare_globals()
        self.check_coin_decorators()
        self.check_spend_path()
        for fn in self.coin.functions:
            self.check_function(fn)
        for action in self.coin.actions:
            self.check_action(action)
        self.resolve_includes()
        if self.errors:
            raise SemanticErrors(self.errors)
        return self.result

    # declarations

    def map_name(self, author, vm, pos):
        if vm in self._vm_names and self._vm_names[vm] != author:
            self.error(f"{author} and {self._vm_names[vm]} both map to {vm}", pos)
            return vm
        self._vm_names[vm] = author
        self.result.name_map[author] = vm
        return vm

    def declare(self, sym):
        g = self.result.globals
        prev = g.symbols.get(sym.name)
        if prev is not None:
            pair = {prev.kind, sym.kind}
            if pair == {SymbolKind.STORAGE, SymbolKind.STATE}:
                self.error(f"{sym.name} is declared as both storage and state", sym.pos)
            else:
                self.error(f"duplicate declaration of {sym.name}", sym.pos)
            return None
        return g.define(sym)

    def declare_globals(self):
        for v in self.coin.storage_vars:
            if v.type.name == "mapping":
                self.error(f"storage variable {v.name} cannot be a mapping", v.pos)
            vm = self.map_name(v.name, vm_safe(upper_snake(v.name)), v.pos)
            if self.declare(Symbol(v.name, SymbolKind.STORAGE, v.type, "coin", vm, Binding.CURRIED, v.pos, v)):
                self.check_initializer(v)
        for v in self.coin.state_vars:
            if self.declare(Symbol(v.name, SymbolKind.STATE, v.type, "coin", snake_case(v.name), Binding.THREADED, v.pos, v)):
                self.check_initializer(v)
        for c in self.coin.consts:
            ty = self.literal_type(c.value)
            if ty is None:
                self.error(f"constant {c.name} must be a literal", c.pos)
            vm = self.map_name(c.name, vm_safe(upper_snake(c.name)), c.pos)
            self.declare(Symbol(c.name, SymbolKind.CONSTANT, ty or ANY, "coin", vm, None, c.pos, c))
        for e in self.coin.events:
            self.declare(Symbol(e.name, SymbolKind.EVENT, None, "coin", e.name, None, e.pos, e))
        for fn in self.coin.functions:
            vm = self.map_name(fn.name, vm_safe(snake_case(fn.name)), fn.pos)
            self.declare(Symbol(fn.name, SymbolKind.FUNCTION, fn.returns, "coin", vm, None, fn.pos, fn))

    def literal_type(self, e):
        if not isinstance(e, Literal):
            return None
        return self.check_expr(e, _Ctx(self.result.globals))

    def check_initializer(self, v):
        if v.init is None:
            return
        ty = self.literal_type(v.init)
        if ty is None:
            self.error(f"initial value of {v.name} must be a literal", v.pos)
        elif not compatible(category(v.type), ty):
            self.error(self.address_error(v.init, category(v.type))
                       or f"{v.name} is {v.type} but is initialized with {ty}", v.pos)

    def check_coin_decorators(self):
        for d in self.coin.decorators:
            if d.name in ACTION_DECORATORS:
                self.error(f"@{d.name} applies to actions, not coins", d.pos)
            elif d.name == "merkle":
                if d.args:
                    self.error("@merkle takes no arguments", d.pos)
                self.result.merkle = True
            elif d.name == "singleton":
                self.check_singleton(d)
            else:
                self.error(f"unknown decorator @{d.name}", d.pos)

    def check_singleton(self, d):
        if len(d.args) > 1:
            self.error("@singleton takes at most one launcher id", d.pos)
            return
        if d.args:
            arg = d.args[0]
            ty = self.check_expr(arg, _Ctx(self.result.globals))
            sym = self.result.globals.lookup(arg.name) if isinstance(arg, Identifier) else None
            ok = (isinstance(arg, Literal) and arg.kind == "hex" and len(arg.value) == 32) or (
                sym is not None and ty == BYTES32
                and sym.kind in (SymbolKind.CONSTANT, SymbolKind.STORAGE))
            if not ok:
                self.error("@singleton launcher id must be a 32 byte literal, constant or storage value", d.pos)
            self.result.launcher_id = arg
            return
        sym = self.result.globals.lookup("launcherId")
        if sym is None or sym.kind != SymbolKind.STORAGE or category(sym.type) != BYTES32:
            self.error("@singleton needs a launcher id argument or a bytes32 launcherId storage variable", d.pos)
            return
        self.result.launcher_id = Identifier("launcherId", d.pos)

    def check_spend_path(self):
        if not self.coin.actions:
            self.error(f"coin {self.coin.name} has no spend path: declare a spend action, a default action or named actions", self.coin.pos)
        seen = set()
        for a in self.coin.actions:
            if a.name in seen:
                self.error(f"duplicate action {a.name}", a.pos)
            seen.add(a.name)

    def resolve_includes(self):
        for path in self.coin.includes:
            if path not in INCLUDE_INDEX and not path.endswith((".clib", ".clinc", ".clsp")):
                self.error(f"unknown include {path}", self.coin.pos)
            if path not in self.result.includes:
                self.result.includes.append(path)
        for call, (_vm, path) in self.result.library_calls.items():
            if path not in self.result.includes:
                logger.debug("including %s for %s", path, call.callee)
                self.result.includes.append(path)

    # actions and functions

    def declare_params(self, scope, params):
        names = set()
        for p in params:
            if p.name in names:
                self.error(f"duplicate parameter {p.name}", p.pos)
            names.add(p.name)
            if p.type.name == "mapping":
                self.error(f"parameter {p.name} cannot be a mapping", p.pos)
            scope.define(Symbol(p.name, SymbolKind.PARAMETER, p.type, scope.name,
                                vm_safe(snake_case(p.name)), Binding.SOLUTION, p.pos, p))
        vms = {}
        for s in scope.symbols.values():
            if s.vm_name in vms:
                self.error(f"parameters {s.name} and {vms[s.vm_name]} both map to {s.vm_name}", s.pos)
            vms[s.vm_name] = s.name

    def check_action(self, action):
        scope = self.result.globals.child(f"action {action.name}")
        info = ActionInfo(action, scope)
        self.result.actions[action.name] = info
        self.declare_params(scope, action.params)
        for d in action.decorators:
            if d.name == "stateful":
                if d.args:
                    self.error("@stateful takes no arguments", d.pos)
                if not self.coin.state_vars:
                    self.error(f"@stateful action {action.name} needs the coin to declare state", d.pos)
                info.stateful = True
            elif d.name == "onlyAddress":
                info.access = tuple(self.check_access(d))
            elif d.name in COIN_DECORATORS:
                self.error(f"@{d.name} applies to coins, not actions", d.pos)
            else:
                self.error(f"unknown decorator @{d.name}", d.pos)
        self.check_block(action.body, _Ctx(scope, action=info))

    def check_access(self, d):
        if not d.args:
            self.error("@onlyAddress needs at least one address", d.pos)
        addrs = []
        for arg in d.args:
            ty = self.check_expr(arg, _Ctx(self.result.globals))
            if isinstance(arg, Identifier):
                sym = self.result.globals.lookup(arg.name)
                ok = sym is not None and sym.kind in (SymbolKind.STORAGE, SymbolKind.CONSTANT) and ty == BYTES32
            else:
                ok = isinstance(arg, Literal) and ty == BYTES32
            if not ok:
                self.error("@onlyAddress expects storage or constant addresses, or address literals", arg.pos)
            addrs.append(arg)
        return addrs

    def check_function(self, fn):
        scope = self.result.globals.child(f"function {fn.name}")
        self.result.functions[fn.name] = scope
        self.declare_params(scope, fn.params)
        self.check_block(fn.body, _Ctx(scope, function=fn))
        if fn.returns is not None and not self.always_returns(fn.body):
            self.error(f"function {fn.name} does not return on every path", fn.pos)

    def always_returns(self, stmts):
        if not stmts:
            return False
        last = stmts[-1]
        if isinstance(last, (Return, Fail)):
            return True
        if isinstance(last, If) and last.otherwise is not None:
            return self.always_returns(last.then) and self.always_returns(last.otherwise)
        return False

    # statements

    def check_block(self, stmts, ctx):
        ctx = _Ctx(ctx.scope.child(ctx.scope.name), ctx.action, ctx.function)
        ended = False
        for s in stmts:
            if ended:
                self.error("unreachable statement", s.pos)
                break
            self.check_statement(s, ctx)
            ended = isinstance(s, (Return, Fail))

    def sender_check_target(self, cond):
        if not isinstance(cond, BinaryOp) or cond.op != "==":
            return None
        for a, b in ((cond.left, cond.right), (cond.right, cond.left)):
            if is_msg(a, "sender"):
                return b
        return None

    def check_statement(self, s, ctx):
        in_fn = ctx.function is not None
        if isinstance(s, Require):
            target = self.sender_check_target(s.cond)
            if target is not None:
                if in_fn:
                    self.error("msg.sender can only be checked in actions", s.pos)
                ty = self.check_expr(target, ctx)
                if ty not in (BYTES32, ANY):
                    self.error("msg.sender must be compared with an address", s.pos)
                self.result.sender_checks[s] = target
                self.result.types[s.cond] = BOOL
                return
            self.expect_type(s.cond, BOOL, ctx, "require condition")
        elif isinstance(s, Send):
            if in_fn:
                self.error("send is only allowed in actions", s.pos)
            self.expect_type(s.recipient, BYTES32, ctx, "send recipient")
            self.expect_type(s.amount, INT, ctx, "send amount")
            if s.memo is not None:
                self.check_expr(s.memo, ctx)
        elif isinstance(s, Emit):
            if in_fn:
                self.error("emit is only allowed in actions", s.pos)
            sym = self.result.globals.lookup(s.event)
            if sym is None or sym.kind != SymbolKind.EVENT:
                self.error(f"undeclared event {s.event}", s.pos)
                for a in s.args:
                    self.check_expr(a, ctx)
                return
            params = sym.node.params
            if len(params) != len(s.args):
                self.error(f"event {s.event} takes {len(params)} argument(s), got {len(s.args)}", s.pos)
            for p, a in zip(params, s.args):
                self.expect_type(a, category(p.type), ctx, f"argument {p.name} of {s.event}")
            for a in s.args[len(params):]:
                self.check_expr(a, ctx)
        elif isinstance(s, If):
            self.expect_type(s.cond, BOOL, ctx, "if condition")
            self.check_block(s.then, ctx)
            if s.otherwise is not None:
                self.check_block(s.otherwise, ctx)
        elif isinstance(s, Assign):
            self.check_assign(s, ctx)
        elif isinstance(s, ExprStmt):
            self.check_expr_stmt(s, ctx)
        elif isinstance(s, Return):
            if in_fn:
                if ctx.function.returns is not None and s.value is None:
                    self.error(f"function {ctx.function.name} must return a value", s.pos)
                if s.value is not None:
                    ty = self.check_expr(s.value, ctx)
                    want = category(ctx.function.returns)
                    if not compatible(want, ty):
                        self.error(f"function {ctx.function.name} returns {ctx.function.returns}, not {ty}", s.pos)
            elif s.value is not None:
                self.error("actions cannot return a value", s.pos)
        elif isinstance(s, Fail):
            pass
        else:
            self.error(f"unsupported statement {type(s).__name__}", getattr(s, "pos", None))

    def check_assign(self, s, ctx):
        if s.op in ("+=", "-=") and s.decl_type is None:
            want = INT
        else:
            want = None
        if s.decl_type is not None:
            name = s.target.name
            if ctx.scope.lookup(name) is not None:
                self.error(f"{name} is already declared", s.pos)
            ty = self.check_expr(s.value, ctx)
            if not compatible(category(s.decl_type), ty):
                self.error(f"cannot assign {ty} to {name} of type {s.decl_type}", s.pos)
            ctx.scope.define(Symbol(name, SymbolKind.LOCAL, s.decl_type, ctx.scope.name,
                                    vm_safe(snake_case(name)), None, s.pos, s))
            return
        target_ty = self.check_target(s.target, ctx)
        if target_ty is None:
            self.check_expr(s.value, ctx)
            return
        if want == INT and target_ty not in (INT, ANY):
            self.error(f"{s.op} needs an integer target", s.pos)
        ty = self.check_expr(s.value, ctx)
        if not compatible(want or target_ty, ty):
            self.error(f"cannot assign {ty} to a {target_ty} target", s.pos)

    def check_target(self, t, ctx):
        if isinstance(t, Identifier):
            sym = ctx.scope.lookup(t.name)
            if sym is None:
                self.error(f"undeclared identifier {t.name}", t.pos)
                return None
            if sym.kind == SymbolKind.LOCAL:
                return category(sym.type)
            if sym.kind == SymbolKind.STORAGE:
                self.error(f"storage variable {t.name} is immutable", t.pos)
            elif sym.kind == SymbolKind.STATE:
                self.error(f"state field {t.name} is written as state.{t.name}", t.pos)
            else:
                self.error(f"cannot assign to {sym.kind.value} {t.name}", t.pos)
            return None
        if isinstance(t, MemberAccess) and is_name(t.obj, "state"):
            if ctx.function is not None or not ctx.stateful:
                self.error("only @stateful actions can modify state", t.pos)
                return None
            return self.state_field_type(t, ctx)
        if isinstance(t, Index):
            if ctx.function is not None or not ctx.stateful:
                self.error("only @stateful actions can modify state", t.pos)
                return None
            return self.check_index(t, ctx)
        self.error("invalid assignment target", t.pos)
        return None

    def check_expr_stmt(self, s, ctx):
        e = s.expr
        if not isinstance(e, Call) or e.callee not in STATEMENT_CALLS:
            self.check_expr(e, ctx)
            self.error("expression result is unused", s.pos)
            return
        if ctx.function is not None:
            self.error(f"{e.callee} is only allowed in actions", s.pos)
        _cond, argtypes, required = STATEMENT_CALLS[e.callee]
        if not (required <= len(e.args) <= len(argtypes) or (not required and argtypes == (ANY,))):
            self.error(f"{e.callee} takes {required} to {len(argtypes)} argument(s)", s.pos)
        for i, a in enumerate(e.args):
            want = argtypes[i] if i < len(argtypes) else ANY
            self.expect_type(a, want, ctx, f"argument {i + 1} of {e.callee}")

    # expressions

    def expect_type(self, e, want, ctx, what):
        ty = self.check_expr(e, ctx)
        if not compatible(want, ty):
            self.error(self.address_error(e, want) or f"{what} must be {want}, not {ty}", e.pos)
        return ty

    def address_error(self, e, want):
        """why an address-like literal failed to decode where an address is expected"""
        if want != BYTES32 or not isinstance(e, Literal) or not self.codec.is_address(e.value):
            return None
        try:
            self.codec.decode(e.value)
        except ValueError as exc:
            return str(exc)
        return None

    def check_expr(self, e, ctx):
        ty = self._check_expr(e, ctx)
        self.result.types[e] = ty
        return ty

    def _check_expr(self, e, ctx):
        if isinstance(e, Literal):
            if e.kind == "int":
                return INT
            if e.kind == "bool":
                return BOOL
            if e.kind == "hex":
                return BYTES32 if len(e.value) == 32 else BYTES
            return STRING if self.codec.try_decode(e.value) is None else BYTES32
        if isinstance(e, Identifier):
            return self.check_identifier(e, ctx)
        if isinstance(e, BinaryOp):
            return self.check_binary(e, ctx)
        if isinstance(e, UnaryOp):
            want = BOOL if e.op == "!" else INT
            self.expect_type(e.operand, want, ctx, f"operand of {e.op}")
            return want
        if isinstance(e, MemberAccess):
            return self.check_member(e, ctx)
        if isinstance(e, Index):
            if ctx.function is not None or not ctx.stateful:
                self.error("reading state requires a @stateful action", e.pos)
                return ANY
            return self.check_index(e, ctx) or ANY
        if isinstance(e, Call):
            return self.check_call(e, ctx)
        self.error(f"unsupported expression {type(e).__name__}", getattr(e, "pos", None))
        return ANY

    def check_identifier(self, e, ctx):
        if e.name == "msg":
            self.error("msg can only be used as msg.sender or msg.value", e.pos)
            return ANY
        sym = ctx.scope.lookup(e.name)
        if sym is None:
            self.error(f"undeclared identifier {e.name}", e.pos)
            return ANY
        if sym.kind == SymbolKind.STATE:
            self.error(f"state field {e.name} is read as state.{e.name}", e.pos)
            return category(sym.type)
        if sym.kind in (SymbolKind.EVENT, SymbolKind.FUNCTION):
            self.error(f"{sym.kind.value} {e.name} is not a value", e.pos)
            return ANY
        if sym.kind == SymbolKind.STORAGE and ctx.function is not None:
            self.error(f"functions cannot reference storage variable {e.name}; pass it as an argument", e.pos)
        return category(sym.type)

    def check_binary(self, e, ctx):
        if is_msg(e.left, "sender") or is_msg(e.right, "sender"):
            self.error("msg.sender can only be used as require(msg.sender == address)", e.pos)
            return BOOL
        if e.op in ("+", "-", "*", "/", "%"):
            self.expect_type(e.left, INT, ctx, f"left operand of {e.op}")
            self.expect_type(e.right, INT, ctx, f"right operand of {e.op}")
            return INT
        if e.op in ("<", ">", "<=", ">="):
            self.expect_type(e.left, INT, ctx, f"left operand of {e.op}")
            self.expect_type(e.right, INT, ctx, f"right operand of {e.op}")
            return BOOL
        if e.op in ("==", "!="):
            lt = self.check_expr(e.left, ctx)
            rt = self.check_expr(e.right, ctx)
            if not (compatible(lt, rt) or compatible(rt, lt)):
                self.error(f"cannot compare {lt} with {rt}", e.pos)
            if lt.startswith("mapping") or rt.startswith("mapping"):
                self.error("mappings cannot be compared", e.pos)
            return BOOL
        if e.op in ("&&", "||"):
            self.expect_type(e.left, BOOL, ctx, f"left operand of {e.op}")
            self.expect_type(e.right, BOOL, ctx, f"right operand of {e.op}")
            return BOOL
        self.error(f"unknown operator {e.op}", e.pos)
        return ANY

    def check_member(self, e, ctx):
        if is_name(e.obj, "msg"):
            if e.prop == "sender":
                self.error("msg.sender can only be used as require(msg.sender == address)", e.pos)
                return BYTES32
            if e.prop == "value":
                if ctx.action is None:
                    self.error("msg.value is only available in actions", e.pos)
                else:
                    ctx.action.uses_amount = True
                return INT
            self.error(f"unknown member msg.{e.prop}", e.pos)
            return ANY
        if is_name(e.obj, "state"):
            if ctx.function is not None or not ctx.stateful:
                self.error("reading state requires a @stateful action", e.pos)
            return self.state_field_type(e, ctx) or ANY
        self.error("member access is only supported on msg and state", e.pos)
        return ANY

    def state_field_type(self, e, ctx):
        sym = self.result.globals.lookup(e.prop)
        if sym is None or sym.kind != SymbolKind.STATE:
            self.error(f"unknown state field {e.prop}", e.pos)
            return None
        ty = category(sym.type)
        self.result.types[e] = ty
        return ty

    def check_index(self, e, ctx):
        if not (isinstance(e.obj, MemberAccess) and is_name(e.obj.obj, "state")):
            self.error("only state mappings can be indexed", e.pos)
            return None
        sym = self.result.globals.lookup(e.obj.prop)
        if sym is None or sym.kind != SymbolKind.STATE:
            self.error(f"unknown state field {e.obj.prop}", e.pos)
            return None
        if sym.type.name != "mapping":
            self.error(f"state field {e.obj.prop} is not a mapping", e.pos)
            return None
        self.result.types[e.obj] = category(sym.type)
        self.expect_type(e.key, category(sym.type.key), ctx, "mapping key")
        ty = category(sym.type.value)
        self.result.types[e] = ty
        return ty

    def check_call(self, e, ctx):
        if e.callee in STATEMENT_CALLS:
            self.error(f"{e.callee} is a statement, not a value", e.pos)
            return ANY
        sym = self.result.globals.lookup(e.callee)
        if sym is not None and sym.kind == SymbolKind.FUNCTION:
            fn = sym.node
            if len(fn.params) != len(e.args):
                self.error(f"{e.callee} takes {len(fn.params)} argument(s), got {len(e.args)}", e.pos)
            for p, a in zip(fn.params, e.args):
                self.expect_type(a, category(p.type), ctx, f"argument {p.name} of {e.callee}")
            for a in e.args[len(fn.params):]:
                self.check_expr(a, ctx)
            return category(fn.returns)
        if e.callee in BUILTINS:
            _op, argty, result, arity = BUILTINS[e.callee]
            if arity is not None and len(e.args) != arity:
                self.error(f"{e.callee} takes {arity} argument(s), got {len(e.args)}", e.pos)
            for a in e.args:
                self.expect_type(a, argty, ctx, f"argument of {e.callee}")
            return result
        lib = library_function(e.callee)
        if lib is not None:
            self.result.library_calls[e] = lib
            self.result.name_map[e.callee] = lib[0]
            for a in e.args:
                self.check_expr(a, ctx)
            return BYTES32 if lib[0] == "sha256tree" else ANY
        self.error(f"unknown function {e.callee}", e.pos)
        for a in e.args:
            self.check_expr(a, ctx)
        return ANY

def is_name(e, name):
    return isinstance(e, Identifier) and e.name == name

def is_msg(e, prop):
    return isinstance(e, MemberAccess) and is_name(e.obj, "msg") and e.prop == prop

def analyze(coin, address_codec=None):
    return Analyzer(coin, address_codec).analyze()
