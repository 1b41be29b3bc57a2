#!/usr/bin/env python3

from element import ATOM, CONS, SYMBOL, Atom, CommentMap, Cons, Element, SerDeser, nil, one, to_list
from clspformat import DEFAULT_LINE_LENGTH, serialize as render
from errors import GenerationError
from library import include_for, INCLUDE_INDEX
from opcodes import condition_code
from treehash import curry, curried_puzzle_hash, hexhash

####
# node constructors, shared with the code generator

def sym(name):
    return Atom.symbol(name)

def as_element(v):
    """coercion for program code: strings name variables, not text"""
    if isinstance(v, Element):
        return v
    if isinstance(v, Expr):
        return v.el
    if isinstance(v, bool):
        return one if v else nil
    if v is None:
        return nil
    if isinstance(v, int):
        return Atom(v)
    if isinstance(v, (bytes, bytearray)):
        return Atom(bytes(v))
    if isinstance(v, str):
        return sym(v)
    raise TypeError(f"cannot use {type(v).__name__} in a program")

def call(op, *args):
    return to_list([sym(op)] + [as_element(a) for a in args])

def if_node(cond, then, otherwise):
    return call("if", cond, then, otherwise)

def fail_node(message=None):
    if message is None:
        return call("x")
    return to_list([sym("x"), Atom.string(message)])

def condition(name, *args):
    """(list NAME args...) with the condition_codes.clib constant name"""
    condition_code(name)
    return to_list([sym("list"), sym(name)] + [as_element(a) for a in args])

def cons_condition(cond, rest):
    return call("c", cond, rest)

def param(name):
    return Expr(sym(name))

def head_symbol(el):
    if el.kind == CONS and el.first.kind == ATOM and el.first.hint == SYMBOL:
        return el.first.as_str()
    return None

def auto_includes(trees, declared=()):
    """include files for library functions, macros and condition names used in trees"""
    found = []
    declared = set(declared)
    stk = list(reversed(trees))
    while stk:
        el = stk.pop()
        if el.kind == ATOM:
            if el.hint == SYMBOL:
                name = el.as_str()
                path = include_for(name)
                if path == "condition_codes.clib" and name not in declared and path not in found:
                    found.append(path)
            continue
        h = head_symbol(el)
        if h is not None and h not in declared:
            path = include_for(h)
            if path is not None and path != "opcodes.clib" and path not in found:
                found.append(path)
        stk.append(el.rest)
        stk.append(el.first)
    return found

####

class Expr:
    """expression helper over program code"""
    __slots__ = ("el",)

    def __init__(self, el):
        self.el = as_element(el)

    def __repr__(self): return f"Expr<{self.el}>"

    def _op(self, op, *others):
        return Expr(call(op, self.el, *others))

    def add(self, other): return self._op("+", other)
    def sub(self, other): return self._op("-", other)
    def mul(self, other): return self._op("*", other)
    def div(self, other): return self._op("/", other)
    def mod(self, other): return Expr(call("r", call("divmod", self.el, other)))
    def gt(self, other): return self._op(">", other)
    def lt(self, other): return Expr(call(">", other, self.el))
    def gte(self, other): return Expr(call("not", call(">", other, self.el)))
    def lte(self, other): return Expr(call("not", call(">", self.el, other)))
    def gts(self, other): return self._op(">s", other)
    def eq(self, other): return self._op("=", other)
    def ne(self, other): return Expr(call("not", call("=", self.el, other)))
    def and_(self, *others): return self._op("all", *others)
    def or_(self, *others): return self._op("any", *others)
    def not_(self): return self._op("not")
    def first(self): return self._op("f")
    def rest(self): return self._op("r")
    def is_cons(self): return self._op("l")
    def sha256(self, *others): return self._op("sha256", *others)
    def tree_hash(self): return self._op("sha256tree")
    def concat(self, *others): return self._op("concat", *others)

    __add__ = add
    __sub__ = sub
    __mul__ = mul
    __truediv__ = div
    __mod__ = mod

####

class PuzzleBuilder:
    """fluent construction of a (mod PARAMS ...) program"""

    def __init__(self, name=None, comments=None):
        self.name = name
        self._curried = []
        self._solution = []
        self._rest = None
        self._includes = []
        self._constants = []
        self._functions = []
        self._steps = []
        self._tail = None
        self._notes = []
        self._comments = comments if comments is not None else CommentMap()

    # parameters

    def curried_param(self, name, value=None):
        if any(n == name for n, _ in self._curried):
            raise GenerationError(f"duplicate curried parameter {name}")
        self._curried.append((name, None if value is None else as_element(value)))
        return self

    def with_curried_params(self, *names):
        for n in names:
            self.curried_param(n)
        return self

    def with_solution_params(self, *names):
        for n in names:
            if n in self._solution:
                raise GenerationError(f"duplicate solution parameter {n}")
            self._solution.append(n)
        return self

    def rest_param(self, name):
        self._rest = name
        return self

    @property
    def curried_names(self):
        return [n for n, _ in self._curried]

    @property
    def solution_names(self):
        return list(self._solution)

    def params_element(self):
        tail = nil if self._rest is None else sym(self._rest)
        return to_list([sym(n) for n in self.curried_names + self._solution], tail)

    # declarations

    def include(self, path):
        if path not in self._includes:
            self._includes.append(path)
        return self

    def defconstant(self, name, value):
        self._constants.append(self._noted(call("defconstant", name, as_element(value))))
        return self

    def defun(self, name, params, body, inline=False):
        kw = "defun-inline" if inline else "defun"
        self._functions.append(self._noted(to_list([sym(kw), sym(name), to_list([sym(p) for p in params]), as_element(body)])))
        return self

    def comment(self, text):
        self._notes.append(text)
        return self

    def _noted(self, el):
        for n in self._notes:
            self._comments.attach(el, n)
        self._notes = []
        return el

    # body

    def _step(self, *step):
        if self._tail is not None:
            raise GenerationError("no statements may follow a return or failure")
        notes, self._notes = self._notes, []
        self._steps.append((notes,) + step)
        return self

    def add_condition(self, cond):
        return self._step("cons", as_element(cond))

    def condition(self, name, *args):
        return self.add_condition(condition(name, *args))

    def create_coin(self, puzzle_hash, amount, memos=None):
        args = [puzzle_hash, amount]
        if memos is not None:
            args.append(call("list", *memos))
        return self.condition("CREATE_COIN", *args)

    def reserve_fee(self, amount):
        return self.condition("RESERVE_FEE", amount)

    def require_signature(self, pubkey, message=None):
        msg = message if message is not None else call("sha256tree", sym("@"))
        return self.condition("AGG_SIG_ME", pubkey, msg)

    def require_signature_unsafe(self, pubkey, message):
        return self.condition("AGG_SIG_UNSAFE", pubkey, message)

    def create_announcement(self, message, puzzle=False):
        return self.condition("CREATE_PUZZLE_ANNOUNCEMENT" if puzzle else "CREATE_COIN_ANNOUNCEMENT", message)

    def assert_announcement(self, announcement_id, puzzle=False):
        return self.condition("ASSERT_PUZZLE_ANNOUNCEMENT" if puzzle else "ASSERT_COIN_ANNOUNCEMENT", announcement_id)

    def assert_my_amount(self, amount): return self.condition("ASSERT_MY_AMOUNT", amount)
    def assert_my_puzzle_hash(self, h): return self.condition("ASSERT_MY_PUZZLEHASH", h)
    def assert_my_coin_id(self, coin_id): return self.condition("ASSERT_MY_COIN_ID", coin_id)
    def assert_my_parent_id(self, parent_id): return self.condition("ASSERT_MY_PARENT_ID", parent_id)
    def assert_seconds_relative(self, s): return self.condition("ASSERT_SECONDS_RELATIVE", s)
    def assert_seconds_absolute(self, s): return self.condition("ASSERT_SECONDS_ABSOLUTE", s)
    def assert_height_relative(self, h): return self.condition("ASSERT_HEIGHT_RELATIVE", h)
    def assert_height_absolute(self, h): return self.condition("ASSERT_HEIGHT_ABSOLUTE", h)
    def assert_before_seconds_relative(self, s): return self.condition("ASSERT_BEFORE_SECONDS_RELATIVE", s)
    def assert_before_seconds_absolute(self, s): return self.condition("ASSERT_BEFORE_SECONDS_ABSOLUTE", s)
    def assert_before_height_relative(self, h): return self.condition("ASSERT_BEFORE_HEIGHT_RELATIVE", h)
    def assert_before_height_absolute(self, h): return self.condition("ASSERT_BEFORE_HEIGHT_ABSOLUTE", h)

    def remark(self, *args):
        return self.condition("REMARK", *args)

    def require(self, cond, message=None):
        return self._step("require", as_element(cond), message)

    def if_(self, cond, then_fn, else_fn=None):
        """both arms continue with whatever follows the if"""
        then_b = PuzzleBuilder(comments=self._comments)
        then_fn(then_b)
        else_b = None
        if else_fn is not None:
            else_b = PuzzleBuilder(comments=self._comments)
            else_fn(else_b)
        return self._step("if", as_element(cond), then_b, else_b)

    def fail(self, message=None):
        self._step("fail")
        self._tail = fail_node(message)
        return self

    def returns(self, value):
        self._step("return")
        self._tail = as_element(value)
        return self

    def build_body(self, tail=None):
        result = self._tail if self._tail is not None else (nil if tail is None else tail)
        for step in reversed(self._steps):
            notes, kind = step[0], step[1]
            if kind == "cons":
                result = cons_condition(step[2], result)
            elif kind == "require":
                result = if_node(step[2], result, fail_node(step[3]))
            elif kind == "if":
                then = step[3].build_body(result)
                otherwise = result if step[4] is None else step[4].build_body(result)
                result = if_node(step[2], then, otherwise)
            elif kind in ("fail", "return"):
                pass
            else:
                raise GenerationError(f"unknown builder step {kind}")
            for n in notes:
                self._comments.attach(result, n)
        return result

    def declared_names(self):
        names = set(self.curried_names) | set(self._solution)
        if self._rest is not None:
            names.add(self._rest)
        for c in self._constants:
            names.add(c.rest.first.as_str())
        for f in self._functions:
            names.add(f.rest.first.as_str())
        return names

    def includes(self, body=None):
        body = self.build_body() if body is None else body
        found = list(self._includes)
        for path in auto_includes(self._constants + self._functions + [body], self.declared_names()):
            if path not in found:
                found.append(path)
        return found

    def build(self):
        body = self.build_body()
        for path in self.includes(body):
            if path not in INCLUDE_INDEX and not path.endswith((".clib", ".clinc", ".clsp")):
                raise GenerationError(f"unknown include {path}")
        items = [sym("mod"), self.params_element()]
        items += [call("include", p) for p in self.includes(body)]
        items += self._constants
        items += self._functions
        items.append(body)
        return to_list(items)

    def serialize(self, indent=False, max_line_length=DEFAULT_LINE_LENGTH):
        return render(self.build(), indent=indent, max_line_length=max_line_length, comments=self._comments)

    def mod_hash(self):
        return self.build().tree_hash()

    def _curry_values(self, values):
        if values:
            if len(values) != len(self._curried):
                raise GenerationError(f"expected {len(self._curried)} curried values, got {len(values)}")
            return [as_element(v) for v in values]
        missing = [n for n, v in self._curried if v is None]
        if missing:
            raise GenerationError(f"no value for curried parameter(s) {', '.join(missing)}")
        return [v for _, v in self._curried]

    def curry(self, *values):
        return curry(self.build(), *self._curry_values(values))

    def puzzle_hash(self, *values):
        vals = self._curry_values(values)
        return curried_puzzle_hash(self.mod_hash(), *[v.tree_hash() for v in vals])

    def puzzle_hash_hex(self, *values):
        return hexhash(self.puzzle_hash(*values))

####

def coerce(v):
    """spend time values: bools by presence, numbers minimal, 0x strings as bytes"""
    if isinstance(v, Element):
        return v
    if isinstance(v, SolutionBuilder):
        return v.build()
    if v is None:
        return nil
    if isinstance(v, bool):
        return one if v else nil
    if isinstance(v, int):
        return Atom(v)
    if isinstance(v, (bytes, bytearray)):
        return Atom(bytes(v))
    if isinstance(v, str):
        if v.startswith("0x"):
            h = v[2:]
            return Atom(bytes.fromhex(h if len(h) % 2 == 0 else "0" + h))
        return Atom.string(v)
    if isinstance(v, (list, tuple)):
        return to_list([coerce(x) for x in v])
    raise TypeError(f"cannot use {type(v).__name__} in a solution")

class SolutionBuilder:
    def __init__(self):
        self._items = []

    def add(self, *values):
        self._items.extend(coerce(v) for v in values)
        return self

    def add_nil(self):
        self._items.append(nil)
        return self

    def add_list(self, values):
        if callable(values):
            sub = SolutionBuilder()
            values(sub)
            self._items.append(sub.build())
        else:
            self._items.append(to_list([coerce(v) for v in values]))
        return self

    def add_conditions(self, fn):
        conds = ConditionListBuilder()
        fn(conds)
        self._items.append(conds.build())
        return self

    def add_action(self, name, *args):
        """selector then arguments; a None name selects the default action"""
        self._items.append(nil if name is None else Atom.string(name))
        return self.add(*args)

    def add_state(self, manager, values):
        self._items.append(manager.encode(values))
        return self

    def add_merkle_proof(self, proof):
        self._items.append(to_list([Atom(bytes(h)) for h in proof]))
        return self

    def build(self):
        return to_list(self._items)

    def serialize(self, indent=False):
        return render(self.build(), indent=indent)

    def to_hex(self):
        return SerDeser().Serialize(self.build()).hex()

class ConditionListBuilder:
    """numeric condition lists, as passed in solutions"""
    def __init__(self):
        self._conds = []

    def add(self, name, *args):
        self._conds.append(to_list([Atom(condition_code(name))] + [coerce(a) for a in args]))
        return self

    def create_coin(self, puzzle_hash, amount, memos=None):
        args = [puzzle_hash, amount] + ([list(memos)] if memos is not None else [])
        return self.add("CREATE_COIN", *args)

    def reserve_fee(self, amount):
        return self.add("RESERVE_FEE", amount)

    def agg_sig_me(self, pubkey, message):
        return self.add("AGG_SIG_ME", pubkey, message)

    def create_announcement(self, message):
        return self.add("CREATE_COIN_ANNOUNCEMENT", message)

    def assert_announcement(self, announcement_id):
        return self.add("ASSERT_COIN_ANNOUNCEMENT", announcement_id)

    def build(self):
        return to_list(self._conds)
