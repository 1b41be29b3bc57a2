#!/usr/bin/env python3

import re
from dataclasses import dataclass

from csast import (Action, Assign, BinaryOp, Call, CoinDecl, ConstDecl, Decorator, Emit,
                   EventDecl, ExprStmt, Fail, FunctionDecl, Identifier, If, Index, Literal,
                   MemberAccess, Param, Require, Return, Send, TypeRef, UnaryOp, VarDecl)
from errors import LexError, ParseError, SourcePos

KEYWORDS = {
    "coin", "storage", "state", "const", "action", "event", "require", "send",
    "emit", "if", "else", "return", "include", "function", "inline", "true",
    "false", "exception",
}

TYPES = ({f"uint{n}" for n in range(8, 257, 8)} | {f"int{n}" for n in range(8, 257, 8)}
         | {"address", "bool", "bytes", "bytes32", "string", "mapping"})

ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "0": "\0"}

@dataclass(frozen=True)
class Token:
    kind: str          # keyword type ident number hex string op eof
    value: object
    pos: SourcePos

    def __str__(self):
        if self.kind == "eof":
            return "end of input"
        return f"{self.kind} {self.value!r}"

class Tokenizer:
    re_token = re.compile(r'''
        (?P<ws>[ \t\r\n]+)
      | (?P<linecomment>//[^\n]*)
      | (?P<blockcomment>/\*.*?\*/)
      | (?P<badcomment>/\*)
      | (?P<hex>0x[0-9a-fA-F]*)
      | (?P<number>[0-9]+)
      | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
      | (?P<badstring>["'])
      | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<op>=>|->|==|!=|<=|>=|&&|\|\||\+=|-=|[-+*/%<>=!(){}\[\];,.@:])
    ''', re.X | re.S)

    def __init__(self, source):
        self.source = source

    def unescape(self, body, pos):
        out = []
        it = iter(body)
        for ch in it:
            if ch == "\\":
                nxt = next(it, None)
                if nxt not in ESCAPES:
                    raise LexError(f"invalid escape \\{nxt}", pos)
                out.append(ESCAPES[nxt])
            else:
                out.append(ch)
        return "".join(out)

    def tokens(self):
        s = self.source
        where = 0
        line, line_start = 1, 0
        res = []
        while where < len(s):
            m = self.re_token.match(s, where)
            pos = SourcePos(line, where - line_start + 1)
            if m is None:
                raise LexError(f"unexpected character {s[where]!r}", pos)
            group, text = m.lastgroup, m.group()
            if group == "badcomment":
                raise LexError("unterminated block comment", pos)
            elif group == "badstring":
                raise LexError("unterminated string", pos)
            elif group == "hex":
                if len(text) == 2:
                    raise LexError("hex literal without digits", pos)
                h = text[2:]
                res.append(Token("hex", bytes.fromhex(h if len(h) % 2 == 0 else "0" + h), pos))
            elif group == "number":
                res.append(Token("number", int(text), pos))
            elif group == "string":
                res.append(Token("string", self.unescape(text[1:-1], pos), pos))
            elif group == "ident":
                if text in KEYWORDS:
                    res.append(Token("keyword", text, pos))
                elif text in TYPES:
                    res.append(Token("type", text, pos))
                else:
                    res.append(Token("ident", text, pos))
            elif group == "op":
                res.append(Token("op", text, pos))
            nl = text.count("\n")
            if nl:
                line += nl
                line_start = where + text.rindex("\n") + 1
            where = m.end()
        res.append(Token("eof", None, SourcePos(line, where - line_start + 1)))
        return res

def tokenize(source):
    return Tokenizer(source).tokens()

class Parser:
    BINARY_LEVELS = [
        ("||",),
        ("&&",),
        ("==", "!=", "<", ">", "<=", ">="),
        ("+", "-"),
        ("*", "/", "%"),
    ]

    def __init__(self, tokens):
        self.toks = tokens
        self.i = 0

    # token helpers

    def peek(self, ahead=0):
        return self.toks[min(self.i + ahead, len(self.toks) - 1)]

    def advance(self):
        tok = self.peek()
        if tok.kind != "eof":
            self.i += 1
        return tok

    def check(self, kind, value=None, ahead=0):
        tok = self.peek(ahead)
        return tok.kind == kind and (value is None or tok.value == value)

    def match(self, kind, value=None):
        if self.check(kind, value):
            return self.advance()
        return None

    def expect(self, kind, value=None, what=None):
        tok = self.peek()
        if not self.check(kind, value):
            want = what or (repr(value) if value is not None else kind)
            raise ParseError(f"expected {want}, found {tok}", tok.pos)
        return self.advance()

    # declarations

    def parse_program(self):
        includes = []
        while self.check("keyword", "include"):
            includes.append(self.parse_include())
        decorators = self.parse_decorators()
        start = self.expect("keyword", "coin")
        name = self.expect("ident", what="coin name").value
        self.expect("op", "{")
        members = {"storage": [], "state": [], "const": [], "function": [], "action": [], "event": []}
        while not self.check("op", "}"):
            if self.check("eof"):
                raise ParseError("missing } at end of coin", self.peek().pos)
            self.parse_member(members, includes)
        self.expect("op", "}")
        self.expect("eof", what="end of input")
        return CoinDecl(name, tuple(members["storage"]), tuple(members["state"]),
                        tuple(members["const"]), tuple(members["function"]),
                        tuple(members["action"]), tuple(members["event"]),
                        tuple(decorators), tuple(includes), start.pos)

    def parse_include(self):
        self.expect("keyword", "include")
        path = self.expect("string", what="include file name").value
        self.expect("op", ";")
        return path

    def parse_decorators(self):
        decs = []
        while self.check("op", "@"):
            at = self.advance()
            name = self.expect("ident", what="decorator name").value
            args = ()
            if self.match("op", "("):
                args = tuple(self.parse_args(")"))
            decs.append(Decorator(name, args, at.pos))
        return decs

    def parse_member(self, members, includes):
        tok = self.peek()
        if tok.kind == "keyword" and tok.value in ("storage", "state"):
            self.advance()
            members[tok.value].extend(self.parse_var_decls())
        elif tok.kind == "keyword" and tok.value == "const":
            self.advance()
            if self.check("type"):
                self.parse_type()
            name = self.expect("ident", what="constant name").value
            self.expect("op", "=")
            value = self.parse_expr()
            self.expect("op", ";")
            members["const"].append(ConstDecl(name, value, tok.pos))
        elif tok.kind == "keyword" and tok.value == "event":
            self.advance()
            name = self.expect("ident", what="event name").value
            self.expect("op", "(")
            params = self.parse_params()
            self.expect("op", ";")
            members["event"].append(EventDecl(name, params, tok.pos))
        elif tok.kind == "keyword" and tok.value in ("function", "inline"):
            members["function"].append(self.parse_function())
        elif tok.kind == "keyword" and tok.value == "include":
            includes.append(self.parse_include())
        elif (tok.kind == "keyword" and tok.value == "action") or (tok.kind == "op" and tok.value == "@"):
            decorators = self.parse_decorators()
            start = self.expect("keyword", "action")
            name = self.expect("ident", what="action name").value
            self.expect("op", "(")
            params = self.parse_params()
            body = self.parse_block()
            members["action"].append(Action(name, params, body, tuple(decorators), start.pos))
        else:
            raise ParseError(f"unexpected {tok} in coin body", tok.pos)

    def parse_var_decls(self):
        decls = []
        if self.match("op", "{"):
            while not self.match("op", "}"):
                decls.append(self.parse_var_decl())
        else:
            decls.append(self.parse_var_decl())
        return decls

    def parse_var_decl(self):
        pos = self.peek().pos
        ty = self.parse_type()
        name = self.expect("ident", what="variable name").value
        init = None
        if self.match("op", "="):
            init = self.parse_expr()
        self.expect("op", ";")
        return VarDecl(name, ty, init, pos)

    def parse_type(self):
        tok = self.expect("type", what="type name")
        if tok.value != "mapping":
            return TypeRef(tok.value)
        self.expect("op", "(")
        key = self.parse_type()
        self.expect("op", "=>")
        value = self.parse_type()
        self.expect("op", ")")
        return TypeRef("mapping", key, value)

    def parse_params(self):
        """after the opening paren, through the closing one"""
        params = []
        if not self.match("op", ")"):
            while True:
                pos = self.peek().pos
                ty = self.parse_type()
                name = self.expect("ident", what="parameter name").value
                params.append(Param(name, ty, pos))
                if self.match("op", ")"):
                    break
                self.expect("op", ",")
        return tuple(params)

    def parse_function(self):
        start = self.peek()
        inline = bool(self.match("keyword", "inline"))
        self.expect("keyword", "function")
        name = self.expect("ident", what="function name").value
        self.expect("op", "(")
        params = self.parse_params()
        returns = None
        if self.match("op", "->") or self.match("ident", "returns"):
            paren = self.match("op", "(")
            returns = self.parse_type()
            if paren:
                self.expect("op", ")")
        body = self.parse_block()
        return FunctionDecl(name, params, returns, body, inline, start.pos)

    # statements

    def parse_block(self):
        self.expect("op", "{")
        stmts = []
        while not self.match("op", "}"):
            if self.check("eof"):
                raise ParseError("missing }", self.peek().pos)
            stmts.append(self.parse_statement())
        return tuple(stmts)

    def parse_statement(self):
        tok = self.peek()
        if tok.kind == "keyword":
            if tok.value == "require":
                self.advance()
                self.expect("op", "(")
                cond = self.parse_expr()
                message = None
                if self.match("op", ","):
                    message = self.expect("string", what="require message").value
                self.expect("op", ")")
                self.expect("op", ";")
                return Require(cond, message, tok.pos)
            if tok.value == "send":
                self.advance()
                self.expect("op", "(")
                args = self.parse_args(")")
                self.expect("op", ";")
                if len(args) not in (2, 3):
                    raise ParseError("send takes a recipient, an amount and an optional memo", tok.pos)
                return Send(args[0], args[1], args[2] if len(args) == 3 else None, tok.pos)
            if tok.value == "emit":
                self.advance()
                name = self.expect("ident", what="event name").value
                self.expect("op", "(")
                args = self.parse_args(")")
                self.expect("op", ";")
                return Emit(name, tuple(args), tok.pos)
            if tok.value == "exception":
                self.advance()
                message = None
                if self.match("op", "("):
                    if self.check("string"):
                        message = self.advance().value
                    self.expect("op", ")")
                self.expect("op", ";")
                return Fail(message, tok.pos)
            if tok.value == "if":
                return self.parse_if()
            if tok.value == "return":
                self.advance()
                value = None
                if not self.check("op", ";"):
                    value = self.parse_expr()
                self.expect("op", ";")
                return Return(value, tok.pos)
        if tok.kind == "type":
            ty = self.parse_type()
            name = self.expect("ident", what="variable name")
            self.expect("op", "=")
            value = self.parse_expr()
            self.expect("op", ";")
            return Assign(Identifier(name.value, name.pos), "=", value, tok.pos, decl_type=ty)

        expr = self.parse_expr()
        for op in ("=", "+=", "-="):
            if self.match("op", op):
                if not isinstance(expr, (Identifier, MemberAccess, Index)):
                    raise ParseError("invalid assignment target", tok.pos)
                value = self.parse_expr()
                self.expect("op", ";")
                return Assign(expr, op, value, tok.pos)
        self.expect("op", ";")
        return ExprStmt(expr, tok.pos)

    def parse_if(self):
        start = self.expect("keyword", "if")
        self.expect("op", "(")
        cond = self.parse_expr()
        self.expect("op", ")")
        then = self.parse_block()
        otherwise = None
        if self.match("keyword", "else"):
            if self.check("keyword", "if"):
                otherwise = (self.parse_if(),)
            else:
                otherwise = self.parse_block()
        return If(cond, then, otherwise, start.pos)

    # expressions

    def parse_args(self, close):
        args = []
        if self.match("op", close):
            return args
        while True:
            args.append(self.parse_expr())
            if self.match("op", close):
                return args
            self.expect("op", ",")

    def parse_expr(self, level=0):
        if level == len(self.BINARY_LEVELS):
            return self.parse_unary()
        left = self.parse_expr(level + 1)
        ops = self.BINARY_LEVELS[level]
        while self.peek().kind == "op" and self.peek().value in ops:
            tok = self.advance()
            right = self.parse_expr(level + 1)
            left = BinaryOp(tok.value, left, right, tok.pos)
        return left

    def parse_unary(self):
        tok = self.peek()
        if tok.kind == "op" and tok.value in ("!", "-"):
            self.advance()
            operand = self.parse_unary()
            if tok.value == "-" and isinstance(operand, Literal) and operand.kind == "int":
                return Literal(-operand.value, "int", tok.pos)
            return UnaryOp(tok.value, operand, tok.pos)
        return self.parse_postfix()

    def parse_postfix(self):
        expr = self.parse_primary()
        while True:
            tok = self.peek()
            if self.match("op", "."):
                prop = self.expect("ident", what="member name")
                expr = MemberAccess(expr, prop.value, tok.pos)
            elif self.match("op", "("):
                if not isinstance(expr, Identifier):
                    raise ParseError("only named functions can be called", tok.pos)
                expr = Call(expr.name, tuple(self.parse_args(")")), expr.pos)
            elif self.match("op", "["):
                key = self.parse_expr()
                self.expect("op", "]")
                expr = Index(expr, key, tok.pos)
            else:
                return expr

    def parse_primary(self):
        tok = self.advance()
        if tok.kind == "number":
            return Literal(tok.value, "int", tok.pos)
        if tok.kind == "hex":
            return Literal(tok.value, "hex", tok.pos)
        if tok.kind == "string":
            return Literal(tok.value, "string", tok.pos)
        if tok.kind == "keyword" and tok.value in ("true", "false"):
            return Literal(tok.value == "true", "bool", tok.pos)
        if tok.kind == "ident":
            return Identifier(tok.value, tok.pos)
        if tok.kind == "keyword" and tok.value == "state":
            return Identifier("state", tok.pos)
        if tok.kind == "op" and tok.value == "(":
            expr = self.parse_expr()
            self.expect("op", ")")
            return expr
        raise ParseError(f"unexpected {tok} in expression", tok.pos)

def parse(source):
    return Parser(tokenize(source)).parse_program()
