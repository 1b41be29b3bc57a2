#!/usr/bin/env python3

import hashlib
import re

from errors import LexError, ParseError, SourcePos

# kinds
ATOM=255
CONS=254

# display hints; they never affect equality or hashing
INT="int"
BYTES="bytes"
STRING="string"
SYMBOL="symbol"

def int_to_bytes(i):
    """big-endian two's complement, shortest form; 0 is the empty atom"""
    if i == 0:
        return b''
    b = i.to_bytes((i.bit_length() + 8) // 8, byteorder='big', signed=True)
    while len(b) > 1 and ((b[0] == 0x00 and b[1] < 0x80) or (b[0] == 0xff and b[1] >= 0x80)):
        b = b[1:]
    return b

def bytes_to_int(b):
    if b == b'':
        return 0
    return int.from_bytes(b, byteorder='big', signed=True)

def is_canonical_int(b):
    return int_to_bytes(bytes_to_int(b)) == b

def sha256(*parts):
    return hashlib.sha256(b''.join(parts)).digest()

class Element:
    __slots__ = ("_hash",)
    kind = None

    def __init__(self):
        assert self.kind is not None
        self._hash = None

    def is_atom(self):
        return self.kind == ATOM

    def is_cons(self):
        return self.kind == CONS

    def is_nil(self):
        return self.kind == ATOM and self.atom == b''

    def tree_hash(self):
        if self._hash is not None:
            return self._hash
        stk = [self]
        while stk:
            el = stk[-1]
            if el._hash is not None:
                stk.pop()
            elif el.kind == ATOM:
                el._hash = sha256(b'\x01', el.atom)
                stk.pop()
            else:
                todo = [c for c in (el.rest, el.first) if c._hash is None]
                if todo:
                    stk.extend(todo)
                else:
                    el._hash = sha256(b'\x02', el.first._hash, el.rest._hash)
                    stk.pop()
        return self._hash

    def __eq__(self, other):
        if not isinstance(other, Element):
            return NotImplemented
        return self is other or self.tree_hash() == other.tree_hash()

    def __hash__(self):
        return int.from_bytes(self.tree_hash()[:8], byteorder='big')

    def __repr__(self): return f"El<{self}>"

    def __str__(self):
        return render_compact(self)

    def as_list(self):
        """python list of the elements of a nil-terminated list, or None"""
        res = []
        el = self
        while el.kind == CONS:
            res.append(el.first)
            el = el.rest
        if not el.is_nil():
            return None
        return res

    def list_tail(self):
        el = self
        while el.kind == CONS:
            el = el.rest
        return el

class Atom(Element):
    __slots__ = ("atom", "hint")
    kind = ATOM

    re_printable = re.compile(r'^[\x20-\x7e]*$')

    def __init__(self, value, hint=None):
        super().__init__()
        if isinstance(value, bool):
            raise TypeError("booleans have no implicit atom encoding")
        elif isinstance(value, int):
            self.atom = int_to_bytes(value)
            self.hint = INT if hint is None else hint
        elif isinstance(value, (bytes, bytearray)):
            self.atom = bytes(value)
            self.hint = BYTES if hint is None else hint
        else:
            raise TypeError(f"cannot make an atom from {type(value).__name__}; use Atom.string or Atom.symbol")

    @classmethod
    def string(cls, s):
        return cls(s.encode('utf8'), hint=STRING)

    @classmethod
    def symbol(cls, name):
        return cls(name.encode('utf8'), hint=SYMBOL)

    @classmethod
    def guess(cls, b):
        if len(b) <= 4 and is_canonical_int(b):
            return cls(b, hint=INT)
        return cls(b, hint=BYTES)

    def as_int(self):
        return bytes_to_int(self.atom)

    def as_str(self):
        return self.atom.decode('utf8')

    def is_symbol(self):
        return self.hint == SYMBOL

    def __str__(self):
        return render_atom(self)

class Cons(Element):
    __slots__ = ("first", "rest")
    kind = CONS

    def __init__(self, first, rest):
        super().__init__()
        if not isinstance(first, Element) or not isinstance(rest, Element):
            raise TypeError("pairs are built from elements")
        self.first = first
        self.rest = rest

nil = Atom(b'')
one = Atom(1)

def to_list(items, tail=None):
    t = nil if tail is None else tail
    for h in reversed(list(items)):
        t = Cons(h, t)
    return t

def quote_string(s):
    out = ['"']
    for ch in s:
        if ch in SExpr.unescapes:
            out.append("\\" + SExpr.unescapes[ch])
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)

def is_bare_symbol(s):
    if not SExpr.re_sym.match(s) or s in ("nil", "."):
        return False
    if SExpr.re_int.match(s) or s.startswith("0x"):
        return False
    return True

def render_atom(el):
    b = el.atom
    if b == b'':
        return "()"
    if el.hint == INT and is_canonical_int(b):
        return str(bytes_to_int(b))
    if el.hint in (SYMBOL, STRING):
        try:
            s = b.decode('utf8')
        except UnicodeDecodeError:
            return "0x" + b.hex()
        if el.hint == SYMBOL and is_bare_symbol(s):
            return s
        if Atom.re_printable.match(s.replace("\n", "").replace("\t", "").replace("\r", "")):
            return quote_string(s)
    return "0x" + b.hex()

def render_compact(el, atom_fn=render_atom, head_fn=None):
    """single line rendering; head_fn renders atoms in operator position"""
    out = []
    stk = [el]
    while stk:
        item = stk.pop()
        if isinstance(item, str):
            out.append(item)
        elif isinstance(item, tuple):
            out.append(head_fn(item[1]))
        elif item.kind == ATOM:
            out.append(atom_fn(item))
        else:
            seq = ["("]
            cur = item
            while cur.kind == CONS:
                if len(seq) > 1:
                    seq.append(" ")
                elif head_fn is not None and cur.first.kind == ATOM:
                    seq.append(("head", cur.first))
                    cur = cur.rest
                    continue
                seq.append(cur.first)
                cur = cur.rest
            if not cur.is_nil():
                seq.append(" . ")
                seq.append(cur)
            seq.append(")")
            stk.extend(reversed(seq))
    return "".join(out)

class SerDeser:
    """canonical CLVM binary encoding"""
    CONS_BOX = 0xff
    NIL = 0x80
    MAX_SINGLE_BYTE = 0x7f

    SIZE_PREFIXES = [
        (0x40, 1, 0x80),
        (0x2000, 2, 0xc000),
        (0x100000, 3, 0xe00000),
        (0x8000000, 4, 0xf0000000),
        (0x400000000, 5, 0xf800000000),
    ]

    def __init__(self):
        self.b = None
        self.i = None

    def _read(self, n):
        if self.i + n > len(self.b):
            raise ValueError(f"truncated encoding at byte {self.i}")
        x = self.b[self.i:self.i+n]
        self.i += n
        return x

    def Serialize(self, el):
        out = bytearray()
        stk = [el]
        while stk:
            el = stk.pop()
            if el.kind == CONS:
                out.append(self.CONS_BOX)
                stk.append(el.rest)
                stk.append(el.first)
            else:
                out += self._atom_bytes(el.atom)
        return bytes(out)

    def _atom_bytes(self, b):
        if b == b'':
            return bytes([self.NIL])
        if len(b) == 1 and b[0] <= self.MAX_SINGLE_BYTE:
            return b
        for limit, width, prefix in self.SIZE_PREFIXES:
            if len(b) < limit:
                return (prefix | len(b)).to_bytes(width, byteorder='big') + b
        raise ValueError(f"atom too large to serialize ({len(b)} bytes)")

    def Deserialize(self, b):
        self.b, self.i = bytes(b), 0
        vals = []
        todo = ["read"]
        while todo:
            op = todo.pop()
            if op == "read":
                code = self._read(1)[0]
                if code == self.CONS_BOX:
                    todo.extend(["cons", "read", "read"])
                else:
                    vals.append(self._read_atom(code))
            else:
                rest = vals.pop()
                first = vals.pop()
                vals.append(Cons(first, rest))
        if self.i != len(self.b):
            raise ValueError(f"incomplete deserialization {self.i} != {len(self.b)}")
        self.b = self.i = None
        assert len(vals) == 1
        return vals[0]

    def _read_atom(self, code):
        if code == self.NIL:
            return Atom(b'')
        if code <= self.MAX_SINGLE_BYTE:
            return Atom.guess(bytes([code]))
        mask = 0x80
        width = 0
        while code & mask:
            width += 1
            code &= 0xff ^ mask
            mask >>= 1
        if width > 5:
            raise ValueError("bad atom size prefix")
        size = int.from_bytes(bytes([code]) + self._read(width - 1), byteorder='big')
        return Atom.guess(self._read(size))

class CommentMap:
    """comments keyed by the element they precede"""
    def __init__(self):
        self._by_id = {}
        self.trailing = []

    def attach(self, el, text):
        self._by_id.setdefault(id(el), (el, []))[1].append(text)

    def get(self, el):
        entry = self._by_id.get(id(el))
        return [] if entry is None else entry[1]

    def __len__(self):
        return sum(len(v[1]) for v in self._by_id.values()) + len(self.trailing)

class _Frame:
    __slots__ = ("items", "dot", "pos", "notes", "tick")

    def __init__(self, pos, notes, tick=False):
        self.items = []
        self.dot = None
        self.pos = pos
        self.notes = notes
        self.tick = tick

class SExpr:
    re_parse = re.compile(
        r'(?P<ws>\s+)|(?P<comment>;[^\n]*)|(?P<open>[(])|(?P<close>[)])|(?P<tick>[\'])'
        r'|(?P<string>"(?:[^"\\\n]|\\.)*")|(?P<badstring>")'
        r'|(?P<atom>[^\s()";\'\x00-\x1f\x7f]+)')
    re_int = re.compile(r"^-?\d+$")
    re_hex = re.compile(r"^0x[0-9a-fA-F]+$")
    re_sym = re.compile(r"^[a-zA-Z0-9_<>=~&|^+*/%!?$@:.-]+$")

    escapes = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}
    unescapes = {"\n": "n", "\t": "t", "\r": "r", "\\": "\\", '"': '"'}

    @classmethod
    def unescape(cls, body, pos):
        out = []
        it = iter(body)
        for ch in it:
            if ch == "\\":
                nxt = next(it, None)
                if nxt not in cls.escapes:
                    raise LexError(f"invalid escape \\{nxt}", pos)
                out.append(cls.escapes[nxt])
            else:
                out.append(ch)
        return "".join(out)

    @classmethod
    def atom(cls, a, pos):
        if a == "nil":
            return Atom(b'')
        if cls.re_int.match(a):
            return Atom(int(a, 10))
        if a.startswith("0x"):
            if not cls.re_hex.match(a):
                raise ParseError(f"invalid hex literal {a}", pos)
            h = a[2:]
            if len(h) % 2:
                h = "0" + h
            return Atom(bytes.fromhex(h))
        return Atom.symbol(a)

    @classmethod
    def tokens(cls, s):
        """yield (group, text, pos) for every token"""
        where = 0
        line, line_start = 1, 0
        while where < len(s):
            m = cls.re_parse.match(s, where)
            pos = SourcePos(line, where - line_start + 1)
            if m is None:
                raise LexError(f"unexpected character {s[where]!r}", pos)
            group = m.lastgroup
            text = m.group()
            if group == "badstring":
                raise LexError("unterminated string", pos)
            yield group, text, pos
            nl = text.count("\n")
            if nl:
                line += nl
                line_start = where + text.rindex("\n") + 1
            where = m.end()

    @classmethod
    def parse(cls, s, many=False, comments=None):
        top = _Frame(SourcePos(1, 1), [])
        parstack = [top]
        pending = []

        def add(el):
            if comments is not None:
                for c in pending:
                    comments.attach(el, c)
            pending.clear()
            fr = parstack[-1]
            if fr.dot is not None and len(fr.items) > fr.dot:
                raise ParseError("cannot have multiple elements after . in list", pos)
            fr.items.append(el)
            while parstack[-1].tick and parstack[-1].items:
                q = parstack.pop()
                quoted = Cons(Atom.symbol("q"), q.items[0])
                if comments is not None:
                    for c in q.notes:
                        comments.attach(quoted, c)
                parstack[-1].items.append(quoted)

        for group, text, pos in cls.tokens(s):
            if group == "ws":
                pass
            elif group == "comment":
                pending.append(text[1:].strip())
            elif group == "open":
                parstack.append(_Frame(pos, pending[:]))
                pending.clear()
            elif group == "close":
                fr = parstack[-1]
                if len(parstack) <= 1 or fr.tick:
                    raise ParseError("unexpected )", pos)
                if fr.dot is not None and len(fr.items) == fr.dot:
                    raise ParseError("missing element after .", pos)
                parstack.pop()
                tail = fr.items.pop() if fr.dot is not None else None
                el = to_list(fr.items, tail)
                pending[:0] = fr.notes
                add(el)
            elif group == "tick":
                parstack.append(_Frame(pos, pending[:], tick=True))
                pending.clear()
            elif group == "string":
                add(Atom.string(cls.unescape(text[1:-1], pos)))
            elif text == ".":
                fr = parstack[-1]
                if len(parstack) <= 1 or fr.tick:
                    raise ParseError("unexpected .", pos)
                if not fr.items or fr.dot is not None:
                    raise ParseError("must have one or more elements before . in list", pos)
                fr.dot = len(fr.items)
            else:
                add(cls.atom(text, pos))

        if parstack[-1].tick:
            raise ParseError("tick without following element", parstack[-1].pos)
        if len(parstack) > 1:
            raise ParseError("missing )", parstack[-1].pos)
        if comments is not None:
            comments.trailing.extend(pending)

        if many:
            return top.items
        if not top.items:
            raise ParseError("empty input", SourcePos(1, 1))
        if len(top.items) > 1:
            raise ParseError("multiple unbracketed entries", SourcePos(1, 1))
        return top.items[0]
