#!/usr/bin/env python3

from element import ATOM, CONS, CommentMap, SExpr, render_atom, render_compact
from errors import GenerationError
from opcodes import Op_FUNCS

DEFAULT_LINE_LENGTH = 80
FLAT_DEPTH = 3
MAX_DEPTH = 500
INDENT = "  "

# how many arguments stay on the same line as these heads
HEAD_ARGS = {
    "mod": 1,
    "defun": 2,
    "defun-inline": 2,
    "defmacro": 2,
    "defconstant": 2,
    "lambda": 1,
    "include": 1,
    "if": 1,
    "i": 1,
    "assign": 0,
    "list": 0,
}

def keyword_atom(el):
    """render a small integer in operator position by its opcode name"""
    if el.atom and len(el.atom) == 1 and el.atom[0] in Op_FUNCS:
        return Op_FUNCS[el.atom[0]]
    return render_atom(el)

class Formatter:
    def __init__(self, indent=False, max_line_length=DEFAULT_LINE_LENGTH, comments=None,
                 keywords=False, flat_depth=FLAT_DEPTH, max_depth=MAX_DEPTH):
        self.indent = indent
        self.max_line_length = max_line_length
        self.comments = comments if comments is not None else CommentMap()
        self.keywords = keywords
        self.flat_depth = flat_depth
        self.max_depth = max_depth

    def flat(self, el):
        return render_compact(el, head_fn=keyword_atom if self.keywords else None)

    def serialize(self, el):
        if not self.indent:
            return self.flat(el)
        lines = self._format(el, "", 0)
        lines.extend(f"; {c}" for c in self.comments.trailing)
        return "\n".join(lines)

    def _nesting_exceeds(self, el, limit):
        stk = [(el, 0)]
        while stk:
            el, d = stk.pop()
            if el.kind != CONS:
                continue
            if d + 1 > limit:
                return True
            while el.kind == CONS:
                stk.append((el.first, d + 1))
                el = el.rest
        return False

    def _has_comments(self, el):
        if len(self.comments) == 0:
            return False
        stk = [el]
        while stk:
            el = stk.pop()
            if self.comments.get(el):
                return True
            if el.kind == CONS:
                stk.append(el.first)
                stk.append(el.rest)
        return False

    def _notes(self, el, indent):
        return [f"{indent}; {c}" for c in self.comments.get(el)]

    def _format(self, el, indent, depth):
        if depth > self.max_depth:
            raise GenerationError(f"expression nests deeper than {self.max_depth} levels")
        notes = self._notes(el, indent)
        if el.kind == ATOM:
            return notes + [indent + self.flat(el)]

        items = []
        cur = el
        while cur.kind == CONS:
            items.append(cur.first)
            cur = cur.rest
        tail = None if cur.is_nil() else cur

        inner_notes = any(self._has_comments(c) for c in items) or (tail is not None and self._has_comments(tail))
        flat = self.flat(el)
        if (not inner_notes
                and len(indent) + len(flat) <= self.max_line_length
                and not self._nesting_exceeds(el, self.flat_depth)):
            return notes + [indent + flat]

        child_indent = indent + INDENT
        head = items[0]
        if head.kind == ATOM and not self.comments.get(head):
            name = render_atom(head) if not self.keywords else keyword_atom(head)
            first = [name]
            rest = items[1:]
            for _ in range(HEAD_ARGS.get(name, 0)):
                if not rest or self._has_comments(rest[0]):
                    break
                arg = self.flat(rest[0])
                if len(child_indent) + len(arg) > self.max_line_length:
                    break
                first.append(arg)
                rest = rest[1:]
            lines = notes + [indent + "(" + " ".join(first)]
        else:
            rest = items
            lines = notes + [indent + "("]

        for c in rest:
            lines.extend(self._format(c, child_indent, depth + 1))
        if tail is not None:
            lines.append(child_indent + ".")
            lines.extend(self._format(tail, child_indent, depth + 1))
        lines[-1] += ")"
        return lines

def serialize(el, indent=False, max_line_length=DEFAULT_LINE_LENGTH, comments=None, keywords=False):
    return Formatter(indent=indent, max_line_length=max_line_length,
                     comments=comments, keywords=keywords).serialize(el)

def format_source(text, indent=True, max_line_length=DEFAULT_LINE_LENGTH):
    """reformat program text, keeping its ; comments"""
    comments = CommentMap()
    els = SExpr.parse(text, many=True, comments=comments)
    fmt = Formatter(indent=indent, max_line_length=max_line_length, comments=comments)
    trailing, comments.trailing = comments.trailing, []
    out = [fmt.serialize(el) for el in els]
    out.extend(f"; {c}" for c in trailing)
    return "\n".join(out)
