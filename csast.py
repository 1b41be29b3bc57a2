#!/usr/bin/env python3

from dataclasses import dataclass
from typing import Optional, Tuple

from errors import SourcePos

# nodes compare by identity so analysis can key side tables on them
node = dataclass(frozen=True, eq=False)

@node
class TypeRef:
    name: str
    key: Optional["TypeRef"] = None
    value: Optional["TypeRef"] = None

    def __str__(self):
        if self.name == "mapping":
            return f"mapping({self.key} => {self.value})"
        return self.name

####
# expressions

@node
class Literal:
    value: object
    kind: str          # int, bool, hex, string
    pos: SourcePos

@node
class Identifier:
    name: str
    pos: SourcePos

@node
class BinaryOp:
    op: str
    left: object
    right: object
    pos: SourcePos

@node
class UnaryOp:
    op: str
    operand: object
    pos: SourcePos

@node
class Call:
    callee: str
    args: Tuple
    pos: SourcePos

@node
class MemberAccess:
    obj: object
    prop: str
    pos: SourcePos

@node
class Index:
    obj: object
    key: object
    pos: SourcePos

####
# statements

@node
class Require:
    cond: object
    message: Optional[str]
    pos: SourcePos

@node
class Send:
    recipient: object
    amount: object
    memo: Optional[object]
    pos: SourcePos

@node
class Emit:
    event: str
    args: Tuple
    pos: SourcePos

@node
class If:
    cond: object
    then: Tuple
    otherwise: Optional[Tuple]
    pos: SourcePos

@node
class Assign:
    target: object
    op: str            # =, +=, -=
    value: object
    pos: SourcePos
    decl_type: Optional[TypeRef] = None

@node
class ExprStmt:
    expr: object
    pos: SourcePos

@node
class Return:
    value: Optional[object]
    pos: SourcePos

@node
class Fail:
    message: Optional[str]
    pos: SourcePos

####
# declarations

@node
class Decorator:
    name: str
    args: Tuple
    pos: SourcePos

@node
class Param:
    name: str
    type: TypeRef
    pos: SourcePos

@node
class VarDecl:
    name: str
    type: TypeRef
    init: Optional[object]
    pos: SourcePos

@node
class ConstDecl:
    name: str
    value: object
    pos: SourcePos

@node
class EventDecl:
    name: str
    params: Tuple
    pos: SourcePos

@node
class FunctionDecl:
    name: str
    params: Tuple
    returns: Optional[TypeRef]
    body: Tuple
    inline: bool
    pos: SourcePos

@node
class Action:
    name: str
    params: Tuple
    body: Tuple
    decorators: Tuple
    pos: SourcePos

    def decorator(self, name):
        for d in self.decorators:
            if d.name == name:
                return d
        return None

@node
class CoinDecl:
    name: str
    storage_vars: Tuple
    state_vars: Tuple
    consts: Tuple
    functions: Tuple
    actions: Tuple
    events: Tuple
    decorators: Tuple
    includes: Tuple
    pos: SourcePos

    def decorator(self, name):
        for d in self.decorators:
            if d.name == name:
                return d
        return None
