#!/usr/bin/env python3

from dataclasses import dataclass


@dataclass(frozen=True)
class SourcePos:
    line: int
    col: int

    def __str__(self):
        return f"{self.line}:{self.col}"


class CompileError(Exception):
    """base for everything a compilation can fail with"""
    kind = "error"

    def __init__(self, message, pos=None):
        self.message = message
        self.pos = pos
        super().__init__(str(self))

    def __str__(self):
        if self.pos is None:
            return f"{self.kind}: {self.message}"
        return f"{self.kind} at {self.pos}: {self.message}"


class LexError(CompileError):
    kind = "lex error"


class ParseError(CompileError):
    kind = "parse error"


class SemanticError(CompileError):
    kind = "semantic error"


class SemanticErrors(CompileError):
    """every semantic error found in one compilation"""
    kind = "semantic errors"

    def __init__(self, errors):
        self.errors = list(errors)
        assert self.errors
        super().__init__(f"{len(self.errors)} error(s)")

    def __str__(self):
        return "\n".join(str(e) for e in self.errors)

    def __iter__(self):
        return iter(self.errors)

    def __len__(self):
        return len(self.errors)


class GenerationError(CompileError):
    kind = "generation error"


class MerkleProofError(Exception):
    """a proof did not lead to the claimed root"""
