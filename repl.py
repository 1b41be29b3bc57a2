#!/usr/bin/env python3

import argparse
import cmd
import functools
import logging
import os
import sys
import traceback

try:
    import readline
except ImportError:
    readline = None

from builder import SolutionBuilder
from clspformat import format_source, serialize
from compiler import CompileOptions, compile_file
from element import SExpr
from errors import CompileError, MerkleProofError
from library import AddressCodec, ProgramLibrary
from treehash import curry, hexhash

####

def handle_exc(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (CompileError, MerkleProofError, ValueError, KeyError, OSError) as e:
            print(e)
        except Exception:
            traceback.print_exc()
    return wrapper

####

class CoinScriptRepl(cmd.Cmd):
    HISTPATH = os.environ.get("COINSCRIPT_HISTORY", "~/.coinscript.history")
    HISTSIZE = 2000

    @classmethod
    def histpath(cls):
        return os.path.expanduser(cls.HISTPATH)

    def __init__(self, prompt=None):
        self.prompt = ">>> " if prompt is None else prompt
        self.storage = {}
        self.library = None
        self.codec = AddressCodec()
        self.flat = False
        self.last = None

        cmd.Cmd.__init__(self)

    def preloop(self):
        if readline and os.path.exists(self.histpath()):
            readline.read_history_file(self.histpath())

    def postloop(self):
        if readline:
            readline.set_history_length(self.HISTSIZE)
            readline.write_history_file(self.histpath())

    def default(self, line):
        if line.strip().startswith(";"):
            # comment
            return
        return super().default(line)

    def emptyline(self):
        pass

    def do_exit(self, arg):
        return True

    def do_EOF(self, arg):
        if self.prompt != "": print()
        return True

    @handle_exc
    def do_set(self, arg):
        """set NAME VALUE: storage value used by later compiles"""
        parts = arg.split(None, 1)
        if len(parts) != 2:
            print("Expected storage variable name and value")
            return
        name, value = parts
        self.storage[name] = int(value) if value.lstrip("-").isdigit() else value

    @handle_exc
    def do_unset(self, arg):
        for x in arg.split():
            self.storage.pop(x, None)

    @handle_exc
    def do_flat(self, arg):
        self.flat = arg.strip() not in ("off", "0", "no")

    @handle_exc
    def do_library(self, arg):
        """library DIR: reference programs for singleton hashes"""
        self.library = ProgramLibrary.from_directory(os.path.expanduser(arg.strip()))

    @handle_exc
    def do_compile(self, arg):
        opts = CompileOptions(indent=not self.flat, storage_values=dict(self.storage),
                              library=self.library, address_codec=self.codec)
        prog = compile_file(os.path.expanduser(arg.strip()), opts)
        self.last = prog
        print(prog.source)
        for name, src in prog.action_sources.items():
            print(f"; action {name}")
            print(src)
        print(f"; mod hash    {prog.mod_hash_hex}")
        print(f"; puzzle hash {prog.puzzle_hash_hex}")
        for name, value in prog.curried:
            print(f";   {name} = {value}")
        print(f"; solution    ({' '.join(prog.solution_params)})")
        if prog.action_tree is not None:
            print(f"; action root {prog.action_tree.root_hex()}")
        singleton = prog.singleton_puzzle_hash()
        if singleton is not None:
            print(f"; singleton   {hexhash(singleton)}")

    @handle_exc
    def do_hash(self, arg):
        print(hexhash(SExpr.parse(arg).tree_hash()))

    @handle_exc
    def do_curry(self, arg):
        els = SExpr.parse(arg, many=True)
        if not els:
            print("Expected a program and its arguments")
            return
        prog = curry(els[0], *els[1:])
        print(serialize(prog, keywords=True))
        print(hexhash(prog.tree_hash()))

    @handle_exc
    def do_format(self, arg):
        print(format_source(arg))

    @handle_exc
    def do_address(self, arg):
        arg = arg.strip()
        if self.codec.is_address(arg):
            print(hexhash(self.codec.decode(arg)))
        else:
            print(self.codec.encode(bytes.fromhex(arg[2:] if arg.startswith("0x") else arg)))

    @handle_exc
    def do_solution(self, arg):
        """solution ACTION ARGS...: spend solution for the last compiled coin"""
        if self.last is None:
            sb = SolutionBuilder().add(*SExpr.parse(arg, many=True))
        else:
            parts = arg.split()
            action = parts[0] if parts else None
            if action == "-":
                action = None
            args = [int(a) if a.lstrip("-").isdigit() else a for a in parts[1:]]
            sb = self.last.solution(action, *args)
        print(sb.serialize())
        print(sb.to_hex())

def main(argv=None):
    parser = argparse.ArgumentParser(prog="coinscript", description="CoinScript to Chialisp")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("command", nargs="*", help="run one command and exit")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    if args.command:
        repl = CoinScriptRepl(prompt="")
        repl.onecmd(" ".join(args.command))
        return 0
    if os.isatty(sys.stdin.fileno()):
        repl = CoinScriptRepl()
    else:
        repl = CoinScriptRepl(prompt="")
    repl.cmdloop()
    return 0

if __name__ == "__main__":
    sys.exit(main())
