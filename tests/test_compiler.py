#!/usr/bin/env python3

import pytest

from actions import verify_proof
from compiler import CompileOptions, compile_coinscript
from conftest import COUNTER, OTHER, OWNER, OWNER_PAY, VAULT, compile_flat
from csgen import DIRECT, DISPATCH, MERKLE
from element import Atom, SExpr, sha256
from errors import GenerationError, ParseError, SemanticErrors
from library import ProgramLibrary
from treehash import curried_puzzle_hash, uncurry

def test_owner_pay_curries_owner(owner_pay):
    assert owner_pay.mode == DIRECT
    assert owner_pay.curried_names == ["OWNER"]
    assert owner_pay.curried_values == [Atom(OWNER)]
    assert owner_pay.solution_params == ("to", "amount")
    assert owner_pay.source.startswith("(mod (OWNER to amount)")
    assert "(c (list CREATE_COIN to amount) ())" in owner_pay.source
    assert "AGG_SIG_ME OWNER" in owner_pay.source

def test_owner_pay_hash_depends_only_on_owner(owner_pay):
    again = compile_flat(OWNER_PAY, storage_values={"owner": OWNER})
    other = compile_flat(OWNER_PAY, storage_values={"owner": OTHER})
    assert again.puzzle_hash == owner_pay.puzzle_hash
    assert other.mod_hash == owner_pay.mod_hash
    assert other.puzzle_hash != owner_pay.puzzle_hash

def test_puzzle_hash_matches_materialized_puzzle(owner_pay):
    assert owner_pay.puzzle.tree_hash() == owner_pay.puzzle_hash
    mod, args = uncurry(owner_pay.puzzle)
    assert mod == owner_pay.mod
    assert args == [Atom(OWNER)]
    assert owner_pay.puzzle_hash_hex == "0x" + owner_pay.puzzle_hash.hex()

def test_compilation_is_deterministic():
    a = compile_coinscript(COUNTER)
    b = compile_coinscript(COUNTER)
    assert a.source == b.source
    assert a.mod_hash == b.mod_hash
    assert a.puzzle_hash == b.puzzle_hash

def test_formatted_source_parses_back_to_the_program():
    prog = compile_coinscript(COUNTER)
    assert "\n" in prog.source
    assert SExpr.parse(prog.source) == prog.mod

def test_owner_pay_solution(owner_pay):
    sol = owner_pay.solution("pay", "0x" + "33" * 32, 100).build().as_list()
    assert sol[0] == Atom(bytes.fromhex("33" * 32))
    assert sol[1].as_int() == 100
    with pytest.raises(ValueError):
        owner_pay.solution("pay", "0x" + "33" * 32)

def test_missing_storage_value_defaults_to_zero(caplog):
    prog = compile_flat(OWNER_PAY)
    assert prog.curried_values == [Atom(bytes(32))]
    assert "owner" in caplog.text

def test_bad_storage_override():
    with pytest.raises(GenerationError):
        compile_flat(OWNER_PAY, storage_values={"owner": b"short"})

def test_dispatch_selects_actions(counter):
    assert counter.mode == DISPATCH
    assert counter.solution_params == ("action", "args")
    assert '(= action "increment")' in counter.source
    assert '(x "unknown action")' in counter.source
    assert counter.action_params("increment") == ("by", "my_amount", "state")
    assert counter.action_params("credit") == ("who", "amount", "my_amount", "state")

def test_stateful_coin_recreates_itself(counter):
    assert counter.curried_names == ["MOD_HASH", "OWNER"]
    assert counter.curried_values[0] == Atom(counter.mod_hash)
    assert "puzzle-hash-of-curried-function MOD_HASH (sha256 1 OWNER) (sha256 1 MOD_HASH)" in counter.source
    assert "curry-and-treehash.clinc" in counter.includes
    assert "ASSERT_MY_AMOUNT" in counter.source
    assert "(defun mapping_set (m k v)" in counter.source

def test_stateful_solution_carries_state(counter):
    state = {"count": 2, "balances": {}}
    sol = counter.solution("increment", 5, amount=1, state=state).build().as_list()
    assert sol[0].as_str() == "increment"
    assert sol[1].as_int() == 5
    assert sol[2].as_int() == 1
    assert sol[3] == counter.state_manager().encode(state)
    with pytest.raises(ValueError):
        counter.solution("increment", 5, amount=1)

def test_events_become_announcements(counter):
    assert 'CREATE_COIN_ANNOUNCEMENT (sha256tree (list "Credited" ' in counter.source

def test_default_action_takes_nil_selector():
    src = """
    coin Tip {
        action default() { reserveFee(1); }
        action refund(address to) { send(to, 1); }
    }
    """
    prog = compile_flat(src)
    assert "(not action)" in prog.source
    sol = prog.solution(None).build().as_list()
    assert sol[0].is_nil()

def test_direct_mode_rejects_several_actions():
    with pytest.raises(GenerationError):
        compile_flat(COUNTER, dispatch=DIRECT)

def test_three_action_merkle_root_is_stable(vault):
    again = compile_flat(VAULT % "")
    assert vault.mode == MERKLE
    assert vault.action_tree.names() == ["deposit", "withdraw", "transfer"]
    assert again.action_tree.root() == vault.action_tree.root()
    assert vault.curried_names == ["ACTION_MERKLE_ROOT"]
    assert vault.curried_values == [Atom(vault.action_tree.root())]

def test_merkle_proof_breaks_when_an_action_is_added(vault):
    tree = vault.action_tree
    leaf = tree.leaf("transfer")
    proof = tree.proof("transfer")
    assert verify_proof(leaf, proof, tree.root())
    bigger = compile_flat(VAULT % "    action close() { exception(\"closed\"); }")
    assert bigger.action_tree.root() != tree.root()
    assert not verify_proof(leaf, proof, bigger.action_tree.root())
    assert bigger.action_tree.leaf("transfer") == leaf

def test_merkle_solution_reveals_action(vault):
    sol = vault.solution("transfer", "0x" + "33" * 32, 5).build().as_list()
    assert sol[0].as_str() == "transfer"
    assert sol[1].tree_hash() == vault.action_tree.program_hash("transfer")
    assert sol[1] == vault.action_puzzle("transfer")
    proof = [p.atom for p in sol[3].as_list()]
    assert vault.action_tree.verify("transfer", proof, vault.action_tree.root())
    assert vault.action_puzzle_hash("withdraw") == vault.action_puzzle("withdraw").tree_hash()

def test_merkle_actions_are_curried_with_storage(vault):
    src = vault.action_sources["withdraw"]
    assert src.startswith("(mod (OWNER to amount)")
    assert "invalid action proof" in vault.source

def test_forced_merkle_mode():
    prog = compile_flat(OWNER_PAY, storage_values={"owner": OWNER}, dispatch=MERKLE)
    assert prog.mode == MERKLE
    assert prog.action_tree.names() == ["pay"]
    assert prog.action_tree.root() == prog.action_tree.leaf("pay")

def test_address_literals_decode(owner_pay):
    addr = owner_pay.codec.encode(OTHER)
    src = 'coin A { storage address owner = "%s"; action go() { send(owner, 1); } }' % addr
    prog = compile_flat(src)
    assert prog.curried_values == [Atom(OTHER)]

def test_access_control_with_several_addresses():
    src = """
    coin Shared {
        storage address alice = 0x1111111111111111111111111111111111111111111111111111111111111111;
        storage address bob = 0x2222222222222222222222222222222222222222222222222222222222222222;
        @onlyAddress(alice, bob)
        action spend(address to, uint64 amount) { send(to, amount); }
    }
    """
    prog = compile_flat(src)
    assert prog.solution_params == ("to", "amount", "signer")
    assert "(any (= signer ALICE) (= signer BOB))" in prog.source
    assert '(x "unauthorized")' in prog.source
    with pytest.raises(ValueError):
        prog.solution(None, "0x" + "33" * 32, 1)
    assert len(prog.solution(None, "0x" + "33" * 32, 1, signer=OWNER).build().as_list()) == 3

def test_functions_and_constants():
    src = """
    coin Fees {
        const FEE_RATE = 3;
        inline function feeFor(uint64 amount) returns uint64 {
            if (amount > 100) {
                return amount / FEE_RATE;
            }
            return 0;
        }
        action pay(address to, uint64 amount) {
            reserveFee(feeFor(amount));
            send(to, amount - feeFor(amount));
        }
    }
    """
    prog = compile_flat(src)
    assert "(defconstant FEE_RATE 3)" in prog.source
    assert "(defun-inline fee_for (amount) (if (> amount 100) (/ amount FEE_RATE) ()))" in prog.source
    assert "(list RESERVE_FEE (fee_for amount))" in prog.source

def test_if_branches_carry_the_rest():
    src = """
    coin Split {
        action pay(address to, uint64 amount) {
            if (amount > 10) {
                send(to, 10);
            } else {
                exception("too small");
            }
            reserveFee(1);
        }
    }
    """
    prog = compile_flat(src)
    body = ('(if (> amount 10) (c (list CREATE_COIN to 10) (c (list RESERVE_FEE 1) ())) '
            '(x "too small"))')
    assert prog.source.endswith(body + ")")

def test_nesting_cap():
    src = "coin Deep { action go(uint64 a) { %s } }" % ("if (a > 0) { " * 12 + "reserveFee(a);" + " }" * 12)
    compile_flat(src)
    with pytest.raises(GenerationError):
        compile_flat(src, max_depth=8)

def test_sequential_ifs_grow_linearly():
    def sized(n):
        src = "coin Many { action go(uint64 a) { %s } }" % ("if (a > 1) { reserveFee(a); } " * n)
        return compile_flat(src).source
    small, medium, large = sized(10), sized(20), sized(30)
    assert len(large) - len(medium) == len(medium) - len(small)
    assert "(defun merge_list (a b) (if a (c (f a) (merge_list (r a) b)) b))" in large
    assert "(merge_list (if (> a_ 1) (c (list RESERVE_FEE a_) ()) ()) (merge_list " in large
    assert "merge_list" not in compile_flat(OWNER_PAY, storage_values={"owner": OWNER}).source

def test_ifs_that_exit_still_carry_the_rest():
    src = """
    coin Guard {
        action go(uint64 a) {
            if (a > 1) { reserveFee(a); }
            if (a > 100) { exception("too big"); }
            reserveFee(1);
        }
    }
    """
    prog = compile_flat(src)
    body = ('(merge_list (if (> a_ 1) (c (list RESERVE_FEE a_) ()) ()) '
            '(if (> a_ 100) (x "too big") (c (list RESERVE_FEE 1) ())))')
    assert prog.source.endswith(body + ")")

def test_library_names_are_not_shadowed():
    src = """
    coin Tally {
        const ONE = 1;
        storage uint64 reserveFee = 5;
        state uint64 n;
        @stateful
        action bump() {
            state.n += ONE;
            reserveFee(reserveFee);
        }
    }
    """
    prog = compile_flat(src)
    assert "curry-and-treehash.clinc" in prog.includes
    assert "(defconstant ONE_ 1)" in prog.source
    assert "(defconstant ONE " not in prog.source
    assert "(list RESERVE_FEE RESERVE_FEE_)" in prog.source
    assert "RESERVE_FEE_" in prog.curried_names

def test_onchain_proof_walk_matches_tree(vault):
    walk = ("(defun merkle_root_from_proof (cur proof) (if proof (merkle_root_from_proof "
            "(if (>s cur (f proof)) (sha256 (f proof) cur) (sha256 cur (f proof))) (r proof)) cur))")
    leaf = "(sha256 2 (sha256 1 action_name) (sha256 1 (sha256tree action_puzzle)))"
    assert walk in vault.source
    assert leaf in vault.source
    tree = vault.action_tree
    for name in tree.names():
        cur = sha256(b"\x02", sha256(b"\x01", name.encode()), sha256(b"\x01", vault.action_puzzle_hash(name)))
        assert cur == tree.leaf(name)
        for sib in tree.proof(name):
            cur = sha256(sib, cur) if cur > sib else sha256(cur, sib)
        assert cur == tree.root()

def test_text_that_looks_like_an_address():
    prog = compile_flat('coin C { action go() { remark("xch1 rocks"); } }')
    assert '(list REMARK "xch1 rocks")' in prog.source


def test_errors_stop_compilation():
    with pytest.raises(ParseError):
        compile_flat("coin A { action go() { send(1) } }")
    with pytest.raises(SemanticErrors):
        compile_flat("coin A { }")

def test_singleton_puzzle_hash():
    src = """
    @singleton
    coin Solo {
        storage bytes32 launcherId = 0x4444444444444444444444444444444444444444444444444444444444444444;
        action spend(address to) { send(to, 1); }
    }
    """
    library = ProgramLibrary.from_mapping({
        "singleton_top_layer_v1_1": "(mod (SINGLETON_STRUCT INNER_PUZZLE inner_solution) (a INNER_PUZZLE inner_solution))",
        "singleton_launcher": "(mod (singleton_full_puzzle_hash amount key_value_list) (list (list 51 singleton_full_puzzle_hash amount)))",
    })
    prog = compile_coinscript(src, CompileOptions(library=library))
    assert prog.launcher_id == bytes.fromhex("44" * 32)
    top = library.mod_hash("singleton_top_layer_v1_1")
    launcher = library.mod_hash("singleton_launcher")
    struct = SExpr.parse("(0x%s 0x%s . 0x%s)" % (top.hex(), "44" * 32, launcher.hex()))
    assert prog.singleton_puzzle_hash() == curried_puzzle_hash(top, struct.tree_hash(), prog.puzzle_hash)
    assert compile_coinscript(src).singleton_puzzle_hash() is None
