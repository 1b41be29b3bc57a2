#!/usr/bin/env python3

import pytest

from cscheck import Binding, SymbolKind, analyze, snake_case, upper_snake
from csparse import parse
from errors import SemanticError, SemanticErrors

def check(src):
    return analyze(parse(src))

def errors_of(src):
    with pytest.raises(SemanticErrors) as ei:
        check(src)
    return [e.message for e in ei.value]

def test_names():
    assert snake_case("launcherId") == "launcher_id"
    assert upper_snake("launcherId") == "LAUNCHER_ID"
    assert upper_snake("FEE_RATE") == "FEE_RATE"
    assert snake_case("to") == "to"

def test_symbols_and_bindings():
    a = check("""
    coin C {
        storage address owner;
        state uint64 count;
        const LIMIT = 10;
        @stateful
        action bump(uint64 by) { state.count += by; }
    }
    """)
    owner = a.symbol("owner")
    assert owner.kind == SymbolKind.STORAGE and owner.binding == Binding.CURRIED
    assert owner.vm_name == "OWNER"
    count = a.symbol("count")
    assert count.kind == SymbolKind.STATE and count.binding == Binding.THREADED
    assert a.symbol("LIMIT").kind == SymbolKind.CONSTANT
    by = a.actions["bump"].scope.lookup("by")
    assert by.kind == SymbolKind.PARAMETER and by.binding == Binding.SOLUTION
    assert a.actions["bump"].stateful
    assert a.has_state

def test_missing_spend_path():
    msgs = errors_of("coin Empty { storage address owner; }")
    assert any("no spend path" in m for m in msgs)

def test_storage_and_state_are_exclusive():
    msgs = errors_of("""
    coin C {
        storage uint64 total;
        state uint64 total;
        action go() { }
    }
    """)
    assert any("both storage and state" in m for m in msgs)

def test_errors_are_collected():
    with pytest.raises(SemanticErrors) as ei:
        check("""
        coin C {
            action go() {
                send(nobody, 1);
                reserveFee(missing);
            }
        }
        """)
    assert len(ei.value) == 2
    assert all(isinstance(e, SemanticError) for e in ei.value)
    assert ei.value.errors[0].pos.line == 4

def test_state_needs_stateful():
    msgs = errors_of("""
    coin C {
        state uint64 count;
        action bump() { state.count = 1; }
    }
    """)
    assert any("@stateful" in m for m in msgs)

def test_stateful_needs_state():
    msgs = errors_of("coin C { @stateful action go() { } }")
    assert any("needs the coin to declare state" in m for m in msgs)

def test_storage_is_immutable():
    msgs = errors_of("""
    coin C {
        storage address owner;
        action go(address to) { owner = to; }
    }
    """)
    assert any("immutable" in m for m in msgs)

def test_sender_only_in_require():
    msgs = errors_of("coin C { action go() { send(msg.sender, 1); } }")
    assert any("msg.sender" in m for m in msgs)

def test_sender_check_recorded():
    a = check("""
    coin C {
        storage address owner;
        action go() { require(owner == msg.sender); }
    }
    """)
    (target,) = a.sender_checks.values()
    assert target.name == "owner"

def test_type_errors():
    msgs = errors_of("""
    coin C {
        storage address owner;
        action go(uint64 n, bool flag) {
            require(n);
            send(n, owner);
            require(flag && n > 1);
            uint64 x = true;
        }
    }
    """)
    assert any("require condition must be bool" in m for m in msgs)
    assert any("send recipient" in m for m in msgs)
    assert any("send amount" in m for m in msgs)
    assert any("cannot assign bool to x" in m for m in msgs)
    assert len(msgs) == 4

def test_decorator_checks():
    msgs = errors_of("""
    @stateful
    coin C {
        storage uint64 n;
        @onlyAddress(n)
        @payable
        action go() { }
    }
    """)
    assert any("applies to actions" in m for m in msgs)
    assert any("@onlyAddress expects" in m for m in msgs)
    assert any("unknown decorator @payable" in m for m in msgs)

def test_singleton_needs_launcher_id():
    msgs = errors_of("@singleton coin C { action go() { } }")
    assert any("launcher id" in m for m in msgs)
    a = check("@singleton(0x%s) coin C { action go() { } }" % ("44" * 32))
    assert a.launcher_id.value == bytes.fromhex("44" * 32)

def test_functions_cannot_see_storage():
    msgs = errors_of("""
    coin C {
        storage uint64 rate;
        function fee(uint64 a) returns uint64 { return a * rate; }
        action go(uint64 a) { reserveFee(fee(a)); }
    }
    """)
    assert any("functions cannot reference storage variable rate" in m for m in msgs)

def test_function_must_return():
    msgs = errors_of("""
    coin C {
        function f(uint64 a) returns uint64 { if (a > 1) { return a; } }
        action go() { }
    }
    """)
    assert any("does not return on every path" in m for m in msgs)

def test_unused_expression():
    msgs = errors_of("coin C { action go(uint64 a) { a + 1; } }")
    assert any("unused" in m for m in msgs)

def test_unreachable_statement():
    msgs = errors_of('coin C { action go() { exception("no"); reserveFee(1); } }')
    assert any("unreachable" in m for m in msgs)

def test_name_collisions():
    msgs = errors_of("""
    coin C {
        storage uint64 ownerKey;
        storage uint64 owner_key;
        action go() { }
    }
    """)
    assert any("both map to OWNER_KEY" in m for m in msgs)

def test_reserved_names_are_renamed():
    a = check("""
    coin C {
        const ONE = 1;
        storage uint64 reserveFee;
        action go(uint64 a, uint64 list) { reserveFee(a + list + ONE + reserveFee); }
    }
    """)
    scope = a.actions["go"].scope
    assert scope.lookup("a").vm_name == "a_"
    assert scope.lookup("list").vm_name == "list_"
    assert a.symbol("ONE").vm_name == "ONE_"
    assert a.symbol("reserveFee").vm_name == "RESERVE_FEE_"

def test_only_decodable_addresses_are_addresses():
    check('coin C { action go() { remark("xch1 rocks"); } }')
    msgs = errors_of('coin C { storage address owner = "xch1qqqq"; action go() { send(owner, 1); } }')
    assert any("invalid address" in m for m in msgs)

def test_includes_explicit_first():
    a = check("""
    include "utility_macros.clib";
    coin C {
        include "utility_macros.clib";
        function h(bytes32 x) returns bytes32 { return sha256tree(x); }
        action go(bytes32 x) { createAnnouncement(h(x)); }
    }
    """)
    assert a.includes == ["utility_macros.clib", "sha256tree.clib"]
    assert a.name_map["h"] == "h"
    assert a.name_map["sha256tree"] == "sha256tree"

def test_mapping_access():
    a = check("""
    coin C {
        state mapping(address => uint64) balances;
        @stateful
        action credit(address who, uint64 amount) {
            state.balances[who] += amount;
            require(state.balances[who] > 0);
        }
    }
    """)
    assert "credit" in a.actions
    msgs = errors_of("""
    coin C {
        state mapping(address => uint64) balances;
        @stateful
        action credit(uint64 who) { state.balances[who] = 1; }
    }
    """)
    assert any("mapping key" in m for m in msgs)

def test_msg_value_marks_amount():
    a = check("coin C { action go() { require(msg.value > 10); } }")
    assert a.actions["go"].uses_amount
