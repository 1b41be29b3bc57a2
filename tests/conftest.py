#!/usr/bin/env python3

import pytest

from compiler import CompileOptions, compile_coinscript

OWNER = bytes.fromhex("11" * 32)
OTHER = bytes.fromhex("22" * 32)

OWNER_PAY = """
coin Wallet {
    storage address owner;

    action pay(address to, uint64 amount) {
        require(msg.sender == owner, "not owner");
        send(to, amount);
    }
}
"""

VAULT = """
@merkle
coin Vault {
    storage address owner = 0x1111111111111111111111111111111111111111111111111111111111111111;

    action deposit(uint64 fee) {
        reserveFee(fee);
    }

    action withdraw(address to, uint64 amount) {
        require(msg.sender == owner);
        send(to, amount);
    }

    action transfer(address to, uint64 amount) {
        send(to, amount);
    }
%s
}
"""

COUNTER = """
coin Counter {
    storage address owner = 0x1111111111111111111111111111111111111111111111111111111111111111;
    state {
        uint64 count;
        mapping(address => uint64) balances;
    }
    event Credited(address who, uint64 amount);

    @stateful
    action increment(uint64 by) {
        state.count += by;
    }

    @stateful
    @onlyAddress(owner)
    action credit(address who, uint64 amount) {
        state.balances[who] += amount;
        emit Credited(who, amount);
    }
}
"""

def compile_flat(source, **kw):
    return compile_coinscript(source, CompileOptions(indent=False, **kw))

@pytest.fixture
def owner_pay():
    return compile_flat(OWNER_PAY, storage_values={"owner": OWNER})

@pytest.fixture
def vault():
    return compile_flat(VAULT % "")

@pytest.fixture
def counter():
    return compile_flat(COUNTER)
