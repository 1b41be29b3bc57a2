#!/usr/bin/env python3

import pytest
from hypothesis import given

from element import SExpr
from library import (AddressCodec, LIBRARY_FUNCTIONS, ProgramLibrary, camel_case, include_for,
                     library_function, program_params)
from strategies import hashes

@given(hashes)
def test_address_round_trip(h):
    codec = AddressCodec()
    addr = codec.encode(h)
    assert addr.startswith("xch1")
    assert codec.is_address(addr)
    assert codec.decode(addr) == h

def test_addresses_keep_their_prefix():
    testnet = AddressCodec("txch")
    addr = testnet.encode(b"\x01" * 32)
    assert addr.startswith("txch1")
    assert not AddressCodec().is_address(addr)
    with pytest.raises(ValueError):
        AddressCodec().decode(addr)

def test_bad_addresses():
    codec = AddressCodec()
    with pytest.raises(ValueError):
        codec.decode("xch1notanaddress")
    good = codec.encode(b"\x02" * 32)
    corrupt = good[:-1] + ("q" if good[-1] != "q" else "p")
    with pytest.raises(ValueError):
        codec.decode(corrupt)
    with pytest.raises(ValueError):
        codec.encode(b"\x02" * 20)

def test_include_lookup():
    assert include_for("CREATE_COIN") == "condition_codes.clib"
    assert include_for("sha256tree") == "sha256tree.clib"
    assert include_for("puzzle-hash-of-curried-function") == "curry-and-treehash.clinc"
    assert include_for("no_such_thing") is None

def test_library_functions_have_camel_case_names():
    assert camel_case("puzzle-hash-of-curried-function") == "puzzleHashOfCurriedFunction"
    assert camel_case("my_amount_truth") == "myAmountTruth"
    assert library_function("sha256tree") == ("sha256tree", "sha256tree.clib")
    assert library_function("myAmountTruth") == ("my_amount_truth", "singleton_truths.clib")
    assert LIBRARY_FUNCTIONS["assert"] == ("assert", "utility_macros.clib")
    assert library_function("transfer") is None

def test_program_params():
    tree = SExpr.parse("(mod (MOD_HASH OWNER to amount . rest) (x))")
    assert program_params(tree) == (("MOD_HASH", "OWNER"), ("to", "amount"), "rest")
    assert program_params(SExpr.parse("(q . 1)")) == ((), (), None)

def test_library_caches_programs():
    calls = []
    sources = {"p": "(mod (A b) (+ A b))"}
    def loader(name):
        calls.append(name)
        return sources[name]
    lib = ProgramLibrary(loader)
    first = lib.load("p")
    assert lib.load("p") is first
    assert calls == ["p"]
    assert first.curry_params == ("A",)
    assert first.solution_params == ("b",)
    assert lib.mod_hash("p") == SExpr.parse(sources["p"]).tree_hash()
    assert first.mod_hash_hex == "0x" + first.mod_hash.hex()

def test_library_membership():
    lib = ProgramLibrary.from_mapping({"p": "(mod () ())"})
    assert "p" in lib
    assert "q" not in lib
    with pytest.raises(KeyError):
        lib.load("q")
    with pytest.raises(ValueError):
        ProgramLibrary.from_mapping({"empty": "; nothing"}).load("empty")

def test_library_from_directory(tmp_path):
    (tmp_path / "wallet.clsp").write_text("(mod (PUBKEY conditions) conditions)", encoding="utf8")
    lib = ProgramLibrary.from_directory(str(tmp_path))
    assert lib.load("wallet").curry_params == ("PUBKEY",)
    assert "missing" not in lib
