#!/usr/bin/env python3

# CLVM operators, as they appear in compiled programs
FUNCS = [
  (0x01, "q"),  # quote
  (0x02, "a"),  # apply
  (0x03, "i"),  # eager-evaluated if
  (0x04, "c"),  # cons
  (0x05, "f"),  # first
  (0x06, "r"),  # rest
  (0x07, "l"),  # is cons?
  (0x08, "x"),  # raise

  (0x09, "="),
  (0x0a, ">s"),
  (0x0b, "sha256"),
  (0x0c, "substr"),
  (0x0d, "strlen"),
  (0x0e, "concat"),

  (0x10, "+"),
  (0x11, "-"),
  (0x12, "*"),
  (0x13, "/"),
  (0x14, "divmod"),
  (0x15, ">"),
  (0x16, "ash"),
  (0x17, "lsh"),
  (0x18, "logand"),
  (0x19, "logior"),
  (0x1a, "logxor"),
  (0x1b, "lognot"),

  (0x1d, "point_add"),
  (0x1e, "pubkey_for_exp"),

  (0x20, "not"),
  (0x21, "any"),
  (0x22, "all"),
  (0x24, "softfork"),
  (0x30, "coinid"),
]

# spend conditions a puzzle returns; wallets match these numbers verbatim
CONDITIONS = [
  (1, "REMARK", "message..."),

  (43, "AGG_SIG_PARENT", "pubkey message"),
  (44, "AGG_SIG_PUZZLE", "pubkey message"),
  (45, "AGG_SIG_AMOUNT", "pubkey message"),
  (46, "AGG_SIG_PUZZLE_AMOUNT", "pubkey message"),
  (47, "AGG_SIG_PARENT_AMOUNT", "pubkey message"),
  (48, "AGG_SIG_PARENT_PUZZLE", "pubkey message"),
  (49, "AGG_SIG_UNSAFE", "pubkey message"),
  (50, "AGG_SIG_ME", "pubkey message"),

  (51, "CREATE_COIN", "puzzle_hash amount [memos]"),
  (52, "RESERVE_FEE", "amount"),

  (60, "CREATE_COIN_ANNOUNCEMENT", "message"),
  (61, "ASSERT_COIN_ANNOUNCEMENT", "announcement_id"),
  (62, "CREATE_PUZZLE_ANNOUNCEMENT", "message"),
  (63, "ASSERT_PUZZLE_ANNOUNCEMENT", "announcement_id"),
  (64, "ASSERT_CONCURRENT_SPEND", "coin_id"),
  (65, "ASSERT_CONCURRENT_PUZZLE", "puzzle_hash"),
  (66, "SEND_MESSAGE", "mode message [destination]"),
  (67, "RECEIVE_MESSAGE", "mode message [source]"),

  (70, "ASSERT_MY_COIN_ID", "coin_id"),
  (71, "ASSERT_MY_PARENT_ID", "parent_id"),
  (72, "ASSERT_MY_PUZZLEHASH", "puzzle_hash"),
  (73, "ASSERT_MY_AMOUNT", "amount"),
  (74, "ASSERT_MY_BIRTH_SECONDS", "seconds"),
  (75, "ASSERT_MY_BIRTH_HEIGHT", "height"),
  (76, "ASSERT_EPHEMERAL", ""),

  (80, "ASSERT_SECONDS_RELATIVE", "seconds"),
  (81, "ASSERT_SECONDS_ABSOLUTE", "seconds"),
  (82, "ASSERT_HEIGHT_RELATIVE", "height"),
  (83, "ASSERT_HEIGHT_ABSOLUTE", "height"),
  (84, "ASSERT_BEFORE_SECONDS_RELATIVE", "seconds"),
  (85, "ASSERT_BEFORE_SECONDS_ABSOLUTE", "seconds"),
  (86, "ASSERT_BEFORE_HEIGHT_RELATIVE", "height"),
  (87, "ASSERT_BEFORE_HEIGHT_ABSOLUTE", "height"),

  (90, "SOFTFORK", "cost ..."),
]

def _Do_FUNCS():
    se = {}
    op = {}
    for (val, name) in FUNCS:
        assert name not in se
        assert val not in op
        se[name] = val
        op[val] = name
    return se, op
SExpr_FUNCS, Op_FUNCS = _Do_FUNCS()

def _Do_CONDITIONS():
    by_name = {}
    by_code = {}
    for (val, name, _args) in CONDITIONS:
        assert name not in by_name
        assert val not in by_code
        by_name[name] = val
        by_code[val] = name
    return by_name, by_code
CONDITION_CODES, CONDITION_NAMES = _Do_CONDITIONS()

def condition_code(name):
    if name not in CONDITION_CODES:
        raise KeyError(f"unknown condition {name}")
    return CONDITION_CODES[name]

def condition_name(code):
    return CONDITION_NAMES.get(code)
