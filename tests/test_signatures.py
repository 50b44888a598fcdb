from __future__ import annotations

import pytest
from eth_utils import keccak

from selectorscan import (
    ANONYMOUS_SUFFIX,
    EntryKind,
    InterfaceEntry,
    InterfaceInput,
    canonical_signature,
    derive_identifier,
    event_topic,
    function_selector,
    keccak_digest,
)

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
APPROVAL_TOPIC = "0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925"


def _entry(kind: EntryKind, name, *types: str, anonymous: bool = False) -> InterfaceEntry:
    return InterfaceEntry(kind, name, tuple(InterfaceInput(t) for t in types), anonymous)


def test_known_function_selectors() -> None:
    assert function_selector("transfer(address,uint256)") == "0xa9059cbb"
    assert function_selector("approve(address,uint256)") == "0x095ea7b3"
    assert function_selector("balanceOf(address)") == "0x70a08231"


def test_known_event_topics() -> None:
    assert event_topic("Transfer(address,address,uint256)") == TRANSFER_TOPIC
    assert event_topic("Approval(address,address,uint256)") == APPROVAL_TOPIC


def test_digest_is_legacy_keccak_not_sha3() -> None:
    # Keccak-256 of the empty string; NIST SHA3-256 would give a7ffc6f8...
    assert keccak_digest("").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    assert len(keccak_digest("foo()")) == 32


@pytest.mark.parametrize(
    "sig",
    ["foo()", "transfer(address,uint256)", "swap((address,uint256)[],bytes)", "ünïcode(string)"],
)
def test_identifier_lengths_and_determinism(sig: str) -> None:
    sel, topic = function_selector(sig), event_topic(sig)
    assert len(sel) == 10 and sel.startswith("0x")
    assert len(topic) == 66 and topic.startswith("0x")
    assert topic[:10] == sel
    assert function_selector(sig) == sel
    assert event_topic(sig) == topic


def test_canonical_signature_grammar() -> None:
    assert canonical_signature("foo", []) == "foo()"
    assert canonical_signature(None, ["uint256"]) == "unknown(uint256)"
    assert canonical_signature("f", ["(uint256,address)", "bytes32[2]"]) == "f((uint256,address),bytes32[2])"


def test_canonical_signature_keeps_types_verbatim() -> None:
    # No trimming, no case folding.
    assert canonical_signature("f", [" UInt256", "address "]) == "f( UInt256,address )"


def test_entry_signature_property() -> None:
    assert _entry(EntryKind.FUNCTION, "foo").signature == "foo()"
    assert _entry(EntryKind.EVENT, None, "address").signature == "unknown(address)"


def test_derive_function_identifier() -> None:
    d = derive_identifier(_entry(EntryKind.FUNCTION, "transfer", "address", "uint256"))
    assert d.signature == "transfer(address,uint256)"
    assert d.identifier == "0xa9059cbb"


def test_derive_event_identifier() -> None:
    d = derive_identifier(_entry(EntryKind.EVENT, "Transfer", "address", "address", "uint256"))
    assert d.signature == "Transfer(address,address,uint256)"
    assert d.identifier == TRANSFER_TOPIC


def test_anonymous_event_suffix_is_display_only() -> None:
    d = derive_identifier(_entry(EntryKind.EVENT, "Log", "uint256", anonymous=True))
    assert d.signature == "Log(uint256) [anonymous]"
    assert d.signature == "Log(uint256)" + ANONYMOUS_SUFFIX
    assert d.identifier == "0x" + keccak(text="Log(uint256)").hex()
    assert d.identifier != "0x" + keccak(text="Log(uint256) [anonymous]").hex()


def test_anonymous_flag_ignored_for_functions() -> None:
    d = derive_identifier(_entry(EntryKind.FUNCTION, "foo", anonymous=True))
    assert d.signature == "foo()"


def test_other_kind_has_no_identifier() -> None:
    with pytest.raises(ValueError):
        derive_identifier(_entry(EntryKind.OTHER, "constructor"))
