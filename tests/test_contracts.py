import pytest
from eth_abi.exceptions import DecodingError, EncodingError

from civic_dao.chain.contracts import CONTRACT_ABIS, PROPOSAL_CREATED_TOPIC, ContractFunction

from conftest import BOB


def _words(*hex_words):
    return "".join(w.rjust(64, "0") for w in hex_words)


@pytest.mark.parametrize("contract,name,selector", [
    ("civic_token", "balanceOf", "70a08231"),
    ("civic_token", "delegate", "5c19a95c"),
    ("civic_dao", "castVote", "56781388"),
])
def test_known_selectors(contract, name, selector):
    assert CONTRACT_ABIS[contract][name].selector.hex() == selector


def test_transfer_selector():
    fn = ContractFunction("transfer", ["address", "uint256"], ["bool"])
    assert fn.signature == "transfer(address,uint256)"
    assert fn.selector.hex() == "a9059cbb"


def test_proposal_created_topic():
    assert PROPOSAL_CREATED_TOPIC.startswith("0x")
    assert len(PROPOSAL_CREATED_TOPIC) == 66
    assert PROPOSAL_CREATED_TOPIC == PROPOSAL_CREATED_TOPIC.lower()


def test_static_args():
    fn = ContractFunction("baz", ["uint32", "bool"], ["bool"])
    assert fn.encode_call(69, True) == "0xcdcd77c0" + _words("45", "1")


def test_dynamic_args():
    fn = ContractFunction("sam", ["bytes", "bool", "uint256[]"])
    data = fn.encode_call(b"dave", True, [1, 2, 3])
    assert data == "0xa5643bf2" + _words(
        "60", "1", "a0",
        "4", "64617665".ljust(64, "0"),
        "3", "1", "2", "3",
    )


def test_hex_strings_are_accepted_for_bytes():
    fn = CONTRACT_ABIS["zk_identity"]["submitProof"]
    as_hex = fn.encode_call("0x" + "ab" * 32, "0xdead", "kyc:v1")
    as_bytes = fn.encode_call(bytes.fromhex("ab" * 32), bytes.fromhex("dead"), "kyc:v1")
    assert as_hex == as_bytes


def test_mixed_case_addresses_are_encoded():
    fn = CONTRACT_ABIS["civic_dao"]["proposeWithBudget"]
    upper = fn.encode_call(["0x" + "AB" * 20], [0], ["0x"], "d", "t", 1, "Infrastructure")
    lower = fn.encode_call(["0x" + "ab" * 20], [0], ["0x"], "d", "t", 1, "Infrastructure")
    assert upper == lower


def test_decode_identity_as_dict():
    fn = CONTRACT_ABIS["zk_identity"]["getIdentity"]
    ident = "ab" * 32
    metadata = "kyc:v1".encode().hex()
    raw = "0x" + _words(
        "20",
        ident, "65f0c1a0", "1", "a0", "2",
        "6", metadata.ljust(64, "0"),
    )
    assert fn.decode_result(raw) == {
        "identityHash": "0x" + ident,
        "verificationTimestamp": 0x65F0C1A0,
        "isVerified": True,
        "metadata": "kyc:v1",
        "proofCount": 2,
    }


def test_decode_proposal_data_as_dict():
    fn = CONTRACT_ABIS["civic_dao"]["getProposalData"]
    title, desc, category = (s.encode().hex() for s in ("Bike", "Paint lanes", "Infrastructure"))
    raw = "0x" + _words(
        "20",
        "c0", "100", "64", "140", BOB[2:], "10",
        "4", title.ljust(64, "0"),
        "b", desc.ljust(64, "0"),
        "e", category.ljust(64, "0"),
    )
    assert fn.decode_result(raw) == {
        "title": "Bike",
        "description": "Paint lanes",
        "budget": 100,
        "category": "Infrastructure",
        "proposer": BOB,
        "createdAt": 16,
    }


def test_decode_address_is_lowercase():
    fn = CONTRACT_ABIS["civic_token"]["delegates"]
    assert fn.decode_result("0x" + _words("ABCDEF" * 6 + "ABCD")) == "0x" + ("abcdef" * 6 + "abcd")


def test_decode_address_array_is_a_list():
    fn = CONTRACT_ABIS["treasury"]["getSupportedTokens"]
    raw = "0x" + _words("20", "2", "AA" * 20, "bb" * 20)
    assert fn.decode_result(raw) == ["0x" + "aa" * 20, "0x" + "bb" * 20]


def test_no_outputs_decode_to_none():
    assert CONTRACT_ABIS["civic_dao"]["execute"].decode_result("0x") is None


def test_wrong_argument_count():
    with pytest.raises(ValueError):
        CONTRACT_ABIS["civic_token"]["balanceOf"].encode_call()


@pytest.mark.parametrize("types,value", [
    (["uint8"], 256),
    (["uint256"], -1),
    (["address"], "0x1234"),
    (["bytes2"], b"abc"),
])
def test_encode_rejects_bad_values(types, value):
    with pytest.raises(EncodingError):
        ContractFunction("f", types).encode_call(value)


def test_short_return_data():
    fn = CONTRACT_ABIS["civic_token"]["balanceOf"]
    with pytest.raises(DecodingError):
        fn.decode_result("0x" + "00" * 16)
    with pytest.raises(DecodingError):
        fn.decode_result("0x")


def test_invalid_utf8_is_not_silently_replaced():
    fn = ContractFunction("name", [], ["string"])
    raw = "0x" + _words("20", "2", "fffe".ljust(64, "0"))
    with pytest.raises((DecodingError, UnicodeDecodeError)):
        fn.decode_result(raw)
