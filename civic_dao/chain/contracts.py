from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Sequence

from eth_abi.abi import decode as decode_abi
from eth_abi.abi import encode as encode_abi
from eth_abi.grammar import TupleType, parse as parse_abi_type
from eth_account import Account
from eth_utils import (
    encode_hex,
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)
from hexbytes import HexBytes

from ..errors import UpstreamTimeout
from .rpc import JsonRpcClient, RpcError

log = logging.getLogger(__name__)


def _to_abi_value(abi_type: Any, value: Any) -> Any:
    """API-side values (hex strings, lowercase addresses) -> what eth_abi encodes."""
    if abi_type.is_array:
        return [_to_abi_value(abi_type.item_type, v) for v in value]
    if isinstance(abi_type, TupleType):
        return tuple(_to_abi_value(t, v) for t, v in zip(abi_type.components, value))
    if abi_type.base == "bytes" and isinstance(value, str):
        return bytes(HexBytes(value))
    if abi_type.base == "address" and isinstance(value, str):
        return value.lower()
    return value


def _from_abi_value(abi_type: Any, value: Any) -> Any:
    """Decoded values -> plain JSON-friendly ones: 0x-hex bytes, lowercase addresses, lists."""
    if abi_type.is_array:
        return [_from_abi_value(abi_type.item_type, v) for v in value]
    if isinstance(abi_type, TupleType):
        return tuple(_from_abi_value(t, v) for t, v in zip(abi_type.components, value))
    if abi_type.base == "bytes":
        return encode_hex(value)
    if abi_type.base == "address":
        return str(value).lower()
    return value


class ContractFunction:
    """
    One contract function, described by its canonical ABI types.

    ``fields`` names the components of a single tuple output; the decoded
    tuple is then returned as a dict keyed by those names.
    """

    def __init__(
        self,
        name: str,
        inputs: Sequence[str] = (),
        outputs: Sequence[str] = (),
        fields: Optional[Sequence[str]] = None,
    ) -> None:
        self.name = name
        self.inputs = list(inputs)
        self.outputs = list(outputs)
        self.fields = list(fields) if fields else None
        self._input_types = [parse_abi_type(t) for t in self.inputs]
        self._output_types = [parse_abi_type(t) for t in self.outputs]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args: Any) -> str:
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}")
        values = [_to_abi_value(t, v) for t, v in zip(self._input_types, args)]
        return encode_hex(self.selector + encode_abi(self.inputs, values))

    def decode_result(self, data_hex: str) -> Any:
        """One output -> the value itself; several -> a tuple; none -> None."""
        if not self.outputs:
            return None
        raw = bytes(HexBytes(data_hex or "0x"))
        decoded = decode_abi(self.outputs, raw)
        values = [_from_abi_value(t, v) for t, v in zip(self._output_types, decoded)]
        if len(values) > 1:
            return tuple(values)
        if self.fields:
            return dict(zip(self.fields, values[0]))
        return values[0]

    def __repr__(self) -> str:
        return f"ContractFunction({self.signature})"


def _abi(*functions: ContractFunction) -> Dict[str, ContractFunction]:
    return {fn.name: fn for fn in functions}


CIVIC_DAO_ABI = _abi(
    ContractFunction(
        "proposeWithBudget",
        ["address[]", "uint256[]", "bytes[]", "string", "string", "uint256", "string"],
        ["uint256"],
    ),
    ContractFunction("castVote", ["uint256", "uint8"]),
    ContractFunction("castVoteWithReason", ["uint256", "uint8", "string"]),
    ContractFunction("execute", ["uint256"]),
    ContractFunction("state", ["uint256"], ["uint8"]),
    ContractFunction(
        "getProposalData",
        ["uint256"],
        ["(string,string,uint256,string,address,uint256)"],
        fields=["title", "description", "budget", "category", "proposer", "createdAt"],
    ),
    ContractFunction("proposalThreshold", [], ["uint256"]),
    ContractFunction("votingDelay", [], ["uint256"]),
    ContractFunction("votingPeriod", [], ["uint256"]),
    ContractFunction("quorum", ["uint256"], ["uint256"]),
)

CIVIC_TOKEN_ABI = _abi(
    ContractFunction("balanceOf", ["address"], ["uint256"]),
    ContractFunction("getVotes", ["address"], ["uint256"]),
    ContractFunction("delegate", ["address"]),
    ContractFunction("delegates", ["address"], ["address"]),
    ContractFunction("totalSupply", [], ["uint256"]),
)

TREASURY_ABI = _abi(
    ContractFunction("depositFunds", ["address", "uint256"]),
    ContractFunction("getTokenBalance", ["address"], ["uint256"]),
    ContractFunction("getSupportedTokens", [], ["address[]"]),
)

ZK_IDENTITY_ABI = _abi(
    ContractFunction("submitProof", ["bytes32", "bytes", "string"]),
    ContractFunction("isVerified", ["address"], ["bool"]),
    ContractFunction(
        "getIdentity",
        ["address"],
        ["(bytes32,uint256,bool,string,uint256)"],
        fields=["identityHash", "verificationTimestamp", "isVerified", "metadata", "proofCount"],
    ),
)

# ProposalCreatedWithBudget(uint256 indexed proposalId, address indexed proposer, string title, uint256 budget, uint256 deadline)
PROPOSAL_CREATED_TOPIC = encode_hex(
    event_signature_to_log_topic("ProposalCreatedWithBudget(uint256,address,string,uint256,uint256)")
)

# contract name (config key) -> ABI
CONTRACT_ABIS: Dict[str, Dict[str, ContractFunction]] = {
    "civic_dao": CIVIC_DAO_ABI,
    "civic_token": CIVIC_TOKEN_ABI,
    "treasury": TREASURY_ABI,
    "zk_identity": ZK_IDENTITY_ABI,
}


def _block_tag(block: Any) -> str:
    if isinstance(block, int):
        return hex(block)
    return str(block)


def hex_to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 16)


class ChainGateway:
    """
    Binds the contract ABIs to deployed addresses and runs calls and
    transactions through one JSON-RPC client.

    With a ``private_key`` transactions are signed locally and submitted
    with ``eth_sendRawTransaction``; nonce, gas, gas price and chain id
    come from the node. Without one they go out as ``eth_sendTransaction``
    from an account the node manages (``sender``, or the node's first
    account), which only dev nodes allow. Either way the receipt is polled
    until the transaction is mined.
    """

    def __init__(
        self,
        rpc: JsonRpcClient,
        addresses: Dict[str, str],
        sender: Optional[str] = None,
        private_key: Optional[str] = None,
        receipt_timeout: float = 120.0,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc = rpc
        self.addresses = {k: str(v).lower() for k, v in addresses.items()}
        self._account = Account.from_key(private_key) if private_key else None
        if self._account is not None:
            self.sender: Optional[str] = self._account.address.lower()
        else:
            self.sender = (sender or "").lower() or None
        self.receipt_timeout = float(receipt_timeout)
        self.poll_interval = float(poll_interval)
        self._sleep = sleep
        self._monotonic = monotonic
        self._chain_id: Optional[int] = None
        # nonce lookup and submission must not interleave between writers
        self._send_lock = threading.Lock()

    @property
    def signs_locally(self) -> bool:
        return self._account is not None

    def _fn(self, contract: str, name: str) -> ContractFunction:
        try:
            return CONTRACT_ABIS[contract][name]
        except KeyError:
            raise RpcError(f"unknown contract function {contract}.{name}")

    def _address(self, contract: str) -> str:
        addr = self.addresses.get(contract)
        if not addr:
            raise RpcError(f"no address configured for {contract}")
        return addr

    # ---- reads ----

    def call(self, contract: str, name: str, *args: Any, block: Any = "latest") -> Any:
        fn = self._fn(contract, name)
        tx = {"to": self._address(contract), "data": fn.encode_call(*args)}
        raw = self.rpc.call("eth_call", [tx, _block_tag(block)])
        return fn.decode_result(raw)

    def block_number(self) -> int:
        return int(self.rpc.call("eth_blockNumber"), 16)

    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.rpc.call("eth_chainId"), 16)
        return self._chain_id

    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.rpc.call("eth_getTransactionByHash", [tx_hash])

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.rpc.call("eth_getTransactionReceipt", [tx_hash])

    # ---- writes ----

    def _sender(self) -> str:
        if self.sender:
            return self.sender
        accounts = self.rpc.call("eth_accounts") or []
        if not accounts:
            raise RpcError("node exposes no unlocked account to send from")
        self.sender = str(accounts[0]).lower()
        return self.sender

    def _send_signed(self, to: str, data: str) -> str:
        with self._send_lock:
            nonce = int(self.rpc.call("eth_getTransactionCount", [self.sender, "pending"]), 16)
            gas = int(self.rpc.call("eth_estimateGas", [{"from": self.sender, "to": to, "data": data}]), 16)
            gas_price = int(self.rpc.call("eth_gasPrice"), 16)
            signed = self._account.sign_transaction({
                "to": to_checksum_address(to),
                "value": 0,
                "data": data,
                "nonce": nonce,
                "gas": gas,
                "gasPrice": gas_price,
                "chainId": self.chain_id(),
            })
            return self.rpc.call("eth_sendRawTransaction", [encode_hex(signed.raw_transaction)])

    def _send_from_node(self, to: str, data: str) -> str:
        tx = {"from": self._sender(), "to": to, "data": data}
        return self.rpc.call("eth_sendTransaction", [tx])

    def transact(self, contract: str, name: str, *args: Any) -> str:
        """Send a transaction and block until it is mined. Returns the tx hash."""
        return self.transact_receipt(contract, name, *args)["transactionHash"]

    def transact_receipt(self, contract: str, name: str, *args: Any) -> Dict[str, Any]:
        fn = self._fn(contract, name)
        to, data = self._address(contract), fn.encode_call(*args)
        if self._account is not None:
            tx_hash = self._send_signed(to, data)
        else:
            tx_hash = self._send_from_node(to, data)
        log.info("[chain] %s.%s submitted: %s", contract, name, tx_hash)
        receipt = self.wait_for_receipt(tx_hash)
        if hex_to_int(receipt.get("status")) != 1:
            raise RpcError(f"transaction {tx_hash} reverted")
        log.info("[chain] %s.%s mined in block %s", contract, name, hex_to_int(receipt.get("blockNumber")))
        receipt.setdefault("transactionHash", tx_hash)
        return receipt

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        deadline = self._monotonic() + self.receipt_timeout
        while True:
            receipt = self.get_receipt(tx_hash)
            if receipt:
                return receipt
            if self._monotonic() >= deadline:
                raise UpstreamTimeout("wait for transaction receipt", self.receipt_timeout)
            self._sleep(self.poll_interval)
