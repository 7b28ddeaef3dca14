import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from civic_dao.chain.aggregator import ChainReadAggregator
from civic_dao.config import load_config
from civic_dao.settings import Settings
from civic_dao.store.proposal_store import ProposalStore

DAO = "0x" + "d0" * 20
TOKEN = "0x" + "70" * 20
TREASURY = "0x" + "7e" * 20
ZK = "0x" + "2c" * 20

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"

_CHAIN_ENV = [
    "RPC_URL",
    "CHAIN_SENDER_ADDRESS",
    "CHAIN_PRIVATE_KEY",
    "CHAIN_TIMEOUT_SEC",
    "CHAIN_RECEIPT_TIMEOUT_SEC",
    "CIVIC_TOKEN_ADDRESS",
    "CIVIC_DAO_ADDRESS",
    "TIMELOCK_ADDRESS",
    "TREASURY_ADDRESS",
    "ZK_IDENTITY_ADDRESS",
    "IPFS_HTTP_API",
]


class FakeClock:
    """Epoch-millis clock that advances a fixed step on every read."""

    def __init__(self, start=1_700_000_000_000, step=1000):
        self.now = start
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class FakeGateway:
    """
    Stands in for ChainGateway. ``reads`` maps (contract, function) to a
    value, a callable taking the call args, or an exception to raise.
    """

    def __init__(self, reads=None, block=100, delay=0.0):
        self.reads = dict(reads or {})
        self.block = block
        self.delay = delay
        self.calls = []
        self.sent = []
        self.txs = {}
        self.receipts = {}
        self.logs = []
        self.addresses = {"civic_dao": DAO, "civic_token": TOKEN, "treasury": TREASURY, "zk_identity": ZK}
        self.rpc = SimpleNamespace(close=lambda: None)

    def call(self, contract, name, *args, block="latest"):
        self.calls.append((contract, name, args))
        if self.delay:
            time.sleep(self.delay)
        value = self.reads[(contract, name)]
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            return value(*args)
        return value

    def block_number(self):
        return self.block

    def get_transaction(self, tx_hash):
        return self.txs.get(tx_hash)

    def get_receipt(self, tx_hash):
        return self.receipts.get(tx_hash)

    def transact_receipt(self, contract, name, *args):
        self.sent.append((contract, name, args))
        tx_hash = "0x%064x" % len(self.sent)
        return {"transactionHash": tx_hash, "status": "0x1", "blockNumber": hex(self.block), "logs": list(self.logs)}

    def transact(self, contract, name, *args):
        return self.transact_receipt(contract, name, *args)["transactionHash"]


def governance_reads(overrides=None):
    reads = {
        ("civic_dao", "votingDelay"): 1,
        ("civic_dao", "votingPeriod"): 40320,
        ("civic_dao", "proposalThreshold"): 10**21,
        ("civic_dao", "quorum"): 4 * 10**22,
        ("treasury", "getTokenBalance"): 5 * 10**24,
        ("civic_token", "balanceOf"): 1500 * 10**18,
        ("civic_token", "getVotes"): 1200 * 10**18,
        ("civic_token", "delegates"): ALICE,
        ("zk_identity", "isVerified"): True,
    }
    reads.update(overrides or {})
    return reads


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ProposalStore(clock=clock, default_quorum=1000, assumed_total_holders=1000)


@pytest.fixture
def make_proposal(store):
    def _make(**fields):
        data = {
            "title": "Repave Elm Street",
            "description": "Resurface the full length of Elm Street",
            "proposer": ALICE,
            "budget": "1000",
            "category": "Infrastructure",
        }
        data.update(fields)
        return store.create_proposal(data)

    return _make


@pytest.fixture
def gateway():
    return FakeGateway(reads=governance_reads())


@pytest.fixture
def aggregator(gateway):
    agg = ChainReadAggregator(gateway, timeout=2.0)
    yield agg
    agg.close()


@pytest.fixture
def test_settings():
    s = Settings()
    s.SEED_DEMO = False
    s.LOG_LEVEL = "WARNING"
    s.STATS_TIMEOUT_SEC = 2.0
    s.ADMIN_ADDRESSES = [BOB]
    return s


@pytest.fixture
def base_config(monkeypatch):
    for name in _CHAIN_ENV:
        monkeypatch.delenv(name, raising=False)
    cfg = load_config(None)
    cfg["contracts"]["civic_token"] = TOKEN
    return cfg


@pytest.fixture
def client(test_settings, base_config, store, aggregator):
    from civic_dao.civic_api import create_app

    app = create_app(settings=test_settings, cfg=base_config, store=store, aggregator=aggregator)
    return TestClient(app)


@pytest.fixture
def offline_client(test_settings, base_config, store):
    """App with no chain configured."""
    from civic_dao.civic_api import create_app

    app = create_app(settings=test_settings, cfg=base_config, store=store)
    return TestClient(app)


def auth(address=ALICE):
    return {"X-User-Address": address}

