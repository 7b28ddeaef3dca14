from .aggregator import ChainReadAggregator
from .contracts import ChainGateway
from .rpc import JsonRpcClient, RpcError

__all__ = ["ChainGateway", "ChainReadAggregator", "JsonRpcClient", "RpcError"]
