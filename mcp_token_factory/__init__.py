"""
Token Factory Package Initialization

This package provides a token factory that issues fungible tokens with configurable bonding
curve pricing and propagates token lifecycle facts (creation, price change, liquidity change)
to other chains through a tagged binary message protocol. It is exposed as a Model Context
Protocol (MCP) server and a small HTTP API for bridge relayers.

The package includes:
- Deterministic integer bonding curve pricing (linear, exponential, Bancor approximation)
- Cross-chain message codec and inbound dispatcher
- Token record storage and factory service
- Bridge relayer transport
- Rate limiting and custom error handling
- MCP server implementation for easy integration
"""