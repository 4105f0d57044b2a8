"""
Token Pricing Package Initialization

This package provides a deterministic token-sale pricing engine exposed through the
Model Context Protocol (MCP). Given the cumulative number of tokens sold (and the current
time for time-based models) it computes the current unit price in 1e18 fixed point.

The package includes:
- Overflow-checked fixed-point math (safe arithmetic, sqrt, pow, ln, reductions)
- Eight pricing curves, tiered pricing and reserve-ratio bonding curves
- Price impact, average price and payment conversion helpers
- A reference sale manager that owns the tokens-sold counters
- Custom error handling
- MCP server implementation for easy integration
"""
