"""
Test suite for the NFT Marketplace backend.

Test categories:
- Unit tests: chain reader, verifier, metadata decoding, blob store with faked I/O
- Integration tests: listing ledger, wallets and users against in-memory SQLite
- API tests: routes through the ASGI app with services on app.state replaced
"""
