"""Binify Backend - Zero-Knowledge Paste Service.

Stores client-encrypted pastes and manages their lifecycle:
- Time-based expiry mirrored into the payload store's native TTL
- View-limited and burn-after-read pastes
- Link rotation and token-authorized revocation
- Periodic sweep of expired metadata

The server only ever handles opaque ciphertext; keys stay in the client.
"""

__version__ = "0.1.0"
__author__ = "Binify Contributors"
