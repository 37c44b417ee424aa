"""
CeloTip — Automatic Creator Tipping for Farcaster
===================================================
Turns Farcaster interactions (likes, recasts, comments, quotes, follows)
into token tips on Celo.  A shared relayer moves tokens on the tipper's
behalf, within the allowance the tipper approved on-chain.

Package layout::

    celotip/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Token addresses, notification copy
    ├── errors.py          # Exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Profiles, tip configs, ledger, nonces
    ├── engine/
    │   ├── events.py      # Webhook payload variants → Interaction
    │   ├── signature.py   # HMAC-SHA512 webhook verification
    │   └── rules.py       # Tip rule selection (super tip override)
    ├── services/
    │   ├── identity_service.py      # fid → wallet address
    │   ├── neynar_client.py         # Neynar user lookup
    │   ├── tip_config_service.py    # Tip config reads
    │   ├── chain_service.py         # Allowance guard, relay executor, nonces
    │   ├── ledger_service.py        # Transaction ledger
    │   ├── notification_service.py  # Push notifications
    │   ├── summary_service.py       # Daily tip summary job
    │   ├── reconciliation_service.py # Stale pending rows
    │   └── tip_service.py           # The webhook → transfer pipeline
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency injection + admin JWT guard
        └── routes/        # Webhook + admin endpoints
"""

__version__ = "0.1.0"
