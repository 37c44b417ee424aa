"""
celotip.services.chain_service — On-Chain Reads and Relayed Transfers
======================================================================

Everything that talks to Celo lives here:

* :class:`AllowanceGuard`  — read-only pre-check of the relayer allowance.
* :class:`RelayExecutor`   — signs and submits ``sendTip`` with the relayer
  key and waits (bounded) for the receipt.
* :class:`NonceAllocator`  — hands out relayer nonces from a DB row so
  concurrent handlers never sign two transactions with the same nonce.

Design:
- Sync web3 calls, shipped off the event loop with ``run_db``.
- Minimal embedded ABI — only the functions we call.
- Gas estimation + 20% buffer; an estimation revert fails the attempt
  *before* a nonce is consumed.
- The allowance pre-check is advisory.  ``sendTip`` enforces the real
  limit atomically and reverts if it is exceeded.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from eth_account import Account
from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3RPCError

from celotip.database.engine import get_session, run_db
from celotip.database.models import RelayerNonce
from celotip.errors import ChainReadError, ConfigurationError

logger = logging.getLogger(__name__)


# ============================================================
# MINIMAL ABI — only functions we call at runtime
# ============================================================

CELOTIP_ABI = [
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "tokenAddress", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "interactionType", "type": "string"},
            {"name": "castHash", "type": "string"},
        ],
        "name": "sendTip",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "user", "type": "address"},
            {"name": "tokenAddress", "type": "address"},
        ],
        "name": "getUserAllowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

ERC20_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

GAS_BUFFER = 1.2


def build_web3(rpc_url: str, timeout: int = 30) -> Web3:
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


def to_token_units(amount: Decimal | str | float, decimals: int) -> int:
    """Convert a human amount to the token's integer unit, exactly.

    Raises
    ------
    ValueError
        If the amount is not positive or has more precision than the
        token supports.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount!r}") from exc
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    units = int(scaled)
    if units <= 0:
        raise ValueError(f"Tip amount must be positive, got {amount}")
    return units


# ============================================================
# ALLOWANCE GUARD
# ============================================================

@dataclass(frozen=True, slots=True)
class AllowanceCheck:
    sufficient: bool
    amount_units: int | None = None
    allowance_units: int | None = None
    decimals: int | None = None
    error: str | None = None


class AllowanceGuard:
    """Checks that the relayer may move at least the tip amount."""

    def __init__(self, w3: Web3, contract_address: str) -> None:
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=CELOTIP_ABI
        )

    def read_allowance(self, owner: str, token_address: str) -> tuple[int, int]:
        """Return ``(decimals, allowance_units)``; sync."""
        token = Web3.to_checksum_address(token_address)
        try:
            decimals = self.w3.eth.contract(address=token, abi=ERC20_ABI).functions.decimals().call()
            allowance = self.contract.functions.getUserAllowance(
                Web3.to_checksum_address(owner), token
            ).call()
        except Exception as exc:
            raise ChainReadError(f"{type(exc).__name__}: {exc}") from exc
        return int(decimals), int(allowance)

    async def check(self, owner: str, token_address: str, amount: Decimal) -> AllowanceCheck:
        """Compare the on-chain allowance with *amount*.  Fails closed."""
        try:
            decimals, allowance = await run_db(self.read_allowance, owner, token_address)
        except ChainReadError as exc:
            logger.warning(
                "Allowance read failed for %s / %s — treating as insufficient: %s",
                owner, token_address, exc,
            )
            return AllowanceCheck(sufficient=False, error=str(exc))

        try:
            units = to_token_units(amount, decimals)
        except ValueError as exc:
            logger.warning("Unusable tip amount %s for token %s: %s", amount, token_address, exc)
            return AllowanceCheck(sufficient=False, decimals=decimals, allowance_units=allowance, error=str(exc))

        return AllowanceCheck(
            sufficient=allowance >= units,
            amount_units=units,
            allowance_units=allowance,
            decimals=decimals,
        )


# ============================================================
# NONCE ALLOCATOR
# ============================================================

class NonceAllocator:
    """DB-backed nonce sequence for one relayer address on one chain.

    ``allocate`` locks the ``relayer_nonces`` row and hands out the lowest
    released nonce, or else ``max(stored_next, chain_pending_count)``
    (storing ``nonce + 1``).
    The chain count lets the sequence recover after transactions sent
    from elsewhere (or after a restart with an empty table).
    """

    def __init__(self, engine: Engine, chain_id: int, address: str) -> None:
        self.engine = engine
        self.chain_id = chain_id
        self.address = Web3.to_checksum_address(address)

    def _ensure_row(self, initial: int) -> None:
        try:
            with get_session(self.engine) as session:
                if session.get(RelayerNonce, (self.chain_id, self.address)) is None:
                    session.add(RelayerNonce(
                        chain_id=self.chain_id, address=self.address, next_nonce=initial,
                    ))
        except IntegrityError:
            pass  # inserted concurrently

    def _locked_row(self, session) -> RelayerNonce:
        return session.scalars(
            select(RelayerNonce)
            .where(
                RelayerNonce.chain_id == self.chain_id,
                RelayerNonce.address == self.address,
            )
            .with_for_update()
        ).one()

    def allocate(self, chain_pending_count: Callable[[], int]) -> int:
        pending = int(chain_pending_count())
        self._ensure_row(pending)
        with get_session(self.engine) as session:
            row = self._locked_row(session)
            # Released nonces below the chain count were used by someone else.
            free = sorted(n for n in row.released_nonces or [] if n >= pending)
            if free:
                nonce = free.pop(0)
            else:
                nonce = max(row.next_nonce, pending)
                row.next_nonce = nonce + 1
            row.released_nonces = free
        logger.debug("Allocated nonce %d for %s", nonce, self.address)
        return nonce

    def release(self, nonce: int) -> bool:
        """Give back *nonce*, which was allocated but never broadcast.

        The next :meth:`allocate` reuses the lowest released nonce before
        advancing the sequence, so a rejected submission leaves no gap.
        """
        with get_session(self.engine) as session:
            row = self._locked_row(session)
            free = set(row.released_nonces or [])
            if nonce >= row.next_nonce or nonce in free:
                return False
            free.add(nonce)
            while row.next_nonce - 1 in free:
                row.next_nonce -= 1
                free.discard(row.next_nonce)
            row.released_nonces = sorted(free)
        return True


# ============================================================
# RELAY EXECUTOR
# ============================================================

class RelayOutcome(enum.StrEnum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    UNCONFIRMED = "unconfirmed"  # broadcast (maybe), receipt not seen in time


@dataclass(frozen=True, slots=True)
class RelayResult:
    outcome: RelayOutcome
    tx_hash: str | None = None
    error: str | None = None
    gas_used: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is RelayOutcome.CONFIRMED


def _hex(value) -> str:
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else f"0x{text}"


class RelayExecutor:
    """Submits ``sendTip`` on behalf of a user, signed by the relayer."""

    def __init__(
        self,
        w3: Web3,
        *,
        contract_address: str,
        chain_id: int,
        private_key: str,
        nonces: NonceAllocator | None = None,
        engine: Engine | None = None,
        receipt_timeout: int = 120,
    ) -> None:
        if not private_key:
            raise ConfigurationError("RELAYER_PRIVATE_KEY is not set.")
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        try:
            self.account = Account.from_key(key)
        except Exception as exc:
            raise ConfigurationError(f"Invalid RELAYER_PRIVATE_KEY: {type(exc).__name__}") from exc

        self.w3 = w3
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=CELOTIP_ABI
        )
        if nonces is None:
            if engine is None:
                raise ValueError("RelayExecutor needs either a NonceAllocator or an engine")
            nonces = NonceAllocator(engine, chain_id, self.account.address)
        self.nonces = nonces

    @property
    def address(self) -> str:
        return self.account.address

    def _pending_count(self) -> int:
        return self.w3.eth.get_transaction_count(self.account.address, "pending")

    def submit(
        self,
        sender: str,
        recipient: str,
        token_address: str,
        amount_units: int,
        interaction_type: str,
        cast_hash: str | None,
    ) -> RelayResult:
        """Build, sign, send and await one ``sendTip``; sync."""
        tx_fn = self.contract.functions.sendTip(
            Web3.to_checksum_address(sender),
            Web3.to_checksum_address(recipient),
            Web3.to_checksum_address(token_address),
            int(amount_units),
            interaction_type,
            cast_hash or "",
        )

        # Nothing has been signed yet: any error here is a clean failure.
        try:
            gas_estimate = tx_fn.estimate_gas({"from": self.account.address})
            gas_price = self.w3.eth.gas_price
        except Exception as exc:
            error = f"Simulation failed: {type(exc).__name__}: {exc}"
            logger.warning("sendTip %s → %s rejected before signing: %s", sender, recipient, error)
            return RelayResult(RelayOutcome.FAILED, error=error)

        try:
            nonce = self.nonces.allocate(self._pending_count)
        except Exception as exc:
            error = f"Nonce allocation failed: {type(exc).__name__}: {exc}"
            logger.error("sendTip %s → %s not sent: %s", sender, recipient, error)
            return RelayResult(RelayOutcome.FAILED, error=error)

        try:
            tx = tx_fn.build_transaction({
                "from": self.account.address,
                "nonce": nonce,
                "gas": int(gas_estimate * GAS_BUFFER),
                "gasPrice": gas_price,
                "chainId": self.chain_id,
            })
            signed = self.account.sign_transaction(tx)
        except Exception as exc:
            self.nonces.release(nonce)
            error = f"Signing failed: {type(exc).__name__}: {exc}"
            logger.error("sendTip signing failed (nonce %d): %s", nonce, error)
            return RelayResult(RelayOutcome.FAILED, error=error)

        local_hash = _hex(signed.hash)
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3RPCError, ValueError) as exc:
            # The node answered and refused the transaction.
            self.nonces.release(nonce)
            error = f"Submission rejected: {exc}"
            logger.warning("sendTip rejected by node (nonce %d): %s", nonce, exc)
            return RelayResult(RelayOutcome.FAILED, error=error)
        except Exception as exc:
            # Transport failure: the transaction may or may not be in the mempool.
            logger.error(
                "sendTip broadcast outcome unknown (nonce %d, hash %s): %s",
                nonce, local_hash, exc,
            )
            return RelayResult(
                RelayOutcome.UNCONFIRMED, tx_hash=local_hash,
                error=f"Broadcast outcome unknown: {type(exc).__name__}: {exc}",
            )

        tx_hash_hex = _hex(tx_hash)
        logger.info("sendTip submitted: %s (nonce %d)", tx_hash_hex, nonce)

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted:
            logger.error(
                "sendTip %s not mined within %ds — leaving for reconciliation",
                tx_hash_hex, self.receipt_timeout,
            )
            return RelayResult(
                RelayOutcome.UNCONFIRMED, tx_hash=tx_hash_hex,
                error=f"Receipt not seen within {self.receipt_timeout}s",
            )
        except Exception as exc:
            logger.error("sendTip %s receipt lookup failed: %s", tx_hash_hex, exc)
            return RelayResult(
                RelayOutcome.UNCONFIRMED, tx_hash=tx_hash_hex,
                error=f"Receipt lookup failed: {type(exc).__name__}: {exc}",
            )

        gas_used = int(receipt.get("gasUsed", 0) or 0)
        if receipt["status"] == 1:
            logger.info("TX SUCCESS: %s | gas=%d", tx_hash_hex, gas_used)
            return RelayResult(RelayOutcome.CONFIRMED, tx_hash=tx_hash_hex, gas_used=gas_used)

        error = f"Transaction reverted: {tx_hash_hex}"
        logger.warning("TX FAILED: %s", error)
        return RelayResult(RelayOutcome.FAILED, tx_hash=tx_hash_hex, error=error, gas_used=gas_used)

    def receipt_status(self, tx_hash: str) -> int | None:
        """Return the mined receipt status of *tx_hash* (1 or 0), or None if not mined."""
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return int(receipt["status"])

    async def execute(
        self,
        sender: str,
        recipient: str,
        token_address: str,
        amount_units: int,
        interaction_type: str,
        cast_hash: str | None,
    ) -> RelayResult:
        return await run_db(
            self.submit, sender, recipient, token_address, amount_units,
            interaction_type, cast_hash,
        )
