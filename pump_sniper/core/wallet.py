import json
import logging
from pathlib import Path
from typing import Optional

import base58
from solders.keypair import Keypair  # type: ignore

from ..constants import LAMPORTS_PER_SOL
from ..exceptions import WalletException

logger = logging.getLogger(__name__)


def keypair_from_secret(secret: str) -> Keypair:
    """Decode a base58 or JSON-array secret key."""
    secret = secret.strip()
    try:
        if secret.startswith("["):
            key_bytes = bytes(json.loads(secret))
        else:
            key_bytes = base58.b58decode(secret)
        return Keypair.from_bytes(key_bytes)
    except (ValueError, TypeError) as e:
        raise WalletException("Invalid private key format", error=str(e))


class WalletManager:
    """
    Trading wallet: keypair plus balance lookups through the pooled RPC client.

    The key comes from ``wallet_private_key`` (base58 or JSON array) or
    from a keypair file at ``wallet_path`` (solana-keygen JSON format).
    """

    def __init__(self, keypair: Keypair, rpc=None):
        self.keypair = keypair
        self.rpc = rpc

    @classmethod
    def from_settings(cls, settings, rpc=None) -> "WalletManager":
        if settings.wallet_private_key:
            keypair = keypair_from_secret(settings.wallet_private_key)
        elif settings.wallet_path:
            path = Path(settings.wallet_path)
            if not path.exists():
                raise WalletException("Wallet file not found", path=str(path))
            keypair = keypair_from_secret(path.read_text(encoding="utf-8"))
        else:
            raise WalletException("No wallet configured (set WALLET_PRIVATE_KEY or WALLET_PATH)")

        wallet = cls(keypair, rpc)
        logger.info(f"🔑 Wallet loaded: {wallet.address}")
        return wallet

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    async def get_sol_balance(self) -> Optional[float]:
        """SOL balance, or None when it cannot be fetched."""
        if self.rpc is None:
            return None
        try:
            lamports = await self.rpc.get_balance(self.address)
        except Exception as e:
            logger.warning(f"Failed to get SOL balance: {e}")
            return None
        return lamports / LAMPORTS_PER_SOL

    async def check_balance(self, required_sol: float) -> Optional[float]:
        """Log the balance and warn when it is below ``required_sol``."""
        balance = await self.get_sol_balance()
        if balance is None:
            logger.warning("Could not verify wallet balance")
            return None
        logger.info(f"💰 Wallet balance: {balance:.4f} SOL")
        if balance < required_sol:
            logger.warning(
                f"⚠️ Wallet balance ({balance:.4f} SOL) is below buy amount ({required_sol} SOL)"
            )
        return balance
