"""
Wallet Services

Balance and coins. Topping up balance also grants coins at
WALLET_BALANCE_TO_COINS_RATE (Rp 1.000 per coin by default); coins pay
for the features that cost us an extra model call, such as reading
voice notes and receipt photos.

DESIGN DECISION: Paid features are a saga, not a transaction.
PaidFeatureGate charges first, runs the operation, and on failure
writes a compensating refund of the same number of coins. A crash
between the charge and the refund loses the user those coins; that
window is accepted.
"""

from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncContextManager,
    Awaitable,
    Callable,
    Optional,
    TypeVar,
)

import structlog

from dompetku.config import WalletSettings
from dompetku.models.ledger import Voucher, VoucherType, Wallet
from dompetku.services.ledger import (
    InsufficientBalanceError,
    VoucherAlreadyUsedError,
    VoucherInvalidError,
)
from dompetku.services.locks import KeyedLocks
from dompetku.services.storage import LedgerStorageInterface

if TYPE_CHECKING:
    from dompetku.audit import AuditLogger


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class WalletService:
    """
    Balance and coin bookkeeping.

    Every read-modify-write of a wallet happens under that user's lock,
    so concurrent top-ups and charges for one user never lose an update.
    Callers that need more than one step under the lock (voucher
    redemption) hold `lock(user_id)` and use `credit_locked`.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[WalletSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or WalletSettings()
        self._locks = KeyedLocks()

    @property
    def settings(self) -> WalletSettings:
        return self._settings

    def lock(self, user_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(user_id)

    def coins_for(self, amount: float) -> float:
        return amount / self._settings.balance_to_coins_rate

    async def _load(self, user_id: str) -> Wallet:
        return await self._storage.get_wallet(user_id) or Wallet(user_id=user_id)

    async def get_wallet(self, user_id: str) -> Wallet:
        return await self._load(user_id)

    async def credit_locked(self, user_id: str, balance: float = 0, coins: float = 0) -> Wallet:
        """Add balance and coins; the caller must hold lock(user_id)."""
        wallet = await self._load(user_id)
        wallet.balance += balance
        wallet.coins += coins
        await self._storage.save_wallet(wallet)
        return wallet

    async def add_balance(self, user_id: str, amount: float) -> tuple[Wallet, float]:
        """
        Top up balance and grant the matching coins.

        Returns:
            (updated wallet, coins granted)
        """
        if amount <= 0:
            raise ValueError("Top-up amount must be positive")
        coins = self.coins_for(amount)
        async with self.lock(user_id):
            wallet = await self.credit_locked(user_id, balance=amount, coins=coins)
        logger.info("wallet.balance_added", user_id=user_id, amount=amount, coins=coins)
        return wallet, coins

    async def add_coins(self, user_id: str, coins: float) -> Wallet:
        if coins <= 0:
            raise ValueError("Coins to add must be positive")
        async with self.lock(user_id):
            return await self.credit_locked(user_id, coins=coins)

    async def deduct_coins(self, user_id: str, coins: float) -> Wallet:
        """
        Charge coins.

        Raises:
            InsufficientBalanceError: the wallet has fewer coins than required
        """
        async with self.lock(user_id):
            wallet = await self._load(user_id)
            if wallet.coins < coins:
                raise InsufficientBalanceError(
                    f"Need {coins:g} coins, have {wallet.coins:g}"
                )
            wallet.coins -= coins
            await self._storage.save_wallet(wallet)
        return wallet


class VoucherService:
    def __init__(self, storage: LedgerStorageInterface, wallet: WalletService):
        self._storage = storage
        self._wallet = wallet
        self._voucher_locks = KeyedLocks()

    async def redeem(self, user_id: str, code: str) -> dict[str, Any]:
        """
        Redeem a voucher once per user.

        The check, the credit and the voucher update run under the user's
        wallet lock and then the voucher's lock, in that order.

        Raises:
            VoucherInvalidError: unknown or expired code
            VoucherAlreadyUsedError: this user already redeemed it
        """
        async with self._wallet.lock(user_id), self._voucher_locks.hold(code.strip().upper()):
            voucher = await self._storage.get_voucher(code)
            if voucher is None or voucher.is_expired():
                raise VoucherInvalidError(f"Voucher not valid: {code}")
            if user_id in voucher.redeemed_by:
                raise VoucherAlreadyUsedError(f"Voucher already used: {voucher.code}")

            if voucher.voucher_type == VoucherType.COINS:
                wallet = await self._wallet.credit_locked(user_id, coins=voucher.value)
            else:
                wallet = await self._wallet.credit_locked(
                    user_id,
                    balance=voucher.value,
                    coins=self._wallet.coins_for(voucher.value),
                )

            voucher.redeemed_by.append(user_id)
            await self._storage.save_voucher(voucher)
        logger.info("wallet.voucher_redeemed", user_id=user_id, code=voucher.code)
        return {
            "code": voucher.code,
            "voucher_type": voucher.voucher_type.value,
            "value": voucher.value,
            "balance": wallet.balance,
            "coins": wallet.coins,
        }

    async def create(self, voucher: Voucher) -> Voucher:
        await self._storage.save_voucher(voucher)
        return voucher


class PaidFeature(str, Enum):
    VOICE = "VOICE"
    RECEIPT = "RECEIPT"


class PaidFeatureGate:
    """Charge coins around an operation and refund them if it fails."""

    def __init__(
        self,
        wallet: WalletService,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._wallet = wallet
        self._audit_logger = audit_logger

    def cost(self, feature: PaidFeature) -> float:
        settings = self._wallet.settings
        if feature == PaidFeature.VOICE:
            return settings.voice_coin_cost
        return settings.receipt_coin_cost

    async def run(
        self,
        user_id: str,
        feature: PaidFeature,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Charge, run, and compensate on failure.

        Raises:
            InsufficientBalanceError: before running, if the user can't pay
            Exception: whatever the operation raised, after the refund
        """
        coins = self.cost(feature)
        if coins > 0:
            await self._wallet.deduct_coins(user_id, coins)
            if self._audit_logger:
                await self._audit_logger.log_coins_charged(user_id, feature.value, coins)

        try:
            return await operation()
        except Exception as e:
            if coins > 0:
                await self._wallet.add_coins(user_id, coins)
                logger.warning(
                    "wallet.coins_refunded",
                    user_id=user_id,
                    feature=feature.value,
                    coins=coins,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_coins_refunded(
                        user_id, feature.value, coins, str(e)
                    )
            raise
