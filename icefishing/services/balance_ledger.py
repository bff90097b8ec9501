import logging

from icefishing.errors import InsufficientFunds, ValidationError
from icefishing.store import KeyValueStore


def balance_key(account: str) -> str:
    return f"bal:{account}"


class BalanceLedger:
    """The only component allowed to change a balance.

    Balances move exclusively through ``increment``, a single atomic delta with
    a zero floor.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self, account: str) -> int:
        raw = await self.store.get(balance_key(account))
        return int(raw) if raw is not None else 0

    async def increment(self, account: str, delta: int) -> int:
        """Apply a signed delta to the account balance.

        Args:
            account (str): Canonical account key
            delta (int): Nanounits to add, negative to debit

        Raises:
            ValidationError: delta is not an integer
            InsufficientFunds: the debit would make the balance negative

        Returns:
            int: New balance
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta must be an integer amount of nanounits")
        applied, value = await self.store.increment(balance_key(account), delta, floor=0)
        if not applied:
            raise InsufficientFunds(account, value, -delta)
        logging.debug(f"balance {account}: {delta:+d} -> {value}")
        return value
