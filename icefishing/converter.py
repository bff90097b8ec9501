import logging
from typing import Any, List, Optional

from icefishing.models.schema_models import TransferSchema


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


class TransferConverter:
    """Normalizes the external ledger's transaction JSON into TransferSchema.

    Each field is resolved by an ordered fallback list; the first usable value
    wins. Anything that is not an incoming value transfer becomes None.
    """

    def convert_transaction(self, tx: dict) -> Optional[TransferSchema]:
        """Convert one raw transaction into a TransferSchema

        Args:
            tx (dict): One element of the ``transactions`` array

        Returns:
            Optional[TransferSchema]: None if the transaction carries no usable incoming transfer
        """
        if not isinstance(tx, dict) or tx.get("aborted"):
            return None
        in_msg = tx.get("in_msg")
        if not isinstance(in_msg, dict) or in_msg.get("bounced"):
            return None

        transfer_id = _first_text(tx.get("hash"), in_msg.get("hash"))
        amount = _to_int(in_msg.get("value"))
        if transfer_id is None or amount is None or amount <= 0:
            return None

        seconds = _to_int(tx.get("utime"))
        if seconds is None:
            seconds = _to_int(in_msg.get("created_at"))
        if seconds is None:
            return None

        source = in_msg.get("source")
        sender = _first_text(source.get("address")) if isinstance(source, dict) else _first_text(source)

        decoded_body = in_msg.get("decoded_body")
        decoded_text = decoded_body.get("text") if isinstance(decoded_body, dict) else None
        memo = _first_text(decoded_text, in_msg.get("message"))

        return TransferSchema(
            transfer_id=transfer_id,
            amount=amount,
            sender=sender,
            timestamp_ms=seconds * 1000,
            memo=memo,
        )

    def convert_transactions(self, payload: dict) -> List[TransferSchema]:
        transfers = []
        for tx in (payload or {}).get("transactions") or []:
            transfer = self.convert_transaction(tx)
            if transfer is None:
                logging.debug(f"skipping non-transfer transaction: {tx.get('hash') if isinstance(tx, dict) else tx!r}")
                continue
            transfers.append(transfer)
        return transfers
