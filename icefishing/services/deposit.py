"""Reconciles off-chain deposit intents against on-chain transfers.

A transfer is credited at most once: the credit marker is keyed by the
transfer's own id, so neither two confirm calls nor two intents can credit the
same transfer twice.
"""

import base64
import logging
import random
from typing import Callable, List, Optional, Protocol, Tuple

from uuid6 import uuid7

from icefishing.errors import ExternalServiceUnavailable, NotFound, ValidationError
from icefishing.models.dc_models import (
    AssuranceModel,
    DepositConfirmModel,
    DepositIntentModel,
    DepositResumeModel,
    DepositStatusModel,
)
from icefishing.models.schema_models import DepositIntentSchema, IntentStatus, TransferSchema
from icefishing.services import now_ms
from icefishing.services.balance_ledger import BalanceLedger
from icefishing.store import KeyValueStore

COMMENT_PREFIX = "ICEFISHING_DEPOSIT"
CREDIT_MARKER_TTL = 7 * 24 * 60 * 60
CREDITED_INTENT_TTL = 60 * 60
SALT_MIN = 1
SALT_MAX = 999
SALT_ATTEMPTS = 20

_system_random = random.SystemRandom()


def intent_key(intent_id: str) -> str:
    return f"dep:intent:{intent_id}"


def amount_reservation_key(exact_amount: int) -> str:
    return f"dep:amount:{exact_amount}"


def credit_marker_key(transfer_id: str) -> str:
    return f"dep:credited:{transfer_id}"


def pending_deposits_key(account: str) -> str:
    return f"dep:pending:{account}"


def random_salt() -> int:
    return _system_random.randint(SALT_MIN, SALT_MAX)


class TransferQuery(Protocol):
    async def recent_incoming(self, account: str, limit: int = 20) -> List[TransferSchema]: ...


class DepositReconciler:
    def __init__(
        self,
        store: KeyValueStore,
        balances: BalanceLedger,
        transfers: TransferQuery,
        treasury_account: str,
        intent_ttl_seconds: int = 60 * 30,
        min_observation_ms: int = 15000,
        time_tolerance_ms: int = 60000,
        query_limit: int = 20,
        resume_batch: int = 6,
        salt: Callable[[], int] = random_salt,
        now: Callable[[], int] = now_ms,
    ):
        if not treasury_account:
            raise ValueError("treasury_account is required")
        self.store = store
        self.balances = balances
        self.transfers = transfers
        self.treasury_account = treasury_account
        self.intent_ttl_seconds = intent_ttl_seconds
        self.min_observation_ms = min_observation_ms
        self.time_tolerance_ms = time_tolerance_ms
        self.query_limit = query_limit
        self.resume_batch = resume_batch
        self.salt = salt
        self.now = now

    async def _reserve_exact_amount(self, requested_amount: int, intent_id: str) -> int:
        for _ in range(SALT_ATTEMPTS):
            exact_amount = requested_amount + self.salt()
            got = await self.store.set_if_absent(
                amount_reservation_key(exact_amount), intent_id, ttl_seconds=self.intent_ttl_seconds
            )
            if got:
                return exact_amount
        raise ValidationError("too many outstanding deposits for this amount, retry later")

    async def create_intent(self, requested_amount: int, account: Optional[str] = None) -> DepositIntentModel:
        """Persist a new deposit intent with a salted exact amount.

        Args:
            requested_amount (int): Nanounits the account will be credited
            account (Optional[str]): When given, the intent is tracked for resume

        Returns:
            DepositIntentModel: What the client must send and where
        """
        if isinstance(requested_amount, bool) or not isinstance(requested_amount, int) or requested_amount <= 0:
            raise ValidationError("requested_amount must be a positive integer amount of nanounits")

        intent_id = uuid7().hex
        exact_amount = await self._reserve_exact_amount(requested_amount, intent_id)
        comment = f"{COMMENT_PREFIX}:{intent_id}"
        intent = DepositIntentSchema(
            intent_id=intent_id,
            treasury_account=self.treasury_account,
            amount=requested_amount,
            exact_amount=exact_amount,
            comment=comment,
            created_at=self.now(),
            account=account,
        )
        await self.store.set(intent_key(intent_id), intent.model_dump_json(), ttl_seconds=self.intent_ttl_seconds)
        if account:
            await self.store.set_add(pending_deposits_key(account), intent_id)
        logging.info(f"deposit intent {intent_id}: {requested_amount} -> send {exact_amount}")

        return DepositIntentModel(
            intent_id=intent_id,
            treasury_account=self.treasury_account,
            requested_amount=requested_amount,
            exact_amount_to_send=exact_amount,
            comment=comment,
            payload_base64=base64.b64encode(comment.encode()).decode(),
            created_at=intent.created_at,
        )

    async def load_intent(self, intent_id: str) -> DepositIntentSchema:
        raw = await self.store.get(intent_key(intent_id))
        if raw is None:
            raise NotFound(f"intent {intent_id} not found")
        return DepositIntentSchema.model_validate_json(raw)

    def match(
        self, intent: DepositIntentSchema, transfers: List[TransferSchema]
    ) -> Tuple[Optional[TransferSchema], Optional[AssuranceModel]]:
        """Pick the first transfer that pays this intent.

        A transfer whose memo is exposed must carry the intent's comment. When
        the memo is not exposed the match rests on amount and time alone, which
        is reported as reduced assurance.
        """
        earliest = intent.created_at - self.time_tolerance_ms
        for transfer in transfers:
            if transfer.amount != intent.exact_amount or transfer.timestamp_ms < earliest:
                continue
            if transfer.memo is None:
                return transfer, AssuranceModel.amount_time
            if transfer.memo == intent.comment:
                return transfer, AssuranceModel.memo
        return None, None

    async def _finalize(
        self, intent: DepositIntentSchema, transfer_id: str, assurance: AssuranceModel
    ) -> DepositConfirmModel:
        intent.status = IntentStatus.credited
        intent.transfer_id = transfer_id
        intent.credited_at = self.now()
        intent.assurance = assurance.value
        await self.store.set(intent_key(intent.intent_id), intent.model_dump_json(), ttl_seconds=CREDITED_INTENT_TTL)
        if intent.account:
            await self.store.set_remove(pending_deposits_key(intent.account), intent.intent_id)
        return DepositConfirmModel(
            status=DepositStatusModel.credited,
            credited_amount=intent.amount,
            transfer_id=transfer_id,
            assurance=assurance,
        )

    async def confirm(self, intent_id: str, account: str) -> DepositConfirmModel:
        """Credit the account once the intent's transfer shows up on the ledger.

        Raises:
            NotFound: the intent does not exist or expired
            ValidationError: the intent belongs to a different account
            ExternalServiceUnavailable: the transfer query failed, nothing was changed

        Returns:
            DepositConfirmModel: ``wait``, ``pending`` or ``credited``
        """
        intent = await self.load_intent(intent_id)
        if intent.account and intent.account != account:
            raise ValidationError(f"intent {intent_id} belongs to another account")

        if intent.status == IntentStatus.credited:
            return DepositConfirmModel(
                status=DepositStatusModel.credited,
                credited_amount=intent.amount,
                transfer_id=intent.transfer_id,
                assurance=intent.assurance,
            )

        if self.now() - intent.created_at < self.min_observation_ms:
            return DepositConfirmModel(status=DepositStatusModel.wait)

        transfers = await self.transfers.recent_incoming(intent.treasury_account, self.query_limit)
        transfer, assurance = self.match(intent, transfers)
        if transfer is None:
            return DepositConfirmModel(status=DepositStatusModel.pending)

        if assurance == AssuranceModel.amount_time:
            logging.warning(
                f"intent {intent_id} matched transfer {transfer.transfer_id} on amount and time only"
            )

        got = await self.store.set_if_absent(
            credit_marker_key(transfer.transfer_id), intent_id, ttl_seconds=CREDIT_MARKER_TTL
        )
        if not got:
            holder = await self.store.get(credit_marker_key(transfer.transfer_id))
            if holder != intent_id:
                logging.warning(f"transfer {transfer.transfer_id} was already credited for intent {holder}")
            return await self._finalize(intent, transfer.transfer_id, assurance)

        balance = await self.balances.increment(account, intent.amount)
        logging.info(
            f"deposit {intent_id} credited {intent.amount} to {account} "
            f"(transfer {transfer.transfer_id}, balance {balance})"
        )
        return await self._finalize(intent, transfer.transfer_id, assurance)

    async def resume(self, account: str) -> DepositResumeModel:
        """Re-check a bounded number of the account's outstanding intents."""
        intent_ids = sorted(await self.store.set_members(pending_deposits_key(account)))
        result = DepositResumeModel(
            account=account,
            pending_count=len(intent_ids),
            checked=0,
            credited=0,
            pending=0,
            waiting=0,
            expired=0,
        )
        for intent_id in intent_ids[: self.resume_batch]:
            result.checked += 1
            try:
                confirmed = await self.confirm(intent_id, account)
            except NotFound:
                await self.store.set_remove(pending_deposits_key(account), intent_id)
                result.expired += 1
                continue
            except ExternalServiceUnavailable:
                result.pending += 1
                logging.warning(f"transfer query unavailable, stopping resume for {account}")
                break
            if confirmed.status == DepositStatusModel.credited:
                result.credited += 1
            elif confirmed.status == DepositStatusModel.wait:
                result.waiting += 1
            else:
                result.pending += 1
        return result
