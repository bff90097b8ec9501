from fastapi import APIRouter, Depends

from icefishing.dependencies import get_deposits
from icefishing.models.dc_models import (
    DepositConfirmModel,
    DepositConfirmRequestModel,
    DepositIntentModel,
    DepositIntentRequestModel,
    DepositResumeModel,
    DepositResumeRequestModel,
)
from icefishing.services.deposit import DepositReconciler

deposit_router = APIRouter(prefix="/deposit")


class DepositAPI:
    @staticmethod
    @deposit_router.post("/intent", response_model=DepositIntentModel)
    async def create_intent(
        request: DepositIntentRequestModel,
        deposits: DepositReconciler = Depends(get_deposits),
    ) -> DepositIntentModel:
        return await deposits.create_intent(request.requested_amount, request.account)

    @staticmethod
    @deposit_router.post("/confirm", response_model=DepositConfirmModel)
    async def confirm(
        request: DepositConfirmRequestModel,
        deposits: DepositReconciler = Depends(get_deposits),
    ) -> DepositConfirmModel:
        """Check the ledger for the intent's transfer and credit it once

        Args:
            request (DepositConfirmRequestModel): intent_id and the account to credit

        Returns:
            DepositConfirmModel: wait, pending or credited
        """
        return await deposits.confirm(request.intent_id, request.account)

    @staticmethod
    @deposit_router.post("/resume", response_model=DepositResumeModel)
    async def resume(
        request: DepositResumeRequestModel,
        deposits: DepositReconciler = Depends(get_deposits),
    ) -> DepositResumeModel:
        return await deposits.resume(request.account)
