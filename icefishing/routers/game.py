import logging
from typing import List

from fastapi import APIRouter, Depends

from icefishing.dependencies import Services, get_services
from icefishing.models.dc_models import (
    BalanceModel,
    HistoryItemModel,
    PlaceBetModel,
    PlaceBetResultModel,
    RoundStateModel,
    SettleRequestModel,
    SettleResultModel,
)

game_router = APIRouter()


class RoundAPI:
    @staticmethod
    @game_router.get("/state", response_model=RoundStateModel)
    async def get_state(services: Services = Depends(get_services)) -> RoundStateModel:
        return await services.rounds.get_round_state()

    @staticmethod
    @game_router.get("/history", response_model=List[HistoryItemModel])
    async def get_history(services: Services = Depends(get_services)) -> List[HistoryItemModel]:
        return await services.rounds.get_history()


class BetAPI:
    @staticmethod
    @game_router.post("/bet/place", response_model=PlaceBetResultModel)
    async def place_bet(
        bet: PlaceBetModel, services: Services = Depends(get_services)
    ) -> PlaceBetResultModel:
        """Debit the stake and record the bet for the current round

        Args:
            bet (PlaceBetModel): account, round_id, category and stake in nanounits

        Returns:
            PlaceBetResultModel: The accepted bet and the new balance
        """
        balance = await services.bets.place(bet.account, bet.round_id, bet.category, bet.stake)
        return PlaceBetResultModel(
            account=bet.account,
            round_id=bet.round_id,
            category=bet.category,
            staked=bet.stake,
            balance_nano=balance,
        )

    @staticmethod
    @game_router.post("/bet/settle", response_model=SettleResultModel)
    async def settle(
        request: SettleRequestModel, services: Services = Depends(get_services)
    ) -> SettleResultModel:
        result = await services.settlement.settle_pending(request.account)
        if result.total_credited:
            logging.info(f"credited {result.total_credited} to {request.account}")
        return result


class BalanceAPI:
    @staticmethod
    @game_router.get("/balance/{account}", response_model=BalanceModel)
    async def get_balance(account: str, services: Services = Depends(get_services)) -> BalanceModel:
        balance = await services.balances.get(account)
        return BalanceModel(account=account, balance_nano=balance)
