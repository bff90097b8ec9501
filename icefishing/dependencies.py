from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from icefishing.errors import NotConfigured
from icefishing.services.balance_ledger import BalanceLedger
from icefishing.services.bet_book import BetBook
from icefishing.services.deposit import DepositReconciler
from icefishing.services.round_state import RoundStateService
from icefishing.services.settlement import SettlementEngine


@dataclass
class Services:
    """Components wired by the entry point and shared by the routers."""

    balances: BalanceLedger
    bets: BetBook
    settlement: SettlementEngine
    rounds: RoundStateService
    deposits: Optional[DepositReconciler] = None


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_deposits(services: Services = Depends(get_services)) -> DepositReconciler:
    if services.deposits is None:
        raise NotConfigured("deposits are not configured")
    return services.deposits
