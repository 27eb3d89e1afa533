from fastapi import Request

from storefront.runtime import Runtime
from storefront.services.reservation_manager import ReservationManager
from storefront.services.settlement import SettlementCoordinator
from storefront.services.stock_ledger import StockLedger


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_reservations(request: Request) -> ReservationManager:
    return get_runtime(request).reservations


def get_settlement(request: Request) -> SettlementCoordinator:
    return get_runtime(request).settlement


def get_ledger(request: Request) -> StockLedger:
    return get_runtime(request).ledger
