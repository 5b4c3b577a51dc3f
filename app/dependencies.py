from fastapi import Request

from app.services import LedgerServices


def get_services(request: Request) -> LedgerServices:
    return request.app.state.services


__all__ = ["get_services"]
