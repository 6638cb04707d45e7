from fastapi import APIRouter, Depends, HTTPException

from tfinance.db.pool import db_conn
from tfinance.models.accounts import BankAccountCreateRequest, BankAccountCreateResponse, BankAccountItem
from tfinance.models.auth import MessageResponse
from tfinance.services.accounts import create_bank_account, delete_bank_account, list_bank_accounts
from tfinance.services.auth import CurrentUser, require_session_user

router = APIRouter(prefix="/api/user", tags=["user"])


@router.post("/premium", deprecated=True)
def request_premium(_: CurrentUser = Depends(require_session_user)):
    raise HTTPException(
        status_code=400,
        detail="This endpoint is deprecated. Use /api/payment/create to pay for Premium via YooKassa",
    )


@router.get("/bank-accounts", response_model=list[BankAccountItem])
def get_bank_accounts(current: CurrentUser = Depends(require_session_user)):
    with db_conn() as conn, conn.cursor() as cur:
        return list_bank_accounts(cur, current.user_id)


@router.post("/bank-accounts", response_model=BankAccountCreateResponse)
def add_bank_account(payload: BankAccountCreateRequest, current: CurrentUser = Depends(require_session_user)):
    with db_conn() as conn, conn.cursor() as cur:
        try:
            account_id = create_bank_account(cur, current.user_id, payload.name)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
    return BankAccountCreateResponse(id=account_id)


@router.delete("/bank-accounts/{account_id}", response_model=MessageResponse)
def remove_bank_account(account_id: int, current: CurrentUser = Depends(require_session_user)):
    with db_conn() as conn, conn.cursor() as cur:
        try:
            delete_bank_account(cur, current.user_id, account_id)
            conn.commit()
        except HTTPException:
            conn.rollback()
            raise
    return MessageResponse(message="Account deleted")
