from typing import Any

from fastapi import HTTPException

from tfinance.core.validators import validate_account_name


def list_bank_accounts(cur, user_id: int) -> list[dict[str, Any]]:
    cur.execute(
        """
        SELECT account_id AS id, name, balance
        FROM bank_accounts
        WHERE user_id=%s
        ORDER BY account_id
        """,
        (user_id,),
    )
    return cur.fetchall()


def create_bank_account(cur, user_id: int, name: str) -> int:
    error = validate_account_name(name)
    if error:
        raise HTTPException(status_code=400, detail=error)
    cur.execute(
        """
        INSERT INTO bank_accounts (user_id, name, balance)
        VALUES (%s, %s, 0)
        RETURNING account_id
        """,
        (user_id, name.strip()),
    )
    return cur.fetchone()["account_id"]


def delete_bank_account(cur, user_id: int, account_id: int) -> None:
    cur.execute(
        "DELETE FROM bank_accounts WHERE account_id=%s AND user_id=%s RETURNING account_id",
        (account_id, user_id),
    )
    if not cur.fetchone():
        raise HTTPException(status_code=404, detail="Account not found")
