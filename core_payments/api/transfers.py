"""
Transfer endpoints
"""

from fastapi import APIRouter, HTTPException, Depends

from .auth import PaymentsSystem, get_payments_system, get_current_user, to_http_exception
from .schemas import MoneyModel, TransferRequest
from ..currency import Currency, parse_amount
from ..errors import PaymentError


router = APIRouter()


@router.post("", status_code=201)
def create_transfer(
    request: TransferRequest,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Transfer money from one of the caller's accounts to an account number"""
    sender = system.accounts.get_account(request.from_account_id)
    if not sender:
        raise HTTPException(status_code=404, detail="Source account not found")
    if sender.owner_id != current_user:
        raise HTTPException(status_code=403, detail="Source account does not belong to caller")

    try:
        currency = Currency[request.currency.upper()] if request.currency else sender.currency
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {request.currency}")

    try:
        amount = parse_amount(request.amount, currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = system.transfer_engine.execute_transfer(
            from_account_id=request.from_account_id,
            to_account_number=request.to_account_number,
            amount=amount,
            reference=request.reference
        )
    except PaymentError as e:
        raise to_http_exception(e)

    return {
        "message": "Transfer successful",
        "transaction_id": result.debit_transaction_id,
        "credit_transaction_id": result.credit_transaction_id,
        "amount": MoneyModel.from_money(result.amount).model_dump(),
        "reference": result.reference,
        "sender_balance": MoneyModel.from_minor_units(result.sender_balance, currency).model_dump(),
        "beneficiary_balance": MoneyModel.from_minor_units(result.beneficiary_balance, currency).model_dump(),
        "created_at": result.created_at.isoformat()
    }
