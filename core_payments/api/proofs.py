"""
Proof of payment endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import Response

from .auth import PaymentsSystem, get_payments_system, get_current_user, to_http_exception
from .schemas import BulkGenerateRequest, MoneyModel
from ..currency import Currency
from ..errors import PaymentError


router = APIRouter()


def _pdf_response(system: PaymentsSystem, transaction_id: str, owner_id: str,
                  disposition: str) -> Response:
    try:
        system.proofs.authorize(transaction_id, owner_id)
        proof = system.proofs.render(transaction_id)
    except PaymentError as e:
        raise to_http_exception(e)

    return Response(
        content=proof.document_bytes,
        media_type=proof.content_type,
        headers={"Content-Disposition": f'{disposition}; filename="{proof.file_name}"'}
    )


@router.post("/generate/{transaction_id}")
def generate_proof(
    transaction_id: str,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Render a receipt and store it as an artifact"""
    try:
        system.proofs.authorize(transaction_id, current_user)
        proof = system.proofs.render(transaction_id)
    except PaymentError as e:
        raise to_http_exception(e)

    return {
        "message": "Proof of payment generated successfully",
        "transaction_id": transaction_id,
        "file_name": proof.file_name,
        "download_url": f"/proof-of-payment/download/{transaction_id}"
    }


@router.get("/download/{transaction_id}")
def download_proof(
    transaction_id: str,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Receipt PDF as a file download"""
    return _pdf_response(system, transaction_id, current_user, "attachment")


@router.get("/view/{transaction_id}")
def view_proof(
    transaction_id: str,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Receipt PDF for display in the browser"""
    return _pdf_response(system, transaction_id, current_user, "inline")


@router.get("/status/{transaction_id}")
def proof_status(
    transaction_id: str,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    try:
        status = system.proofs.proof_status(transaction_id, current_user)
    except PaymentError as e:
        raise to_http_exception(e)

    return {
        "transaction_id": status.transaction_id,
        "proof_generated": status.proof_generated,
        "can_generate_proof": status.can_generate_proof,
        "status": status.status,
        "amount": MoneyModel.from_minor_units(abs(status.amount), Currency[status.currency]).model_dump(),
        "date": status.date.isoformat(),
        "reference": status.reference
    }


@router.get("/history")
def transaction_history(
    page: int = Query(1),
    limit: int = Query(10),
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Paginated transactions across all of the caller's accounts"""
    try:
        history = system.proofs.history_for_owner(current_user, page=page, limit=limit)
    except PaymentError as e:
        raise to_http_exception(e)

    return {
        "transactions": [
            {
                "transaction_id": row.transaction_id,
                "account_number": row.account_number,
                "direction": row.direction,
                "amount": MoneyModel.from_minor_units(row.amount, Currency[row.currency]).model_dump(),
                "reference": row.reference,
                "description": row.description,
                "counterparty_account_number": row.counterparty_account_number,
                "status": row.status,
                "date": row.date.isoformat(),
                "proof_generated": row.proof_generated,
                "can_generate_proof": row.can_generate_proof
            }
            for row in history.rows
        ],
        "pagination": {
            "current_page": history.page,
            "total_pages": history.total_pages,
            "total_transactions": history.total,
            "limit": history.limit
        }
    }


@router.post("/bulk-generate")
def bulk_generate(
    request: BulkGenerateRequest,
    current_user: str = Depends(get_current_user),
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Render receipts for up to the configured batch size of transactions"""
    try:
        results = system.proofs.render_many(request.transaction_ids, owner_id=current_user)
    except PaymentError as e:
        raise to_http_exception(e)

    successful = sum(1 for item in results if item.success)
    return {
        "message": "Bulk proof generation completed",
        "results": [
            {
                "transaction_id": item.transaction_id,
                "success": item.success,
                "file_name": item.file_name,
                "error": item.error
            }
            for item in results
        ],
        "summary": {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful
        }
    }


@router.get("/verify/{transaction_id}")
def verify_proof(
    transaction_id: str,
    system: PaymentsSystem = Depends(get_payments_system)
):
    """Public receipt verification; never reveals why a lookup failed"""
    return system.verification.verify(transaction_id).to_dict()
