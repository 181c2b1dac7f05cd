import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from email_workflows import issue_verification
from models import Transaction, User
from payments import (
    CURRENCY,
    PaymentGatewayError,
    create_order,
    registration_fee_paise,
    verify_payment_signature,
)
from routers.users import clear_unverified_signup, create_signup_user
from schemas import CreateOrderRequest, TransactionResponse, UserBrief, VerifyPaymentRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/create-order")
def create_payment_order(payload: CreateOrderRequest):
    try:
        order = create_order(payload.email, payload.name)
    except PaymentGatewayError as exc:
        logger.error("Razorpay order creation failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create order")
    return {"success": True, "order": order}


@router.post("/verify-and-register")
def verify_and_register(payload: VerifyPaymentRequest, db: Session = Depends(get_db)):
    if not verify_payment_signature(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature):
        logger.warning("Payment signature mismatch for order %s", payload.razorpay_order_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment verification failed")

    clear_unverified_signup(db, payload.user_data.email)
    user = create_signup_user(db, payload.user_data, allow_bootstrap=False)

    transaction = Transaction(
        order_id=payload.razorpay_order_id,
        payment_id=payload.razorpay_payment_id,
        signature=payload.razorpay_signature,
        amount=payload.amount if payload.amount is not None else registration_fee_paise(),
        currency=payload.currency or CURRENCY,
        status=True,
        user_id=user.id,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    try:
        issue_verification(db, user)
    except Exception as exc:
        logger.warning("Verification email after payment to %s failed: %s", user.email, exc)

    return {
        "success": True,
        "message": "Payment verified and account created successfully! Please check your email for verification.",
        "transaction_id": transaction.id,
        "user_id": user.id,
    }


@router.get("/transaction/{order_id}")
def transaction_status(order_id: str, db: Session = Depends(get_db)):
    transaction = db.query(Transaction).filter(Transaction.order_id == order_id).first()
    if not transaction:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    user = db.query(User).filter(User.id == transaction.user_id).first() if transaction.user_id else None
    return {
        "success": True,
        "message": "Transaction found",
        "transaction": TransactionResponse.model_validate(transaction),
        "user": UserBrief.model_validate(user) if user else None,
    }
