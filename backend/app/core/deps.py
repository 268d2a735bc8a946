# core/deps.py
from fastapi import Request

from app.core.config import PaymentConfig
from app.services.razorpay import RazorpayClient
from app.services.reminder_store import ReminderStore


# Handles are built once in main.create_app() and kept on app.state
def get_payment_config(request: Request) -> PaymentConfig:
    return request.app.state.payment_config


def get_gateway(request: Request) -> RazorpayClient:
    return request.app.state.gateway


def get_store(request: Request) -> ReminderStore:
    return request.app.state.store
