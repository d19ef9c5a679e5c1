"""Shared test data builders."""

import json
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from src.core.paystack import sign_payload
from src.models import Course, CustomOffer, Order, Rental, RentalBooking, User

PAYSTACK_SECRET = os.environ.get("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
JWT_SECRET = os.environ.get("AUTH_JWT_SECRET", "test-jwt-secret")
CRON_SECRET = os.environ.get("CRON_SECRET", "test-cron-secret")

STATUS_IDS = {
    "pending": 1,
    "partially_paid": 2,
    "paid": 3,
    "failed": 4,
    "completed": 5,
}


def reset_caches() -> None:
    """Forget every cached singleton so the next call reads the current environment."""
    from src.core.config import get_settings
    from src.core.database import get_engine, get_session_factory
    from src.core.paystack import get_paystack_client
    from src.services.status_catalog import reset_status_catalog

    get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    get_paystack_client.cache_clear()
    reset_status_catalog()


class Seeder:
    """Inserts rows through a synchronous session and reads them back."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._emails = 0

    def add(self, row: Any) -> Any:
        with Session(self.engine, expire_on_commit=False) as session:
            session.add(row)
            session.commit()
            return row

    def user(self, referred_by_id: int | None = None, email: str | None = None, **kwargs: Any) -> User:
        self._emails += 1
        first_name = kwargs.pop("first_name", "Ada")
        last_name = kwargs.pop("last_name", f"Customer{self._emails}")
        return self.add(
            User(
                email=email or f"user{self._emails}@example.com",
                first_name=first_name,
                last_name=last_name,
                referred_by_id=referred_by_id,
                **kwargs,
            )
        )

    def order(self, user_id: int, status: str = "pending", **kwargs: Any) -> Order:
        kwargs.setdefault("total_expected_amount_kobo", 0)
        kwargs.setdefault("amount_paid_to_date_kobo", 0)
        return self.add(Order(user_id=user_id, order_status_id=STATUS_IDS[status], **kwargs))

    def course(self, price_in_kobo: int = 10000, days: int = 30, **kwargs: Any) -> Course:
        start = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        title = kwargs.pop("title", "Intro to 3D Animation")
        return self.add(
            Course(
                title=title,
                price_in_kobo=price_in_kobo,
                start_date=start,
                end_date=start + timedelta(days=days),
                **kwargs,
            )
        )

    def offer(self, order_id: int, user_id: int, amount: int = 100000, **kwargs: Any) -> CustomOffer:
        kwargs.setdefault("status", "pending")
        description = kwargs.pop("description", "Explainer video")
        return self.add(
            CustomOffer(
                order_id=order_id,
                user_id=user_id,
                offer_amount_in_kobo=amount,
                description=description,
                **kwargs,
            )
        )

    def booking(self, client_id: int, total_amount_kobo: int = 50000, **kwargs: Any) -> RentalBooking:
        rental = self.add(Rental(device_name=kwargs.pop("device_name", "DJI Mavic 3")))
        start = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
        return self.add(
            RentalBooking(
                rental_id=rental.rental_id,
                client_id=client_id,
                start_date=start,
                end_date=start + timedelta(days=3),
                total_amount_kobo=total_amount_kobo,
                **kwargs,
            )
        )

    def get(self, model: type, pk: Any) -> Any:
        with Session(self.engine, expire_on_commit=False) as session:
            row = session.get(model, pk)
            if row is not None:
                session.expunge(row)
            return row

    def all(self, model: type) -> list[Any]:
        with Session(self.engine, expire_on_commit=False) as session:
            rows = list(session.query(model).all())
            for row in rows:
                session.expunge(row)
            return rows

    def count(self, model: type) -> int:
        with Session(self.engine) as session:
            return session.query(model).count()


def make_token(user_id: int | str, secret: str = JWT_SECRET, expires_in: int = 3600, **claims: Any) -> str:
    """Issue an access token the way the auth service does."""
    now = int(time.time())
    payload = {"sub": str(user_id), "iat": now, "exp": now + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def charge_payload(
    reference: str,
    amount: int,
    metadata: dict[str, Any] | None,
    status: str = "success",
    email: str = "payer@example.com",
    currency: str = "NGN",
) -> dict[str, Any]:
    """A transaction object shaped like the gateway's."""
    return {
        "id": 302961,
        "reference": reference,
        "amount": amount,
        "currency": currency,
        "status": status,
        "gateway_response": "Successful" if status == "success" else "Declined",
        "customer": {"email": email},
        "metadata": metadata if metadata is not None else "",
    }


def webhook_body(event: str, data: dict[str, Any]) -> bytes:
    return json.dumps({"event": event, "data": data}).encode()


def signed_headers(body: bytes, secret: str = PAYSTACK_SECRET) -> dict[str, str]:
    return {"x-paystack-signature": sign_payload(body, secret), "Content-Type": "application/json"}
