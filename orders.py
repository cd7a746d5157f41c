import logging
import math
import os
import random
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

import models
import schemas

logger = logging.getLogger(__name__)

DELIVERY_BASE_FEE = Decimal(os.getenv("DELIVERY_BASE_FEE", "0.00"))
ORDER_NUMBER_ATTEMPTS = 5
CANCELLABLE_STATUSES = (models.OrderStatus.PENDING, models.OrderStatus.CONFIRMED)
FINAL_STATUSES = (models.OrderStatus.DELIVERED, models.OrderStatus.CANCELLED)

SORTABLE_COLUMNS = {
    "createdAt": models.Order.created_at,
    "updatedAt": models.Order.updated_at,
    "totalAmount": models.Order.total_amount,
    "orderNumber": models.Order.order_number,
    "status": models.Order.status,
}

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_order_number() -> str:
    """GAS-<last 8 digits of epoch millis>-<3 random digits>"""
    short_timestamp = str(int(time.time() * 1000))[-8:]
    return f"GAS-{short_timestamp}-{random.randint(100, 999)}"


def calculate_delivery_fee(latitude: float, longitude: float) -> Decimal:
    # Flat fee for now; the coordinates are here for distance-based pricing.
    return money(DELIVERY_BASE_FEE)


def order_query(db: Session):
    """Orders with the full graph the API returns."""
    return db.query(models.Order).options(
        joinedload(models.Order.customer),
        joinedload(models.Order.driver),
        selectinload(models.Order.items)
        .joinedload(models.OrderItem.gas_cylinder)
        .joinedload(models.GasCylinder.supplier),
    )


def load_order(db: Session, order_id: str) -> models.Order:
    order = order_query(db).filter(models.Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found.")
    return order


def reserve_stock(db: Session, cylinder_id: str, quantity: int) -> None:
    """Take stock only if enough is left; the check and the write are one statement."""
    updated = db.query(models.GasCylinder).filter(
        models.GasCylinder.id == cylinder_id,
        models.GasCylinder.stock_quantity >= quantity,
    ).update(
        {models.GasCylinder.stock_quantity: models.GasCylinder.stock_quantity - quantity},
        synchronize_session=False,
    )
    if updated != 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Insufficient stock for gas cylinder '{cylinder_id}'.",
        )


def restore_stock(db: Session, order: models.Order) -> None:
    for item in order.items:
        updated = db.query(models.GasCylinder).filter(
            models.GasCylinder.id == item.gas_cylinder_id
        ).update(
            {models.GasCylinder.stock_quantity: models.GasCylinder.stock_quantity + item.quantity},
            synchronize_session=False,
        )
        if not updated:
            logger.warning(f"Gas cylinder {item.gas_cylinder_id} not found when restoring stock for order {order.id}")


def _priced_lines(db: Session, items: List[schemas.OrderItemRequest]) -> List[Tuple[str, int, Decimal, Decimal]]:
    lines = []
    for item in items:
        cylinder = db.query(models.GasCylinder).filter(models.GasCylinder.id == item.cylinder_id).first()
        if not cylinder:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Gas cylinder with ID '{item.cylinder_id}' not found.",
            )
        if not cylinder.is_available:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Gas cylinder '{cylinder.name}' is not available.",
            )
        if cylinder.stock_quantity < item.quantity:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"Insufficient stock for '{cylinder.name}'. "
                    f"Available: {cylinder.stock_quantity}, Requested: {item.quantity}."
                ),
            )
        unit_price = money(cylinder.price)
        lines.append((cylinder.id, item.quantity, unit_price, money(unit_price * item.quantity)))
    return lines


def create_order(db: Session, payload: schemas.OrderCreate) -> models.Order:
    """
    Validate the cart, price it and write order, items and stock decrements
    in one transaction. Nothing is written when any check fails.
    """
    customer = db.query(models.User).filter(models.User.id == payload.customer_id).first()
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found.")

    lines = _priced_lines(db, payload.items)
    subtotal = sum((line_total for _, _, _, line_total in lines), Decimal("0"))
    delivery_fee = calculate_delivery_fee(payload.delivery_latitude, payload.delivery_longitude)
    total_amount = money(subtotal + delivery_fee)

    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        order = models.Order(
            order_number=generate_order_number(),
            customer_id=customer.id,
            status=models.OrderStatus.PENDING,
            payment_status=models.PaymentStatus.PENDING,
            total_amount=total_amount,
            delivery_fee=delivery_fee,
            delivery_address=payload.delivery_address,
            delivery_latitude=payload.delivery_latitude,
            delivery_longitude=payload.delivery_longitude,
            special_instructions=payload.special_instructions,
        )
        db.add(order)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Order number {order.order_number} already taken (attempt {attempt})")
            continue

        try:
            for cylinder_id, quantity, unit_price, line_total in lines:
                db.add(models.OrderItem(
                    order_id=order.id,
                    gas_cylinder_id=cylinder_id,
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                ))
                reserve_stock(db, cylinder_id, quantity)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Created order {order.order_number} for customer {customer.id}, total {total_amount}")
        return load_order(db, order.id)

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Could not allocate a unique order number, please retry.",
    )


def list_orders(
    db: Session,
    status_filter: Optional[models.OrderStatus] = None,
    customer_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    sort_order: str = "DESC",
) -> schemas.OrderPage:
    column = SORTABLE_COLUMNS.get(sort_by)
    if column is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid sortBy. Allowed: {', '.join(SORTABLE_COLUMNS)}.",
        )
    if sort_order.upper() not in ("ASC", "DESC"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sortOrder must be ASC or DESC.")

    query = db.query(models.Order)
    if status_filter:
        query = query.filter(models.Order.status == status_filter)
    if customer_id:
        query = query.filter(models.Order.customer_id == customer_id)
    if driver_id:
        query = query.filter(models.Order.driver_id == driver_id)
    total = query.count()

    ordering = column.asc() if sort_order.upper() == "ASC" else column.desc()
    ids = [row.id for row in query.with_entities(models.Order.id).order_by(ordering, models.Order.id)
           .offset((page - 1) * limit).limit(limit)]
    by_id = {order.id: order for order in order_query(db).filter(models.Order.id.in_(ids))} if ids else {}

    return schemas.OrderPage(
        data=[by_id[order_id] for order_id in ids],
        pagination=schemas.Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        ),
    )


def update_order_status(db: Session, order_id: str, update: schemas.OrderStatusUpdate) -> models.Order:
    order = load_order(db, order_id)

    if order.status in FINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Order is already {order.status.value} and can no longer change status.",
        )
    if update.status == models.OrderStatus.CANCELLED and order.status not in CANCELLABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order cannot be cancelled at this stage",
        )

    driver = None
    if update.driver_id:
        driver = db.query(models.User).filter(models.User.id == update.driver_id).first()
        if not driver:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver not found.")

    if update.status == models.OrderStatus.ASSIGNED and driver is None and order.driver_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Driver ID is required when assigning order if not already assigned.",
        )
    if update.status == models.OrderStatus.IN_TRANSIT and order.driver_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order must be assigned to a driver before marking as in transit.",
        )

    try:
        if update.status == models.OrderStatus.DELIVERED:
            order.actual_delivery_time = datetime.now(timezone.utc)
            order.payment_status = models.PaymentStatus.PAID
        elif update.status == models.OrderStatus.CANCELLED:
            restore_stock(db, order)

        if driver is not None:
            order.driver_id = driver.id
        if update.estimated_delivery_time:
            order.estimated_delivery_time = update.estimated_delivery_time
        previous = order.status
        order.status = update.status
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order.order_number} moved from {previous.value} to {update.status.value}")
    return load_order(db, order_id)


def update_payment_status(db: Session, order_id: str, payment_status: models.PaymentStatus) -> models.Order:
    order = load_order(db, order_id)
    order.payment_status = payment_status
    db.commit()
    return load_order(db, order_id)


def cancel_order(db: Session, order_id: str, reason: Optional[str] = None) -> models.Order:
    order = load_order(db, order_id)
    if order.status not in CANCELLABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order cannot be cancelled at this stage",
        )

    try:
        restore_stock(db, order)
        order.status = models.OrderStatus.CANCELLED
        order.cancellation_reason = reason or "Order cancelled."
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Cancelled order {order.order_number}: {order.cancellation_reason}")
    return load_order(db, order_id)


def delete_order(db: Session, order_id: str) -> None:
    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found.")
    if order.status != models.OrderStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only cancelled orders can be deleted.",
        )
    order_number = order.order_number

    try:
        db.query(models.OrderItem).filter(models.OrderItem.order_id == order_id).delete(synchronize_session=False)
        db.query(models.Order).filter(models.Order.id == order_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted cancelled order {order_number}")
