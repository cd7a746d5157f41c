import logging
import os
import sys
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.orm import Session, joinedload, selectinload

import models
import orders
import schemas
from auth import AuthService, get_auth_service, get_bearer_token, get_current_user, hash_password, verify_password
from database import IS_PRODUCTION, Base, engine, get_db

# JSON logging setup
logHandler = logging.StreamHandler(sys.stdout)
formatter = JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
logHandler.setFormatter(formatter)

logger = logging.getLogger()
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))
logger.addHandler(logHandler)

app = FastAPI(
    title="Gas Delivery API",
    description="Users, suppliers, gas cylinders and orders for a gas cylinder delivery service",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Schema auto-sync outside production
if not IS_PRODUCTION:
    Base.metadata.create_all(bind=engine)


# --- ERROR HANDLERS ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"{field}: {message}" if field else message, "errors": jsonable_encoder(errors)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"detail": "Internal server error"}
    if not IS_PRODUCTION:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


@app.get("/health")
def health():
    """Liveness probe"""
    return {"status": "OK", "message": "Gas Cylinder Delivery API is running"}


# --- AUTH ENDPOINTS ---
@app.post("/api/auth/login", response_model=schemas.AuthResponse)
def login(credentials: schemas.LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    user = auth_service.authenticate(credentials.email, credentials.password)
    if user is None:
        logger.info("Failed login attempt")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return {"message": "Login successful", "token": auth_service.create_token(user), "user": user}


@app.post("/api/auth/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: schemas.UserCreate,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Register a new account and log it in straight away.
    """
    user = create_user_record(db, user_data)
    return {"message": "Registration successful", "token": auth_service.create_token(user), "user": user}


@app.get("/api/auth/verify", response_model=schemas.VerifyResponse)
def verify(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthService = Depends(get_auth_service),
):
    user, _ = auth_service.verify_access_token(token)
    return {"message": "Token is valid", "user": user}


@app.post("/api/auth/logout", response_model=schemas.LogoutResponse)
@app.delete("/api/auth/logout", response_model=schemas.LogoutResponse)
def logout(
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Revoke the presented token
    """
    _, claims = auth_service.verify_access_token(token)
    auth_service.revoke(claims)
    db.commit()
    return {"message": "Logout successful", "success": True}


@app.post("/api/auth/refresh", response_model=schemas.AuthResponse)
def refresh(
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Swap a valid token for a fresh one; the old token is revoked.
    """
    user, claims = auth_service.verify_access_token(token)
    new_token = auth_service.create_token(user)
    auth_service.revoke(claims)
    db.commit()
    return {"message": "Token refreshed successfully", "token": new_token, "user": user}


@app.post("/api/auth/change-password", response_model=schemas.MessageResponse)
def change_password(
    passwords: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    set_password(db, current_user, passwords)
    return {"message": "Password changed successfully"}


@app.post("/api/auth/forgot-password", response_model=schemas.MessageResponse)
def forgot_password(
    request: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Issue a password reset token. The answer is the same whether or not the
    email is registered.
    """
    user = db.query(models.User).filter(
        models.User.email == request.email,
        models.User.is_active.is_(True),
    ).first()
    if user:
        reset_token = auth_service.issue_reset_token(user)
        # No mail transport yet, the token only reaches the logs.
        logger.debug("Password reset token issued", extra={"email": user.email, "reset_token": reset_token})
    return {"message": "If the email exists, a password reset link has been sent"}


@app.post("/api/auth/reset-password", response_model=schemas.MessageResponse)
def reset_password(
    request: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
):
    user = auth_service.consume_reset_token(request.token)
    user.hashed_password = hash_password(request.new_password)
    db.commit()
    return {"message": "Password reset successful"}


# --- USER ENDPOINTS ---
def create_user_record(db: Session, user_data: schemas.UserCreate) -> models.User:
    existing_user = db.query(models.User).filter(models.User.email == user_data.email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already exists")

    db_user = models.User(
        email=user_data.email,
        hashed_password=hash_password(user_data.password),
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        phone=user_data.phone,
        role=user_data.role or models.UserRole.CUSTOMER,
        address=user_data.address,
        latitude=user_data.latitude,
        longitude=user_data.longitude,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Created {db_user.role.value} account {db_user.id}")
    return db_user


def set_password(db: Session, user: models.User, passwords: schemas.PasswordChange) -> None:
    if not verify_password(passwords.current_password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.hashed_password = hash_password(passwords.new_password)
    db.commit()


def get_user_or_404(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@app.get("/api/users", response_model=List[schemas.UserOut])
def read_users(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return db.query(models.User).order_by(models.User.created_at).all()


@app.post("/api/users", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return create_user_record(db, user_data)


@app.get("/api/users/role/{role}", response_model=List[schemas.UserOut])
def read_users_by_role(role: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    """
    Active users holding a role, e.g. the drivers an order can be assigned to
    """
    if role not in [r.value for r in models.UserRole]:
        raise HTTPException(status_code=400, detail="Invalid role")
    return db.query(models.User).filter(
        models.User.role == models.UserRole(role),
        models.User.is_active.is_(True),
    ).all()


@app.get("/api/users/{user_id}", response_model=schemas.UserOut)
def read_user(user_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return get_user_or_404(db, user_id)


@app.put("/api/users/{user_id}", response_model=schemas.UserOut)
def update_user(
    user_id: str,
    changes: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    user = get_user_or_404(db, user_id)
    if changes.email and changes.email != user.email:
        if db.query(models.User).filter(models.User.email == changes.email).first():
            raise HTTPException(status_code=400, detail="Email already exists")

    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


@app.patch("/api/users/{user_id}/password", response_model=schemas.MessageResponse)
def update_user_password(
    user_id: str,
    passwords: schemas.PasswordChange,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    set_password(db, get_user_or_404(db, user_id), passwords)
    return {"message": "Password updated successfully"}


@app.delete("/api/users/{user_id}", response_model=schemas.MessageResponse)
def delete_user(user_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    """
    Users are never removed, only deactivated
    """
    user = get_user_or_404(db, user_id)
    user.is_active = False
    db.commit()
    return {"message": "User deactivated successfully"}


# --- SUPPLIER ENDPOINTS ---
@app.get("/api/suppliers", response_model=List[schemas.SupplierDetail])
def read_suppliers(db: Session = Depends(get_db)):
    return db.query(models.Supplier).options(
        selectinload(models.Supplier.gas_cylinders)
    ).filter(models.Supplier.is_active.is_(True)).all()


@app.get("/api/suppliers/{supplier_id}", response_model=schemas.SupplierDetail)
def read_supplier(supplier_id: str, db: Session = Depends(get_db)):
    supplier = db.query(models.Supplier).options(
        selectinload(models.Supplier.gas_cylinders)
    ).filter(models.Supplier.id == supplier_id).first()
    if not supplier:
        raise HTTPException(status_code=404, detail="Supplier not found")
    return supplier


@app.post("/api/suppliers", response_model=schemas.SupplierOut, status_code=status.HTTP_201_CREATED)
def create_supplier(
    supplier: schemas.SupplierCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    db_supplier = models.Supplier(**supplier.model_dump())
    db.add(db_supplier)
    db.commit()
    db.refresh(db_supplier)
    return db_supplier


# --- GAS CYLINDER ENDPOINTS ---
def get_cylinder_or_404(db: Session, cylinder_id: str) -> models.GasCylinder:
    cylinder = db.query(models.GasCylinder).options(
        joinedload(models.GasCylinder.supplier)
    ).filter(models.GasCylinder.id == cylinder_id).first()
    if not cylinder:
        raise HTTPException(status_code=404, detail="Gas cylinder not found")
    return cylinder


@app.get("/api/gas-cylinders", response_model=List[schemas.GasCylinderOut])
def read_gas_cylinders(db: Session = Depends(get_db)):
    """
    Cylinders currently on sale, lightest first
    """
    return db.query(models.GasCylinder).options(
        joinedload(models.GasCylinder.supplier)
    ).filter(models.GasCylinder.is_available.is_(True)).order_by(models.GasCylinder.weight.asc()).all()


@app.get("/api/gas-cylinders/{cylinder_id}", response_model=schemas.GasCylinderOut)
def read_gas_cylinder(cylinder_id: str, db: Session = Depends(get_db)):
    return get_cylinder_or_404(db, cylinder_id)


@app.post("/api/gas-cylinders", response_model=schemas.GasCylinderOut, status_code=status.HTTP_201_CREATED)
def create_gas_cylinder(
    cylinder: schemas.GasCylinderCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    supplier = db.query(models.Supplier).filter(models.Supplier.id == cylinder.supplier_id).first()
    if not supplier:
        raise HTTPException(status_code=400, detail="Supplier not found")

    db_cylinder = models.GasCylinder(**cylinder.model_dump())
    db.add(db_cylinder)
    db.commit()
    return get_cylinder_or_404(db, db_cylinder.id)


@app.put("/api/gas-cylinders/{cylinder_id}", response_model=schemas.GasCylinderOut)
def update_gas_cylinder(
    cylinder_id: str,
    changes: schemas.GasCylinderUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cylinder = get_cylinder_or_404(db, cylinder_id)
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(cylinder, field, value)
    db.commit()
    return get_cylinder_or_404(db, cylinder_id)


@app.delete("/api/gas-cylinders/{cylinder_id}", response_model=schemas.MessageResponse)
def delete_gas_cylinder(
    cylinder_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Take a cylinder off sale. Past order items keep pointing at it.
    """
    cylinder = get_cylinder_or_404(db, cylinder_id)
    cylinder.is_available = False
    db.commit()
    return {"message": "Gas cylinder deleted successfully"}


# --- ORDER ENDPOINTS ---
@app.post("/api/orders", response_model=schemas.OrderCreated, status_code=status.HTTP_201_CREATED)
def create_order(
    order: schemas.OrderCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    created = orders.create_order(db, order)
    return {
        "message": "Order created successfully",
        "order": created,
        "order_number": created.order_number,
        "total_amount": created.total_amount,
    }


@app.get("/api/orders", response_model=schemas.OrderPage)
def read_orders(
    status_filter: Optional[models.OrderStatus] = Query(None, alias="status"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    driver_id: Optional[str] = Query(None, alias="driverId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("DESC", alias="sortOrder"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Orders with optional filters, pagination and sorting
    """
    return orders.list_orders(db, status_filter, customer_id, driver_id, page, limit, sort_by, sort_order)


@app.get("/api/orders/{order_id}", response_model=schemas.OrderOut)
def read_order(order_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    return orders.load_order(db, order_id)


@app.put("/api/orders/{order_id}/status", response_model=schemas.OrderEnvelope)
def update_order_status(
    order_id: str,
    update: schemas.OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    order = orders.update_order_status(db, order_id, update)
    return {"message": "Order status updated successfully.", "order": order}


@app.put("/api/orders/{order_id}/payment", response_model=schemas.OrderEnvelope)
def update_payment_status(
    order_id: str,
    update: schemas.PaymentStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    order = orders.update_payment_status(db, order_id, update.payment_status)
    return {"message": "Payment status updated successfully.", "order": order}


@app.put("/api/orders/{order_id}/cancel", response_model=schemas.OrderEnvelope)
def cancel_order(
    order_id: str,
    cancellation: Optional[schemas.OrderCancel] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    order = orders.cancel_order(db, order_id, cancellation.reason if cancellation else None)
    return {"message": "Order cancelled successfully.", "order": order}


@app.delete("/api/orders/{order_id}", response_model=schemas.MessageResponse)
def delete_order(order_id: str, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    orders.delete_order(db, order_id)
    return {"message": "Order deleted successfully."}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 3000)), reload=not IS_PRODUCTION)
