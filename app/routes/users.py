from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.auth import USERS_MANAGE, Principal, get_current_principal, require_permission
from app.database import get_db
from app.limits import account_limit
from app.pagination import paging_info
from app.schemas import (
    ShippingAddressOut,
    ShippingAddressRequest,
    UserDetailOut,
    UserOut,
    UserQuery,
    UserUpdateRequest,
    empty_result,
    envelope,
)
from app.services import accounts

router = APIRouter(prefix="/user", tags=["users"])


def _user(user) -> dict:
    return UserDetailOut.model_validate(user).model_dump(mode="json")


@router.get("")
@account_limit
def list_users(
    request: Request,
    params: Annotated[UserQuery, Query()],
    _: Principal = Depends(require_permission(USERS_MANAGE)),
    db: Session = Depends(get_db),
):
    users, total = accounts.list_users(db, params)
    if not total:
        return empty_result("No users found", paging_info=paging_info(0, 1, params.page_size), users=[])
    return envelope(
        "Users successfully retrieved",
        paging_info=paging_info(total, params.page, params.page_size),
        users=[UserOut.model_validate(u).model_dump(mode="json") for u in users],
    )


@router.get("/me")
@account_limit
def get_current_user(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return envelope("User successfully retrieved", user=_user(accounts.get_user(db, principal.user_id)))


@router.post("/me/shipping-address", status_code=201)
@account_limit
def set_shipping_address(
    request: Request,
    body: ShippingAddressRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    address = accounts.set_shipping_address(db, principal.user_id, body)
    return envelope(
        "Shipping Address Successfully added",
        shipping_address=ShippingAddressOut.model_validate(address).model_dump(mode="json"),
    )


@router.delete("/me/shipping-address")
@account_limit
def delete_shipping_address(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    accounts.delete_shipping_address(db, principal.user_id)
    return envelope("Shipping Address Successfully deleted")


@router.get("/{user_id}")
@account_limit
def get_user(
    request: Request,
    user_id: str,
    _: Principal = Depends(require_permission(USERS_MANAGE)),
    db: Session = Depends(get_db),
):
    return envelope("User successfully retrieved", user=_user(accounts.get_user(db, user_id)))


@router.patch("/{user_id}")
@account_limit
def update_user(
    user_id: str,
    request: Request,
    body: UserUpdateRequest,
    _: Principal = Depends(require_permission(USERS_MANAGE)),
    db: Session = Depends(get_db),
):
    return envelope("User successfully updated", user=_user(accounts.update_user(db, user_id, body)))


@router.delete("/{user_id}")
@account_limit
def delete_user(
    request: Request,
    user_id: str,
    _: Principal = Depends(require_permission(USERS_MANAGE)),
    db: Session = Depends(get_db),
):
    accounts.delete_user(db, user_id)
    return envelope("User successfully deleted")
