from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.data.database import get_db, transaction
from storefront.domain.errors import ShopError
from storefront.domain.schemas import AddressCreate, AddressRead, UserCreate, UserRead
from storefront.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", response_model=UserRead)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    service = UserService(db)
    with transaction(db):
        user = service.create_user(payload)
    return user


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: int, db: Session = Depends(get_db)):
    service = UserService(db)
    try:
        return service.get_user(user_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{user_id}/addresses", response_model=AddressRead, status_code=201)
def add_address(user_id: int, payload: AddressCreate, db: Session = Depends(get_db)):
    service = UserService(db)
    try:
        with transaction(db):
            address = service.add_address(user_id, payload)
        return address
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
