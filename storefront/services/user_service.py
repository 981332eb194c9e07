from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel
from storefront.data.models.user import UserModel
from storefront.domain.errors import NotFound
from storefront.domain.schemas import AddressCreate, UserCreate
from storefront.repos.user_repo import UserRepo


class UserService:
    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserModel:
        existing = self.repo.get_user(payload.id)
        if existing:
            return existing

        user = UserModel(id=payload.id, full_name=payload.full_name, email=payload.email)
        return self.repo.create_user(user)

    def get_user(self, user_id: int) -> UserModel:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFound("Uzytkownik nie istnieje")
        return user

    def add_address(self, user_id: int, payload: AddressCreate) -> AddressModel:
        self.get_user(user_id)
        address = AddressModel(user_id=user_id, **payload.model_dump())
        return self.repo.add_address(address)
