# app/repos/address_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.data.models.address import AddressModel


class AddressRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_address(self, address_id: int, owner_id: int) -> AddressModel | None:
        # cudzy adres traktujemy tak samo jak nieistniejacy
        return self.db.execute(
            select(AddressModel).where(
                AddressModel.id == address_id,
                AddressModel.user_id == owner_id,
            )
        ).scalar_one_or_none()
