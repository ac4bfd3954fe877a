# marketplace/repos/cart_repo.py
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart_by_customer(self, customer_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.customer_id == customer_id)
        ).scalar_one_or_none()

    def get_cart_by_session(self, session_id: str) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.session_id == session_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def delete_cart(self, cart: CartModel) -> None:
        self.db.delete(cart)
        self.db.flush()

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel).where(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: int, product_id: int) -> int:
        res = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id, CartItemModel.product_id == product_id)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def delete_cart_items(self, cart_id: int, product_ids: list[int]) -> int:
        if not product_ids:
            return 0
        res = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id, CartItemModel.product_id.in_(product_ids))
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        """UPDATE ... WHERE version = old_version, 0 wierszy = ktos nas wyprzedzil."""
        res = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
