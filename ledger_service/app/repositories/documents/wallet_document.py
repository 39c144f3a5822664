from __future__ import annotations

from common.mongo.types import BaseDocument, from_object_id

from ...models.wallet import Wallet


class WalletDocument(BaseDocument):
    """MongoDB wallets 컬렉션 도큐먼트 모델."""

    user_code: str
    coin_balance: int = 0

    def to_domain(self) -> Wallet:
        return Wallet(
            id=from_object_id(self.id),
            user_code=self.user_code,
            coin_balance=self.coin_balance,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
