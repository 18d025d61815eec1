from sqlalchemy.ext.asyncio import AsyncSession
from storefront.data.models.user import UserModel

class UserRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> UserModel | None:
        return await self.db.get(UserModel, user_id)

    async def create_user(self, user: UserModel) -> UserModel:
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user
