from sqlalchemy.ext.asyncio import AsyncSession
from storefront.data.models.user import UserModel
from storefront.domain.errors import UserNotFoundError
from storefront.repos.user_repo import UserRepo
from storefront.domain.schemas import UserCreate, UserRead


class UserService:
    def __init__(self, db: AsyncSession):
        self.repo = UserRepo(db)

    async def create_user(self, payload: UserCreate) -> UserRead:
        existing = await self.repo.get_user(payload.id)
        if existing:
            return UserRead.model_validate(existing)

        user = UserModel(
            id=payload.id,
            username=payload.username,
            email=payload.email,
            address=payload.address,
            role=payload.role,
        )
        created = await self.repo.create_user(user)
        return UserRead.model_validate(created)

    async def get_user(self, user_id: int) -> UserRead:
        user = await self.repo.get_user(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return UserRead.model_validate(user)
