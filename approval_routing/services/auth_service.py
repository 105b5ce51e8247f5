"""
Authentication Service
Resolves the acting user from a bearer token
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from approval_routing.config.database import get_db
from approval_routing.models.user import User, UserRole
from approval_routing.utils.security import create_access_token, decode_token
from approval_routing.utils.logger import setup_logger

logger = setup_logger()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


# Roles allowed to change approval configuration
CONFIG_ADMIN_ROLES = (UserRole.ADMIN.value, UserRole.COMPANY_ADMIN.value, UserRole.SUPER_ADMIN.value)


class AuthService:
    """Authentication service"""

    def create_token(self, user: User) -> dict:
        """
        Create an access token for a user

        Args:
            user: User object

        Returns:
            dict: Access token and token type
        """
        access_token = create_access_token(
            data={
                "sub": str(user.id),
                "username": user.username,
                "role": user.role.value,
                "company_id": user.company_id
            }
        )
        return {"access_token": access_token, "token_type": "bearer"}

    async def get_current_user(
        self,
        token: str = Depends(oauth2_scheme),
        db: Session = Depends(get_db)
    ) -> User:
        """
        Get current authenticated user from token

        Args:
            token: JWT token
            db: Database session

        Returns:
            User: Current user

        Raises:
            HTTPException: If authentication fails
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        payload = decode_token(token)
        if payload is None:
            raise credentials_exception

        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        user = db.query(User).filter(User.id == int(user_id)).first()
        if user is None:
            raise credentials_exception

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive"
            )

        return user

    def require_role(self, *roles: str):
        """
        Dependency requiring specific role(s)

        Args:
            roles: Required roles
        """
        async def role_checker(current_user: User = Depends(self.get_current_user)):
            if current_user.role.value not in roles:
                logger.warning(f"User {current_user.id} denied: role {current_user.role.value} not in {roles}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Access denied. Required role(s): {', '.join(roles)}"
                )
            return current_user

        return role_checker


# Create singleton instance
auth_service = AuthService()
