import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from provably_fair.load_secrets import admin_password, admin_username

security = HTTPBasic()


class AdminAuthentication:
    def __init__(self, username: str | None = admin_username, password: str | None = admin_password):
        self.username = username
        self.password = password

    async def check_admin(self, credentials: HTTPBasicCredentials = Depends(security)) -> str:
        """Guard for seed rotation. Without a configured password every request is refused.

        Args:
            credentials (HTTPBasicCredentials, optional): Defaults to Depends(security).

        Raises:
            HTTPException: Unknown user or wrong password

        Returns:
            str: Admin username
        """
        if not self.username or not self.password:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Seed rotation is disabled: no admin password configured",
            )

        username_ok = secrets.compare_digest(credentials.username.encode(), self.username.encode())
        password_ok = secrets.compare_digest(credentials.password.encode(), self.password.encode())
        if not (username_ok and password_ok):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid admin credentials",
                headers={"WWW-Authenticate": "Basic"},
            )
        return credentials.username


admin_auth = AdminAuthentication()
