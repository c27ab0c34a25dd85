from safepass.helpers.api import ApiHandler, Request
from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.password_deriver import calculate_password_strength


class PasswordValidateStrength(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/password/validate-strength"

    async def process(self, input: dict, request: Request) -> dict:
        password = input.get("password") if isinstance(input, dict) else None
        if not isinstance(password, str) or not password:
            raise AuthError(ErrorCode.INVALID_PARAMETERS, "Password is required")
        return {"strength": calculate_password_strength(password)}
