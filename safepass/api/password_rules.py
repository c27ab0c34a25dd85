from safepass.helpers.api import ApiHandler, Request
from safepass.helpers.errors import AuthError, ErrorCode
from safepass.helpers.password_deriver import get_password_rules


class PasswordRulesGet(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/password/rules/<platform>"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        platform = (request.view_args or {}).get("platform", "")
        if not platform or len(platform) > 50:
            raise AuthError(ErrorCode.INVALID_PARAMETERS, "Invalid platform name")
        rules = get_password_rules(platform)
        return {"platform": platform, "rules": rules.model_dump(by_alias=True)}
