from safepass.helpers.api import ApiHandler, Request
from safepass.helpers.password_deriver import PLATFORM_PRESETS, get_password_rules


class PasswordPlatforms(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/password/platforms"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        platforms = [
            {
                **preset,
                "rules": get_password_rules(preset["key"]).model_dump(by_alias=True),
            }
            for preset in PLATFORM_PRESETS
        ]
        return {"platforms": platforms}
