from safepass.helpers.api import ApiHandler, Request


class ChallengeStats(ApiHandler):
    @classmethod
    def get_route(cls) -> str:
        return "/challenge/stats"

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    @classmethod
    def development_only(cls) -> bool:
        return True

    async def process(self, input: dict, request: Request) -> dict:
        return {"stats": self.services.challenges.stats()}
