from arsychat.models.user import BotUser

__all__ = ["BotUser"]
