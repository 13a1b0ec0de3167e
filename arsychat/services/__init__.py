from arsychat.services.broadcast_service import BroadcastEngine, BroadcastReport
from arsychat.services.completion_service import generate_reply, reply_text
from arsychat.services.membership_service import MembershipGate
from arsychat.services.model_registry import DEFAULT_MODELS, ModelDescriptor, ModelRegistry
from arsychat.services.result import Result
from arsychat.services.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from arsychat.services.state_machine import ChatState, derive_state
from arsychat.services.telegram_service import TelegramService
from arsychat.services.update_router import UpdateRouter
