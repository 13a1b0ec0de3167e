from arsychat.services.directory.base import DisabledUserDirectory, UserDirectory
from arsychat.services.directory.firebase import FirebaseUserDirectory
from arsychat.services.directory.sql import SqlUserDirectory


def build_user_directory(settings) -> UserDirectory:
    """Pick the store named by ``user_directory_backend``."""
    if settings.user_directory_backend == "sql":
        from arsychat.database import Base, SessionLocal, engine

        Base.metadata.create_all(bind=engine)
        return SqlUserDirectory(SessionLocal)

    if settings.firebase_db_url:
        return FirebaseUserDirectory(settings.firebase_db_url, timeout=settings.directory_timeout_seconds)

    return DisabledUserDirectory()


__all__ = [
    "DisabledUserDirectory",
    "FirebaseUserDirectory",
    "SqlUserDirectory",
    "UserDirectory",
    "build_user_directory",
]
