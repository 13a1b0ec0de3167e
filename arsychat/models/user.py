from sqlalchemy import BigInteger, Column, DateTime, Text

from arsychat.database import Base


class BotUser(Base):
    __tablename__ = "bot_users"

    id = Column(Text, primary_key=True)
    first_name = Column(Text, nullable=False, default="")
    last_seen = Column(BigInteger)  # epoch millis, same as the Firebase records
    current_model = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
