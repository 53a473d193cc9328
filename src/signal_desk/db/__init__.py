from signal_desk.db.base import Base
from signal_desk.db.engine import get_session_factory, init_engine

__all__ = ["Base", "get_session_factory", "init_engine"]
