from .db import DatabaseManager
from .models import Base, ConnectionProfileRecord

__all__ = ["DatabaseManager", "Base", "ConnectionProfileRecord"]
