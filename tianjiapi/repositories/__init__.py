# Repository layer - Data access; commits belong to the service layer

from .base import BaseRepository
from .profile_repository import ProfileRepository
from .transaction_repository import TransactionRepository
