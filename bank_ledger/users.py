"""
User Directory Module

Bank customers and admin principals. Holds identity only: no credentials are
stored, authentication happens upstream of the ledger.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .context import RequestContext
from .errors import DuplicateUser, UserNotFound


@dataclass
class User(StorageRecord):
    """A customer or admin known to the bank"""
    user_id: str  # login handle, unique
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result.update({
            'user_id': self.user_id,
            'full_name': self.full_name,
            'email': self.email,
            'is_admin': self.is_admin,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'User':
        return cls(
            id=data['id'],
            created_at=cls.parse_datetime(data['created_at']),
            updated_at=cls.parse_datetime(data['updated_at']),
            user_id=data['user_id'],
            full_name=data.get('full_name'),
            email=data.get('email'),
            is_admin=bool(data.get('is_admin', False)),
        )


class UserDirectory:
    """Create and look up users"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "users"

    def create_user(
        self,
        ctx: RequestContext,
        user_id: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        is_admin: bool = False
    ) -> User:
        """
        Register a user handle

        Raises:
            DuplicateUser: If the handle is already taken
        """
        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            full_name=full_name or user_id,
            email=email,
            is_admin=is_admin,
        )

        with self.storage.atomic():
            if self.get_user_by_handle(user_id):
                raise DuplicateUser(user_id)
            self.storage.save(self.table_name, user.id, user.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.USER_CREATED,
                entity_type="user",
                entity_id=user.id,
                metadata={"user_id": user_id, "is_admin": is_admin},
                user_id=ctx.actor_id,
                correlation_id=ctx.correlation_id,
            )

        return user

    def get_user(self, user_record_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_record_id)
        if data:
            return User.from_dict(data)
        return None

    def require_user(self, user_record_id: str) -> User:
        user = self.get_user(user_record_id)
        if not user:
            raise UserNotFound(user_record_id)
        return user

    def get_user_by_handle(self, user_id: str) -> Optional[User]:
        found = self.storage.find(self.table_name, {"user_id": user_id})
        if found:
            return User.from_dict(found[0])
        return None

    def list_users(self) -> List[User]:
        users = [User.from_dict(data) for data in self.storage.load_all(self.table_name)]
        users.sort(key=lambda u: u.created_at)
        return users

    def remove(self, user_record_id: str) -> bool:
        """Delete the user row only; callers handle the account cascade"""
        return self.storage.delete(self.table_name, user_record_id)
