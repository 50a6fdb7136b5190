"""
用户目录集成
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from ..utils import utcnow, within_range


@dataclass
class UserProfile:
    """用户资料"""
    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None


@dataclass
class GroupMembership:
    """带有效期的用户组成员关系"""
    group_id: str
    user_id: str
    from_date: Optional[datetime] = None
    thru_date: Optional[datetime] = None


class UserDirectory(ABC):
    """用户目录接口"""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserProfile]:
        """根据用户ID获取用户资料"""
        pass

    @abstractmethod
    def get_group_member_ids(self, group_id: str, at: datetime = None) -> List[str]:
        """获取在指定时间有效的用户组成员"""
        pass


class InMemoryUserDirectory(UserDirectory):
    """内存用户目录实现"""

    def __init__(self):
        self.users: Dict[str, UserProfile] = {}
        self.memberships: List[GroupMembership] = []

    def add_user(self, profile: UserProfile):
        self.users[profile.user_id] = profile

    def add_membership(self, group_id: str, user_id: str,
                       from_date: datetime = None, thru_date: datetime = None):
        self.memberships.append(GroupMembership(group_id, user_id, from_date, thru_date))

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self.users.get(user_id)

    def get_group_member_ids(self, group_id: str, at: datetime = None) -> List[str]:
        at = at or utcnow()
        member_ids = [
            membership.user_id for membership in self.memberships
            if membership.group_id == group_id
            and within_range(at, membership.from_date, membership.thru_date)
        ]
        return list(dict.fromkeys(member_ids))
