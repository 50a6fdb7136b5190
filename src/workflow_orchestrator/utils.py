"""
通用工具
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与数据库中的时间保持一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_blank(value: Optional[str]) -> bool:
    """判断字符串是否为空白"""
    return value is None or not str(value).strip()


def within_range(moment: datetime, from_date: Optional[datetime],
                 thru_date: Optional[datetime]) -> bool:
    """判断时间是否落在闭区间内，空边界视为开放"""
    if from_date is not None and moment < from_date:
        return False
    if thru_date is not None and moment > thru_date:
        return False
    return True
